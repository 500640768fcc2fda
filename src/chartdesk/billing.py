"""Billing rules — outstanding balances, scheduled auto-payments, billing stats.

process_scheduled_payments() is the time-driven half of charge reconciliation:
it settles every auto-pay charge whose scheduled day has arrived. It is pure
and idempotent, because settling a charge clears its scheduling fields.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal

from chartdesk.core.utils import ensure_aware, format_date, local_day, new_id
from chartdesk.models import (
    Alert,
    Charge,
    Payment,
    PaymentMedium,
    PaymentMethod,
    PatientRecord,
)

logger = logging.getLogger(__name__)

OVERDUE_AFTER_DAYS = 30


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of one scheduled-payment pass.

    ``last_processed`` is set only when at least one charge was settled.
    """

    record: PatientRecord
    settled_charge_ids: tuple[str, ...] = ()
    last_processed: datetime | None = None

    @property
    def changed(self) -> bool:
        return bool(self.settled_charge_ids)


def append_comment(comment: str, addition: str) -> str:
    """Append a bracketed note to a charge comment without replacing it."""
    if not comment:
        return addition
    return f"{comment} [{addition}]"


def clear_schedule(charge: Charge) -> Charge:
    return replace(
        charge,
        scheduled_payment_date=None,
        scheduled_payment_amount=None,
        scheduled_payment_method=None,
        auto_pay_enabled=False,
    )


def apply_payment(
    charge: Charge,
    amount: Decimal,
    now: datetime,
    medium: PaymentMedium,
    method: PaymentMethod | None,
    id_prefix: str = "pmt",
) -> Charge:
    """Append a payment and reduce the balance, flooring it at zero."""
    payment = Payment(
        id=new_id(id_prefix),
        amount=amount,
        created_date=now,
        payment_medium=medium,
        payment_method=method,
    )
    return replace(
        charge,
        total_outstanding=max(Decimal("0.00"), charge.total_outstanding - amount),
        payments=charge.payments + (payment,),
    )


def is_payment_due(charge: Charge, now: datetime) -> bool:
    """True when an auto-pay charge's scheduled day is today or earlier."""
    if not charge.has_scheduled_payment or not charge.auto_pay_enabled:
        return False
    if charge.total_outstanding <= 0:
        return False
    return local_day(charge.scheduled_payment_date, now) <= local_day(now, now)


def settle_scheduled_payment(charge: Charge, now: datetime) -> Charge:
    amount = charge.scheduled_payment_amount or charge.total_outstanding
    scheduled_day = local_day(charge.scheduled_payment_date, now)
    paid = apply_payment(
        charge,
        amount,
        now,
        PaymentMedium.SCHEDULED_AUTO_PAY,
        charge.scheduled_payment_method,
        id_prefix="auto_pmt",
    )
    paid = replace(
        paid,
        comment=append_comment(
            charge.comment, f"Auto-payment processed on {format_date(scheduled_day)}"
        ),
    )
    return clear_schedule(paid)


def process_scheduled_payments(record: PatientRecord, now: datetime) -> ProcessingResult:
    """Settle every due auto-pay charge and return the new record.

    A charge is due when its scheduled date (truncated to the day, in the
    timezone of ``now``) is on or before today, auto-pay is enabled and a
    balance remains. Other charges pass through unchanged. No memo is
    written; the scheduling memo was written when the payment was set up.
    """
    now = ensure_aware(now)
    settled: list[str] = []
    charges = []
    for charge in record.charges:
        if is_payment_due(charge, now):
            charge = settle_scheduled_payment(charge, now)
            settled.append(charge.id)
            logger.info(
                "Auto-payment settled charge %s (outstanding now %s)",
                charge.id,
                charge.total_outstanding,
            )
        charges.append(charge)

    if not settled:
        return ProcessingResult(record=record)
    return ProcessingResult(
        record=replace(record, charges=tuple(charges)),
        settled_charge_ids=tuple(settled),
        last_processed=now,
    )


# --- Read-side helpers ---


def outstanding_charges(charges) -> list[Charge]:
    return [c for c in charges if c.total_outstanding > 0]


def charges_eligible_for_scheduling(charges) -> list[Charge]:
    """Outstanding charges without a pending scheduled payment."""
    return [c for c in outstanding_charges(charges) if not c.has_scheduled_payment]


def billing_totals(charges) -> dict[str, Decimal]:
    total_outstanding = sum((c.total_outstanding for c in charges), Decimal("0.00"))
    total_paid = sum((c.amount_paid for c in charges), Decimal("0.00"))
    return {"total_outstanding": total_outstanding, "total_paid": total_paid}


def is_charge_settled(charges_by_id: dict[str, Charge], charge_id: str) -> bool:
    charge = charges_by_id.get(charge_id)
    return charge is not None and charge.total_outstanding <= 0


def is_balance_alert_resolved(alert: Alert, charges) -> bool:
    """An OUTSTANDING_BALANCE alert is resolved once none of its charges owe money.

    Alerts that reference no charges, or reference charges missing from the
    record, are never considered resolved.
    """
    charge_ids = alert.referenced_charge_ids()
    if not charge_ids:
        return False
    by_id = {c.id: c for c in charges}
    return all(is_charge_settled(by_id, cid) for cid in charge_ids)


def scheduled_payment_status(charge: Charge, now: datetime) -> dict | None:
    """Classify a pending scheduled payment relative to today.

    Days are compared in the timezone of ``now``, as the processor does.

    Returns None when the charge has no scheduled payment, otherwise a dict
    with status (overdue/today/tomorrow/this-week/future), text and urgency.
    """
    if not charge.has_scheduled_payment:
        return None
    scheduled = local_day(charge.scheduled_payment_date, now)
    days = (scheduled - local_day(now, now)).days

    if days < 0:
        n = abs(days)
        return {
            "status": "overdue",
            "text": f"Scheduled payment was {n} day{'s' if n != 1 else ''} ago",
            "urgency": "high",
        }
    if days == 0:
        return {"status": "today", "text": "Scheduled payment today", "urgency": "high"}
    if days == 1:
        return {"status": "tomorrow", "text": "Scheduled payment tomorrow", "urgency": "medium"}
    if days <= 7:
        return {"status": "this-week", "text": f"Scheduled payment in {days} days", "urgency": "low"}
    return {
        "status": "future",
        "text": f"Scheduled payment on {format_date(scheduled)}",
        "urgency": "low",
    }


def scheduled_payment_stats(charges, now: datetime) -> dict:
    """Summarize pending scheduled payments on outstanding charges."""
    pending = [c for c in outstanding_charges(charges) if c.has_scheduled_payment]
    today = local_day(now, now)
    days = [(local_day(c.scheduled_payment_date, now) - today).days for c in pending]
    return {
        "total": len(pending),
        "upcoming": sum(1 for d in days if d > 0),
        "today": sum(1 for d in days if d == 0),
        "this_week": sum(1 for d in days if 0 <= d <= 7),
        "total_amount": sum(
            (c.scheduled_payment_amount or c.total_outstanding for c in pending),
            Decimal("0.00"),
        ),
        "auto_pay_count": sum(1 for c in pending if c.auto_pay_enabled),
        "charge_ids": [c.id for c in pending],
    }


def charge_details(charge: Charge, now: datetime) -> dict:
    """Payment-plan and ageing facts shown next to a charge."""
    has_plan = bool(charge.planned_payments)
    days_old = 0
    if charge.created_date is not None:
        days_old = (ensure_aware(now) - charge.created_date) // timedelta(days=1)
    return {
        "has_payment_plan": has_plan,
        "days_overdue": days_old,
        "is_overdue": days_old > OVERDUE_AFTER_DAYS,
        "next_payment_date": charge.planned_payments[0].payment_date if has_plan else None,
    }
