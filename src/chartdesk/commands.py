"""Command handlers — one pure function per dashboard action.

Each handler takes the current record, a command and a CommandContext and
returns a brand-new PatientRecord. All validation happens before any new
state is built, so a rejected command (a CommandRejected exception) leaves
nothing half-applied. Handlers never perform I/O.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal

from chartdesk.appointments import can_modify, move, transition
from chartdesk.billing import (
    append_comment,
    apply_payment,
    clear_schedule,
    is_balance_alert_resolved,
)
from chartdesk.core.utils import (
    combine_date_time,
    ensure_aware,
    format_date,
    format_datetime,
    format_money,
    format_time,
    new_id,
    to_money,
)
from chartdesk.errors import EmptyInput, InvalidSelection, NotModifiable
from chartdesk.models import (
    OUTSTANDING_BALANCE,
    Charge,
    Event,
    EventStatus,
    Memo,
    PatientRecord,
    PaymentMedium,
    PaymentMethod,
    PersonRef,
)

logger = logging.getLogger(__name__)

DEFAULT_ACTOR = PersonRef(
    id="usr_current_provider",
    first_name="Current",
    last_name="Provider",
    email="provider@chartdesk.local",
)


@dataclass(frozen=True)
class CommandContext:
    """Everything a handler needs besides the record and the command."""

    now: datetime
    actor: PersonRef = DEFAULT_ACTOR
    memo_on_charge_now: bool = False


# --- Commands ---


@dataclass(frozen=True)
class SchedulePayment:
    charge_ids: tuple[str, ...]
    scheduled_date: str  # date-picker value, e.g. "2026-10-20"
    scheduled_time: str  # time-picker value, e.g. "14:30"
    payment_method_id: str = ""  # empty = patient's default method
    auto_pay_enabled: bool = True
    amounts: dict[str, Decimal] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class ChargeNow:
    charge_ids: tuple[str, ...]
    payment_method_id: str = ""


@dataclass(frozen=True)
class RescheduleAppointment:
    event_id: str
    new_start: datetime


@dataclass(frozen=True)
class CancelAppointment:
    event_id: str
    reason: str


@dataclass(frozen=True)
class AddMemo:
    text: str


@dataclass(frozen=True)
class DismissAlert:
    """Session-only: handled by the overlay, never by the record."""

    alert_id: str


# --- Helpers ---


def _synthesize_memo(record: PatientRecord, note: str, ctx: CommandContext, prefix: str) -> Memo:
    now = ensure_aware(ctx.now)
    return Memo(
        id=new_id(prefix),
        note=note,
        created_date=now,
        updated_date=now,
        patient=record.patient.ref(),
        creator=ctx.actor,
    )


def _prepend_memo(record: PatientRecord, memo: Memo) -> PatientRecord:
    return replace(record, memos=(memo,) + record.memos)


def _unique(ids) -> tuple[str, ...]:
    return tuple(dict.fromkeys(ids))


def _select_charges(record: PatientRecord, charge_ids, command: str) -> list[Charge]:
    """Resolve charge ids to outstanding charges or reject the whole selection."""
    ids = _unique(charge_ids)
    if not ids:
        raise InvalidSelection("No charges selected", command)
    selected = []
    for cid in ids:
        charge = record.charge(cid)
        if charge is None:
            raise InvalidSelection(f"Unknown charge: {cid}", command)
        if charge.total_outstanding <= 0:
            raise InvalidSelection(f"Charge {cid} has no outstanding balance", command)
        selected.append(charge)
    return selected


def _resolve_payment_method(record: PatientRecord, method_id: str, command: str) -> PaymentMethod:
    if method_id:
        method = record.payment_method(method_id)
        if method is None:
            raise InvalidSelection(f"Unknown payment method: {method_id}", command)
        return method
    method = record.default_payment_method
    if method is None:
        raise InvalidSelection("No default payment method on file", command)
    return method


def _modifiable_event(record: PatientRecord, event_id: str, now: datetime, command: str) -> Event:
    event = record.event(event_id)
    if event is None:
        raise InvalidSelection(f"Unknown event: {event_id}", command)
    if not can_modify(event, now):
        raise NotModifiable(
            f"Event {event_id} is {event.status.value.lower()} or already started", command
        )
    return event


def _scheduled_amount(charge: Charge, override) -> Decimal:
    """Use an explicit per-charge amount when it is positive and within the balance."""
    if override is None:
        return charge.total_outstanding
    amount = to_money(override)
    if 0 < amount <= charge.total_outstanding:
        return amount
    return charge.total_outstanding


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'s' if n != 1 else ''}"


# --- Handlers ---


def schedule_payment(record: PatientRecord, cmd: SchedulePayment, ctx: CommandContext) -> PatientRecord:
    """Attach a scheduled (optionally automatic) payment to each selected charge."""
    name = "SchedulePayment"
    now = ensure_aware(ctx.now)
    selected = _select_charges(record, cmd.charge_ids, name)
    for charge in selected:
        if charge.has_scheduled_payment:
            raise InvalidSelection(f"Charge {charge.id} already has a scheduled payment", name)
    try:
        when = combine_date_time(cmd.scheduled_date, cmd.scheduled_time, now.tzinfo)
    except ValueError as e:
        raise InvalidSelection(f"Invalid scheduled date/time: {e}", name) from e
    method = _resolve_payment_method(record, cmd.payment_method_id, name)
    try:
        amounts = {c.id: _scheduled_amount(c, cmd.amounts.get(c.id)) for c in selected}
    except ValueError as e:
        raise InvalidSelection(str(e), name) from e

    stamp = f"{format_date(when)} {format_time(when)}"
    updated = {}
    for charge in selected:
        updated[charge.id] = replace(
            charge,
            scheduled_payment_date=when,
            scheduled_payment_amount=amounts[charge.id],
            scheduled_payment_method=method,
            auto_pay_enabled=cmd.auto_pay_enabled,
            comment=append_comment(charge.comment, f"Scheduled payment: {stamp}"),
        )
    charges = tuple(updated.get(c.id, c) for c in record.charges)

    total = sum(amounts.values(), Decimal("0.00"))
    descriptions = ", ".join(c.description or "Unknown charge" for c in selected)
    note = (
        f"Scheduled payment setup: {_plural(len(selected), 'charge')} ({descriptions}) "
        f"for {format_date(when)} at {format_time(when)}. "
        f"Total amount: {format_money(total)}. "
        f"Auto-pay: {'Enabled' if cmd.auto_pay_enabled else 'Disabled'}."
    )
    logger.info("Scheduled %s for %s on %s", format_money(total), list(updated), when.isoformat())
    new_record = replace(record, charges=charges)
    return _prepend_memo(new_record, _synthesize_memo(record, note, ctx, "memo_schedule"))


def charge_now(record: PatientRecord, cmd: ChargeNow, ctx: CommandContext) -> PatientRecord:
    """Pay the full outstanding balance of each selected charge by card.

    Paid charges leave any payment plan and any pending scheduled payment.
    OUTSTANDING_BALANCE alerts whose charges are now all settled are removed.
    """
    name = "ChargeNow"
    now = ensure_aware(ctx.now)
    selected = _select_charges(record, cmd.charge_ids, name)
    method = _resolve_payment_method(record, cmd.payment_method_id, name)

    updated = {}
    paid_total = Decimal("0.00")
    for charge in selected:
        paid_total += charge.total_outstanding
        paid = apply_payment(charge, charge.total_outstanding, now, PaymentMedium.CARD, method)
        comment = charge.comment
        if charge.planned_payments:
            comment = (
                "Charge paid in full - payment plan cancelled. "
                f"Original comment: {charge.comment or 'None'}"
            )
        updated[charge.id] = clear_schedule(replace(paid, planned_payments=(), comment=comment))
    charges = tuple(updated.get(c.id, c) for c in record.charges)

    alerts = tuple(
        a
        for a in record.alerts
        if not (a.type == OUTSTANDING_BALANCE and is_balance_alert_resolved(a, charges))
    )
    removed = len(record.alerts) - len(alerts)
    logger.info(
        "Charged %s to %s for %s (%d alert(s) resolved)",
        format_money(paid_total),
        method.label,
        list(updated),
        removed,
    )
    new_record = replace(record, charges=charges, alerts=alerts)
    if ctx.memo_on_charge_now:
        note = (
            f"Card payment: {_plural(len(selected), 'charge')} paid in full "
            f"({format_money(paid_total)}) with {method.label}."
        )
        new_record = _prepend_memo(new_record, _synthesize_memo(record, note, ctx, "memo_payment"))
    return new_record


def reschedule_appointment(
    record: PatientRecord, cmd: RescheduleAppointment, ctx: CommandContext
) -> PatientRecord:
    """Move an upcoming appointment, keeping its duration, and confirm it."""
    name = "RescheduleAppointment"
    now = ensure_aware(ctx.now)
    event = _modifiable_event(record, cmd.event_id, now, name)
    moved = move(event, cmd.new_start)

    old_local = event.start.astimezone(now.tzinfo)
    new_local = moved.start.astimezone(now.tzinfo)
    note = (
        f'Appointment "{event.title}" rescheduled from '
        f"{format_datetime(old_local)} to {format_datetime(new_local)}"
    )
    events = tuple(moved if e.id == event.id else e for e in record.events)
    logger.info("Rescheduled event %s to %s", event.id, moved.start.isoformat())
    new_record = replace(record, events=events)
    return _prepend_memo(new_record, _synthesize_memo(record, note, ctx, "memo_reschedule"))


def cancel_appointment(record: PatientRecord, cmd: CancelAppointment, ctx: CommandContext) -> PatientRecord:
    """Cancel an upcoming appointment, recording the reason."""
    name = "CancelAppointment"
    now = ensure_aware(ctx.now)
    event = _modifiable_event(record, cmd.event_id, now, name)
    reason = (cmd.reason or "").strip()
    if not reason:
        raise EmptyInput("A cancellation reason is required", name)

    cancelled = transition(event, EventStatus.CANCELLED)
    note = (
        f'Appointment "{event.title}" cancelled. Reason: {reason}. '
        f"Original date: {format_datetime(event.start.astimezone(now.tzinfo))}"
    )
    events = tuple(cancelled if e.id == event.id else e for e in record.events)
    logger.info("Cancelled event %s", event.id)
    new_record = replace(record, events=events)
    return _prepend_memo(new_record, _synthesize_memo(record, note, ctx, "memo_cancel"))


def add_memo(record: PatientRecord, cmd: AddMemo, ctx: CommandContext) -> PatientRecord:
    text = (cmd.text or "").strip()
    if not text:
        raise EmptyInput("Memo text is empty", "AddMemo")
    return _prepend_memo(record, _synthesize_memo(record, text, ctx, "memo"))


HANDLERS = {
    SchedulePayment: schedule_payment,
    ChargeNow: charge_now,
    RescheduleAppointment: reschedule_appointment,
    CancelAppointment: cancel_appointment,
    AddMemo: add_memo,
}


def apply_command(record: PatientRecord, command, ctx: CommandContext) -> PatientRecord:
    """Dispatch a record-changing command to its handler."""
    handler = HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"No record handler for {type(command).__name__}")
    return handler(record, command, ctx)
