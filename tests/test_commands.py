"""Tests for chartdesk.commands — the pure command handlers."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from chartdesk.commands import (
    AddMemo,
    CancelAppointment,
    ChargeNow,
    CommandContext,
    DismissAlert,
    RescheduleAppointment,
    SchedulePayment,
    apply_command,
)
from chartdesk.errors import EmptyInput, InvalidSelection, NotModifiable
from chartdesk.models import (
    OUTSTANDING_BALANCE,
    Alert,
    Charge,
    ChargeStatus,
    EventStatus,
    PaymentMedium,
    PersonRef,
)
from chartdesk.view_state import active_alerts

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def ctx():
    return CommandContext(now=NOW)


class TestChargeNow:
    def test_scenario_a(self, sample_record, ctx):
        """250 total with 50 outstanding ends PAID with one new 50 payment."""
        before = sample_record.charge("ch_consult")
        record = apply_command(sample_record, ChargeNow(charge_ids=("ch_consult",)), ctx)
        charge = record.charge("ch_consult")

        assert charge.total == Decimal("250.00")
        assert charge.total_outstanding == Decimal("0.00")
        assert charge.status == ChargeStatus.PAID
        assert len(charge.payments) == len(before.payments) + 1
        assert charge.payments[-1].amount == Decimal("50.00")
        assert charge.payments[-1].payment_medium == PaymentMedium.CARD

    def test_uses_default_method(self, sample_record, ctx, visa):
        record = apply_command(sample_record, ChargeNow(charge_ids=("ch_renewal",)), ctx)
        assert record.charge("ch_renewal").payments[-1].payment_method == visa

    def test_explicit_method(self, sample_record, ctx, bank):
        cmd = ChargeNow(charge_ids=("ch_renewal",), payment_method_id="pm_bank")
        record = apply_command(sample_record, cmd, ctx)
        assert record.charge("ch_renewal").payments[-1].payment_method == bank

    def test_payment_plan_cleared_with_note(self, sample_record, ctx):
        record = apply_command(sample_record, ChargeNow(charge_ids=("ch_consult",)), ctx)
        charge = record.charge("ch_consult")
        assert charge.planned_payments == ()
        assert charge.comment == (
            "Charge paid in full - payment plan cancelled. "
            "Original comment: Patient requested payment plan for remaining balance"
        )

    def test_comment_kept_without_plan(self, sample_record, ctx):
        record = apply_command(sample_record, ChargeNow(charge_ids=("ch_renewal",)), ctx)
        assert record.charge("ch_renewal").comment == ""

    def test_pending_schedule_cleared(self, sample_record, ctx):
        record = apply_command(sample_record, ChargeNow(charge_ids=("ch_lab",)), ctx)
        charge = record.charge("ch_lab")
        assert charge.total_outstanding == Decimal("0.00")
        assert not charge.has_scheduled_payment
        assert charge.auto_pay_enabled is False

    def test_no_memo_by_default(self, sample_record, ctx):
        record = apply_command(sample_record, ChargeNow(charge_ids=("ch_renewal",)), ctx)
        assert record.memos == sample_record.memos

    def test_memo_when_configured(self, sample_record):
        ctx = CommandContext(now=NOW, memo_on_charge_now=True)
        record = apply_command(sample_record, ChargeNow(charge_ids=("ch_renewal", "ch_consult")), ctx)
        assert len(record.memos) == 2
        assert record.memos[0].note == "Card payment: 2 charges paid in full ($135.00) with Visa ****4242."

    def test_scenario_d_partial_keeps_alert(self, sample_record, ctx):
        """Paying one of the two charges behind a balance alert leaves it active."""
        record = apply_command(sample_record, ChargeNow(charge_ids=("ch_consult",)), ctx)
        assert "alrt_balance" in [a.id for a in record.alerts]
        assert "alrt_balance" in [a.id for a in active_alerts(record)]

    def test_scenario_d_paying_both_resolves_alert(self, sample_record, ctx):
        record = apply_command(sample_record, ChargeNow(charge_ids=("ch_consult",)), ctx)
        record = apply_command(record, ChargeNow(charge_ids=("ch_renewal",)), ctx)
        assert "alrt_balance" not in [a.id for a in record.alerts]
        assert "alrt_balance" not in [a.id for a in active_alerts(record)]
        assert [a.id for a in record.alerts] == ["alrt_form", "alrt_message"]

    def test_empty_selection_rejected(self, sample_record, ctx):
        with pytest.raises(InvalidSelection, match="No charges selected"):
            apply_command(sample_record, ChargeNow(charge_ids=()), ctx)

    def test_zero_balance_rejected(self, sample_record, ctx):
        with pytest.raises(InvalidSelection, match="no outstanding balance"):
            apply_command(sample_record, ChargeNow(charge_ids=("ch_renewal", "ch_followup")), ctx)

    def test_unknown_charge_rejected(self, sample_record, ctx):
        with pytest.raises(InvalidSelection, match="Unknown charge"):
            apply_command(sample_record, ChargeNow(charge_ids=("ch_missing",)), ctx)

    def test_unknown_method_rejected(self, sample_record, ctx):
        with pytest.raises(InvalidSelection, match="Unknown payment method"):
            apply_command(sample_record, ChargeNow(charge_ids=("ch_renewal",), payment_method_id="pm_x"), ctx)

    def test_no_default_method_rejected(self, sample_record, ctx, bank):
        record = replace(sample_record, payment_methods=(bank,))
        with pytest.raises(InvalidSelection, match="No default payment method"):
            apply_command(record, ChargeNow(charge_ids=("ch_renewal",)), ctx)

    def test_duplicate_ids_paid_once(self, sample_record, ctx):
        record = apply_command(sample_record, ChargeNow(charge_ids=("ch_renewal", "ch_renewal")), ctx)
        assert len(record.charge("ch_renewal").payments) == 1

    def test_input_record_unchanged(self, sample_record, ctx):
        before = sample_record.charge("ch_consult")
        apply_command(sample_record, ChargeNow(charge_ids=("ch_consult",)), ctx)
        assert sample_record.charge("ch_consult") is before
        assert before.total_outstanding == Decimal("50.00")


class TestSchedulePayment:
    def _cmd(self, *ids, **kw):
        kw.setdefault("scheduled_date", "2026-10-25")
        kw.setdefault("scheduled_time", "14:30")
        return SchedulePayment(charge_ids=ids, **kw)

    def test_sets_schedule_fields(self, sample_record, ctx, visa):
        record = apply_command(sample_record, self._cmd("ch_consult", "ch_renewal"), ctx)
        for cid, amount in (("ch_consult", "50.00"), ("ch_renewal", "85.00")):
            charge = record.charge(cid)
            assert charge.scheduled_payment_date == datetime(2026, 10, 25, 14, 30, tzinfo=timezone.utc)
            assert charge.scheduled_payment_amount == Decimal(amount)
            assert charge.scheduled_payment_method == visa
            assert charge.auto_pay_enabled is True
            assert charge.total_outstanding == Decimal(amount)

    def test_appends_comment(self, sample_record, ctx):
        record = apply_command(sample_record, self._cmd("ch_consult", "ch_renewal"), ctx)
        assert record.charge("ch_renewal").comment == "Scheduled payment: 10/25/2026 2:30 PM"
        assert record.charge("ch_consult").comment == (
            "Patient requested payment plan for remaining balance [Scheduled payment: 10/25/2026 2:30 PM]"
        )

    def test_memo(self, sample_record, ctx):
        record = apply_command(sample_record, self._cmd("ch_consult", "ch_renewal"), ctx)
        memo = record.memos[0]
        assert memo.note == (
            "Scheduled payment setup: 2 charges (Initial Consultation, Prescription Renewal) "
            "for 10/25/2026 at 2:30 PM. Total amount: $135.00. Auto-pay: Enabled."
        )
        assert memo.created_date == NOW
        assert memo.patient.id == "pt_sarah"
        assert memo.creator.full_name == "Current Provider"
        assert record.memos[1:] == sample_record.memos

    def test_auto_pay_disabled(self, sample_record, ctx):
        record = apply_command(sample_record, self._cmd("ch_renewal", auto_pay_enabled=False), ctx)
        assert record.charge("ch_renewal").auto_pay_enabled is False
        assert record.memos[0].note.endswith("Auto-pay: Disabled.")
        assert "1 charge (Prescription Renewal)" in record.memos[0].note

    def test_amount_override(self, sample_record, ctx):
        cmd = self._cmd("ch_renewal", amounts={"ch_renewal": Decimal("25")})
        record = apply_command(sample_record, cmd, ctx)
        assert record.charge("ch_renewal").scheduled_payment_amount == Decimal("25.00")
        assert "Total amount: $25.00" in record.memos[0].note

    def test_amount_override_above_balance_ignored(self, sample_record, ctx):
        cmd = self._cmd("ch_renewal", amounts={"ch_renewal": Decimal("500")})
        record = apply_command(sample_record, cmd, ctx)
        assert record.charge("ch_renewal").scheduled_payment_amount == Decimal("85.00")

    def test_picker_formats(self, sample_record, ctx):
        cmd = self._cmd("ch_renewal", scheduled_date="10/25/2026", scheduled_time="2:30 PM")
        record = apply_command(sample_record, cmd, ctx)
        assert record.charge("ch_renewal").scheduled_payment_date == datetime(
            2026, 10, 25, 14, 30, tzinfo=timezone.utc
        )

    def test_past_date_accepted(self, sample_record, ctx):
        record = apply_command(sample_record, self._cmd("ch_renewal", scheduled_date="2026-10-01"), ctx)
        assert record.charge("ch_renewal").has_scheduled_payment

    def test_already_scheduled_rejected(self, sample_record, ctx):
        with pytest.raises(InvalidSelection, match="already has a scheduled payment"):
            apply_command(sample_record, self._cmd("ch_renewal", "ch_lab"), ctx)

    def test_zero_balance_rejected(self, sample_record, ctx):
        with pytest.raises(InvalidSelection):
            apply_command(sample_record, self._cmd("ch_followup"), ctx)

    def test_empty_selection_rejected(self, sample_record, ctx):
        with pytest.raises(InvalidSelection):
            apply_command(sample_record, self._cmd(), ctx)

    def test_bad_date_rejected(self, sample_record, ctx):
        with pytest.raises(InvalidSelection, match="Invalid scheduled date/time"):
            apply_command(sample_record, self._cmd("ch_renewal", scheduled_date="someday"), ctx)

    def test_bad_time_rejected(self, sample_record, ctx):
        with pytest.raises(InvalidSelection):
            apply_command(sample_record, self._cmd("ch_renewal", scheduled_time=""), ctx)

    def test_rejection_leaves_record(self, sample_record, ctx):
        snapshot = sample_record
        with pytest.raises(InvalidSelection):
            apply_command(sample_record, self._cmd("ch_renewal", "ch_lab"), ctx)
        assert sample_record == snapshot
        assert not sample_record.charge("ch_renewal").has_scheduled_payment


class TestRescheduleAppointment:
    def test_scenario_c(self, sample_record, ctx):
        """Tomorrow's appointment moved two days later keeps its duration and is confirmed."""
        old = sample_record.event("evt_followup")
        new_start = old.start + timedelta(days=2)
        record = apply_command(sample_record, RescheduleAppointment("evt_followup", new_start), ctx)
        moved = record.event("evt_followup")

        assert moved.start == new_start
        assert moved.status == EventStatus.CONFIRMED
        assert moved.end - moved.start == old.end - old.start

    def test_rescheduled_status_becomes_confirmed(self, sample_record, ctx):
        new_start = datetime(2026, 11, 21, 9, 0, tzinfo=timezone.utc)
        record = apply_command(sample_record, RescheduleAppointment("evt_physical", new_start), ctx)
        assert record.event("evt_physical").status == EventStatus.CONFIRMED

    def test_memo(self, sample_record, ctx):
        new_start = datetime(2026, 10, 22, 15, 0, tzinfo=timezone.utc)
        record = apply_command(sample_record, RescheduleAppointment("evt_followup", new_start), ctx)
        assert record.memos[0].note == (
            'Appointment "Allergy Follow-up" rescheduled from 10/20/2026 3:00 PM to 10/22/2026 3:00 PM'
        )

    def test_memo_creator_from_context(self, sample_record):
        actor = PersonRef(id="usr_chen", first_name="Emily", last_name="Chen")
        ctx = CommandContext(now=NOW, actor=actor)
        new_start = datetime(2026, 10, 22, 15, 0, tzinfo=timezone.utc)
        record = apply_command(sample_record, RescheduleAppointment("evt_followup", new_start), ctx)
        assert record.memos[0].creator == actor

    def test_completed_rejected(self, sample_record, ctx):
        with pytest.raises(NotModifiable):
            apply_command(sample_record, RescheduleAppointment("evt_past", NOW + timedelta(days=3)), ctx)

    def test_cancelled_rejected(self, sample_record, ctx):
        with pytest.raises(NotModifiable):
            apply_command(sample_record, RescheduleAppointment("evt_cancelled", NOW + timedelta(days=3)), ctx)

    def test_started_rejected(self, sample_record):
        event = sample_record.event("evt_followup")
        ctx = CommandContext(now=event.start)
        with pytest.raises(NotModifiable):
            apply_command(sample_record, RescheduleAppointment("evt_followup", NOW + timedelta(days=3)), ctx)

    def test_unknown_event_rejected(self, sample_record, ctx):
        with pytest.raises(InvalidSelection, match="Unknown event"):
            apply_command(sample_record, RescheduleAppointment("evt_nope", NOW), ctx)


class TestCancelAppointment:
    def test_cancels(self, sample_record, ctx):
        old = sample_record.event("evt_followup")
        record = apply_command(sample_record, CancelAppointment("evt_followup", "Patient is travelling"), ctx)
        event = record.event("evt_followup")
        assert event.status == EventStatus.CANCELLED
        assert event.start == old.start
        assert event.end == old.end

    def test_memo(self, sample_record, ctx):
        record = apply_command(sample_record, CancelAppointment("evt_followup", "  Patient is travelling "), ctx)
        assert record.memos[0].note == (
            'Appointment "Allergy Follow-up" cancelled. Reason: Patient is travelling. '
            "Original date: 10/20/2026 3:00 PM"
        )

    def test_blank_reason_rejected(self, sample_record, ctx):
        with pytest.raises(EmptyInput):
            apply_command(sample_record, CancelAppointment("evt_followup", "   "), ctx)

    def test_terminal_checked_before_reason(self, sample_record, ctx):
        with pytest.raises(NotModifiable):
            apply_command(sample_record, CancelAppointment("evt_past", ""), ctx)

    def test_cancel_twice_rejected(self, sample_record, ctx):
        record = apply_command(sample_record, CancelAppointment("evt_followup", "Conflict"), ctx)
        with pytest.raises(NotModifiable):
            apply_command(record, CancelAppointment("evt_followup", "Conflict"), ctx)


class TestAddMemo:
    def test_prepends_memo(self, sample_record, ctx):
        record = apply_command(sample_record, AddMemo("  Called patient about refill. "), ctx)
        assert record.memos[0].note == "Called patient about refill."
        assert record.memos[0].id.startswith("memo_")
        assert record.memos[1:] == sample_record.memos
        assert record.charges is sample_record.charges
        assert record.events is sample_record.events

    def test_blank_rejected(self, sample_record, ctx):
        with pytest.raises(EmptyInput, match="empty"):
            apply_command(sample_record, AddMemo(" \n "), ctx)


class TestDispatch:
    def test_dismiss_alert_is_not_a_record_command(self, sample_record, ctx):
        with pytest.raises(TypeError):
            apply_command(sample_record, DismissAlert("alrt_form"), ctx)

    def test_rejection_carries_code(self, sample_record, ctx):
        with pytest.raises(InvalidSelection) as exc_info:
            apply_command(sample_record, ChargeNow(charge_ids=()), ctx)
        assert exc_info.value.to_dict() == {
            "code": "INVALID_SELECTION",
            "command": "ChargeNow",
            "message": "No charges selected",
        }

    def test_alert_with_unknown_charge_survives_charge_now(self, sample_record, ctx):
        orphan = Alert(
            id="alrt_orphan",
            type=OUTSTANDING_BALANCE,
            created_date=NOW,
            data={"charges": [{"id": "ch_renewal"}, {"id": "ch_deleted"}]},
        )
        record = replace(sample_record, alerts=sample_record.alerts + (orphan,))
        record = apply_command(record, ChargeNow(charge_ids=("ch_renewal",)), ctx)
        assert "alrt_orphan" in [a.id for a in record.alerts]

    def test_charges_remain_valid(self, sample_record, ctx):
        record = apply_command(sample_record, ChargeNow(charge_ids=("ch_consult", "ch_renewal", "ch_lab")), ctx)
        for charge in record.charges:
            assert isinstance(charge, Charge)
            assert 0 <= charge.total_outstanding <= charge.total
