"""MCP server for chartdesk — read dashboard views and apply record commands.

Run with: python -m chartdesk.mcp.server
Configure env: CHARTDESK_DB=/path/to/chartdesk.db
               CHARTDESK_CONFIG=/path/to/chartdesk.toml
"""

from __future__ import annotations

import os

from mcp.server.fastmcp import FastMCP

from chartdesk.appointments import appointment_stats, can_modify
from chartdesk.billing import (
    billing_totals,
    charge_details,
    outstanding_charges,
    scheduled_payment_stats,
    scheduled_payment_status,
)
from chartdesk.commands import (
    AddMemo,
    CancelAppointment,
    ChargeNow,
    RescheduleAppointment,
    SchedulePayment,
)
from chartdesk.config import DEFAULT_CONFIG_PATH, load_config
from chartdesk.core.utils import parse_timestamp, to_money, utc_now
from chartdesk.db import ChartdeskDB
from chartdesk.errors import LoadFailure
from chartdesk.serialize import to_dict
from chartdesk.session import PatientSession
from chartdesk.sources import DatabaseSink, DatabaseSource
from chartdesk.summary import generate_summary

DB_PATH = os.environ.get("CHARTDESK_DB", "chartdesk.db")
CONFIG_PATH = os.environ.get("CHARTDESK_CONFIG", DEFAULT_CONFIG_PATH)

mcp = FastMCP(
    "chartdesk",
    instructions=(
        "Patient dashboard server over a SQLite store of patient records "
        "(charges, appointments, doctor's notes, memos and alerts).\n\n"
        "Key capabilities:\n"
        "- list_patients / get_record_summary: Find patients and see collection counts\n"
        "- get_view_state: Which dashboard sections auto-expand and carry badges\n"
        "- get_billing_overview: Outstanding charges, scheduled payments and totals\n"
        "- get_appointments: Upcoming appointments and whether each can be modified\n"
        "- get_memos / get_clinical_summary: Audit memos and the non-financial summary\n"
        "- get_history: Stored snapshots and the command log\n"
        "- schedule_payment / charge_now / reschedule_appointment / "
        "cancel_appointment / add_memo: Record commands; each returns ok or an error code\n\n"
        "Timestamps are ISO-8601. Pass `now` to evaluate against a fixed clock; "
        "leave it empty for the current time. Scheduled auto-payments that are due "
        "are settled whenever a record is opened."
    ),
)


def _get_db() -> ChartdeskDB:
    db = ChartdeskDB(DB_PATH)
    db.init_schema()
    return db


def _now(now: str):
    return parse_timestamp(now) if now else utc_now()


def _open(db: ChartdeskDB, patient_id: str, now, reason: str) -> PatientSession:
    return PatientSession.open(
        DatabaseSource(db, patient_id),
        now=now,
        sink=DatabaseSink(db, reason=reason),
        config=load_config(CONFIG_PATH),
    )


def _run(patient_id: str, command, now: str) -> dict | str:
    db = _get_db()
    try:
        ts = _now(now)
        name = type(command).__name__
        session = _open(db, patient_id, ts, f"mcp:{name}")
        result = session.execute(command, ts)
        if not result.ok:
            db.log_command(patient_id, name, "rejected", result.error.code, result.error.message)
            return result.to_dict()
        db.log_command(patient_id, name, "ok")
        out = result.to_dict()
        if result.record.memos and result.record.memos[0].created_date == ts:
            out["memo"] = result.record.memos[0].note
        return out
    except (LoadFailure, ValueError) as e:
        return f"Error: {e}"
    finally:
        db.close()


@mcp.tool()
def list_patients() -> list[dict]:
    """List all patients with a stored record."""
    db = _get_db()
    try:
        return db.patients()
    finally:
        db.close()


@mcp.tool()
def get_record_summary(patient_id: str) -> dict | str:
    """Collection counts and latest snapshot info for one patient."""
    db = _get_db()
    try:
        record = db.load_record(patient_id)
        if record is None:
            return f"Error: No record stored for patient {patient_id}"
        history = db.history(patient_id)
        return {
            "patient": to_dict(record.patient.ref()),
            "counts": record.counts(),
            "snapshots": len(history),
            "last_saved": history[0]["saved_at"] if history else None,
        }
    finally:
        db.close()


@mcp.tool()
def get_view_state(patient_id: str, dismissed_alert_ids: str = "", summary_viewed: bool = False,
                   now: str = "") -> dict | str:
    """Per-section auto-expand and notification flags for the dashboard.

    Args:
        patient_id: Patient id.
        dismissed_alert_ids: Comma-separated alert ids dismissed this session.
        summary_viewed: Whether the AI summary has been opened.
        now: ISO-8601 timestamp to evaluate at. Empty = current time.
    """
    db = _get_db()
    try:
        ts = _now(now)
        session = _open(db, patient_id, ts, "mcp:view")
        for alert_id in filter(None, (a.strip() for a in dismissed_alert_ids.split(","))):
            session.dismiss_alert(alert_id)
        if summary_viewed:
            session.mark_summary_viewed()
        return session.view_state(ts).to_dict()
    except (LoadFailure, ValueError) as e:
        return f"Error: {e}"
    finally:
        db.close()


@mcp.tool()
def get_billing_overview(patient_id: str, now: str = "") -> dict | str:
    """Outstanding charges with scheduling status, plus billing and scheduled-payment totals."""
    db = _get_db()
    try:
        ts = _now(now)
        record = _open(db, patient_id, ts, "mcp:billing").record
        charges = []
        for c in outstanding_charges(record.charges):
            charges.append({
                "id": c.id,
                "description": c.description,
                "total": str(c.total),
                "total_outstanding": str(c.total_outstanding),
                "status": c.status.value,
                "scheduled": scheduled_payment_status(c, ts),
                "auto_pay_enabled": c.auto_pay_enabled,
                **{k: (v.isoformat() if hasattr(v, "isoformat") else v)
                   for k, v in charge_details(c, ts).items()},
            })
        totals = billing_totals(record.charges)
        stats = scheduled_payment_stats(record.charges, ts)
        stats["total_amount"] = str(stats["total_amount"])
        return {
            "total_outstanding": str(totals["total_outstanding"]),
            "total_paid": str(totals["total_paid"]),
            "outstanding_charges": charges,
            "scheduled_payments": stats,
            "payment_methods": [
                {"id": m.id, "label": m.label, "is_default": m.is_default}
                for m in record.payment_methods
            ],
        }
    except (LoadFailure, ValueError) as e:
        return f"Error: {e}"
    finally:
        db.close()


@mcp.tool()
def get_appointments(patient_id: str, now: str = "") -> dict | str:
    """All appointments with status and whether each can still be rescheduled or cancelled."""
    db = _get_db()
    try:
        ts = _now(now)
        session = _open(db, patient_id, ts, "mcp:appointments")
        record = session.record
        stats = appointment_stats(record.events, ts, session.upcoming_window)
        return {
            "upcoming": stats["total"],
            "this_week": stats["this_week"],
            "next_event_id": stats["next"].id if stats["next"] else None,
            "events": [
                {
                    "id": e.id,
                    "title": e.title,
                    "start": e.start.isoformat(),
                    "end": e.end.isoformat(),
                    "status": e.status.value,
                    "can_modify": can_modify(e, ts),
                }
                for e in sorted(record.events, key=lambda e: e.start)
            ],
        }
    except (LoadFailure, ValueError) as e:
        return f"Error: {e}"
    finally:
        db.close()


@mcp.tool()
def get_memos(patient_id: str, limit: int = 20) -> list[dict] | str:
    """Audit memos, most recent first."""
    db = _get_db()
    try:
        record = db.load_record(patient_id)
        if record is None:
            return f"Error: No record stored for patient {patient_id}"
        return [to_dict(m) for m in record.memos[:limit]]
    finally:
        db.close()


@mcp.tool()
def get_clinical_summary(patient_id: str, now: str = "") -> dict | str:
    """Non-financial clinical summary text and insights."""
    db = _get_db()
    try:
        record = db.load_record(patient_id)
        if record is None:
            return f"Error: No record stored for patient {patient_id}"
        return generate_summary(record, _now(now)).to_dict()
    except ValueError as e:
        return f"Error: {e}"
    finally:
        db.close()


@mcp.tool()
def get_history(patient_id: str, limit: int = 50) -> dict:
    """Stored snapshots (newest first) and the command log."""
    db = _get_db()
    try:
        return {
            "snapshots": db.history(patient_id)[:limit],
            "commands": db.command_log(patient_id, limit),
        }
    finally:
        db.close()


@mcp.tool()
def schedule_payment(
    patient_id: str,
    charge_ids: list[str],
    scheduled_date: str,
    scheduled_time: str,
    payment_method_id: str = "",
    auto_pay_enabled: bool = True,
    amounts: dict[str, str] | None = None,
    now: str = "",
) -> dict | str:
    """Schedule a payment for one or more outstanding charges.

    Args:
        patient_id: Patient id.
        charge_ids: Charges to schedule; each must have a balance and no pending schedule.
        scheduled_date: Date such as "2026-10-20" or "10/20/2026".
        scheduled_time: Time such as "14:30" or "2:30 PM".
        payment_method_id: Stored method id. Empty = the patient's default method.
        auto_pay_enabled: Settle automatically when the date arrives.
        amounts: Optional per-charge amounts, e.g. {"ch_1": "25.00"}.
        now: ISO-8601 timestamp to evaluate at. Empty = current time.
    """
    try:
        parsed = {k: to_money(v) for k, v in (amounts or {}).items()}
    except ValueError as e:
        return f"Error: {e}"
    command = SchedulePayment(
        charge_ids=tuple(charge_ids),
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        payment_method_id=payment_method_id,
        auto_pay_enabled=auto_pay_enabled,
        amounts=parsed,
    )
    return _run(patient_id, command, now)


@mcp.tool()
def charge_now(patient_id: str, charge_ids: list[str], payment_method_id: str = "",
               now: str = "") -> dict | str:
    """Pay the full outstanding balance of the given charges by card."""
    return _run(patient_id, ChargeNow(charge_ids=tuple(charge_ids), payment_method_id=payment_method_id), now)


@mcp.tool()
def reschedule_appointment(patient_id: str, event_id: str, new_start: str, now: str = "") -> dict | str:
    """Move an upcoming appointment to a new ISO-8601 start, keeping its duration."""
    try:
        start = parse_timestamp(new_start)
    except ValueError as e:
        return f"Error: {e}"
    return _run(patient_id, RescheduleAppointment(event_id=event_id, new_start=start), now)


@mcp.tool()
def cancel_appointment(patient_id: str, event_id: str, reason: str, now: str = "") -> dict | str:
    """Cancel an upcoming appointment. A non-empty reason is required."""
    return _run(patient_id, CancelAppointment(event_id=event_id, reason=reason), now)


@mcp.tool()
def add_memo(patient_id: str, text: str, now: str = "") -> dict | str:
    """Add a free-text memo to the patient's record."""
    return _run(patient_id, AddMemo(text=text), now)


def main():
    mcp.run()


if __name__ == "__main__":
    main()
