#!/usr/bin/env python3
"""CLI entry point for chartdesk package.

Usage:
    python -m chartdesk import <record.yaml> [--db chartdesk.db]
    python -m chartdesk show --patient <id> [--json]
    python -m chartdesk process --patient <id>
    python -m chartdesk pay --patient <id> --charge <id> [--charge <id> ...] [--method <id>]
    python -m chartdesk schedule --patient <id> --charge <id> --date 2026-10-20 --time 14:30
    python -m chartdesk reschedule --patient <id> <event_id> --start 2026-10-22T15:00:00Z
    python -m chartdesk cancel --patient <id> <event_id> --reason "..."
    python -m chartdesk memo --patient <id> "text"
    python -m chartdesk history --patient <id>
    python -m chartdesk init-config [--output chartdesk.toml]
    python -m chartdesk serve-mcp [--db chartdesk.db]

Every command accepts --now <ISO timestamp> to evaluate against a fixed clock.
"""

import argparse
import logging
import sys

from chartdesk.config import DEFAULT_CONFIG_PATH


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="chartdesk",
        description="Reconcile patient billing, appointments and audit memos.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to chartdesk.toml")
    sub = parser.add_subparsers(dest="command")

    def add_common(p, patient=True):
        p.add_argument("--db", default=None, help="SQLite database path (default from config)")
        p.add_argument("--now", default="", help="Evaluate at this ISO-8601 timestamp")
        if patient:
            p.add_argument("--patient", required=True, help="Patient id")

    # --- import ---
    import_parser = sub.add_parser("import", help="Load a YAML/JSON patient record into SQLite")
    import_parser.add_argument("path", help="Record file (.yaml, .yml or .json)")
    add_common(import_parser, patient=False)

    # --- show ---
    show_parser = sub.add_parser("show", help="Show the dashboard view of a patient")
    add_common(show_parser)
    show_parser.add_argument("--json", action="store_true", help="Print the full record as JSON")

    # --- process ---
    process_parser = sub.add_parser("process", help="Settle due scheduled auto-payments")
    add_common(process_parser)

    # --- pay ---
    pay_parser = sub.add_parser("pay", help="Charge outstanding balances to a payment method")
    add_common(pay_parser)
    pay_parser.add_argument("--charge", action="append", required=True, help="Charge id (repeatable)")
    pay_parser.add_argument("--method", default="", help="Payment method id (default: patient's default)")

    # --- schedule ---
    schedule_parser = sub.add_parser("schedule", help="Schedule a payment for outstanding charges")
    add_common(schedule_parser)
    schedule_parser.add_argument("--charge", action="append", required=True, help="Charge id (repeatable)")
    schedule_parser.add_argument("--date", required=True, help="Payment date, e.g. 2026-10-20")
    schedule_parser.add_argument("--time", required=True, help="Payment time, e.g. 14:30")
    schedule_parser.add_argument("--method", default="", help="Payment method id")
    schedule_parser.add_argument("--no-auto-pay", action="store_true", help="Record without auto-pay")
    schedule_parser.add_argument(
        "--amount", action="append", default=[], help="Per-charge amount as CHARGE_ID=AMOUNT"
    )

    # --- reschedule ---
    reschedule_parser = sub.add_parser("reschedule", help="Move an upcoming appointment")
    add_common(reschedule_parser)
    reschedule_parser.add_argument("event_id", help="Event id")
    reschedule_parser.add_argument("--start", required=True, help="New start (ISO-8601)")

    # --- cancel ---
    cancel_parser = sub.add_parser("cancel", help="Cancel an upcoming appointment")
    add_common(cancel_parser)
    cancel_parser.add_argument("event_id", help="Event id")
    cancel_parser.add_argument("--reason", default="", help="Cancellation reason")

    # --- memo ---
    memo_parser = sub.add_parser("memo", help="Add a memo to the patient's record")
    add_common(memo_parser)
    memo_parser.add_argument("text", help="Memo text")

    # --- history ---
    history_parser = sub.add_parser("history", help="Show stored snapshots and the command log")
    add_common(history_parser)

    # --- init-config ---
    config_parser = sub.add_parser("init-config", help="Generate chartdesk.toml")
    config_parser.add_argument("--output", default=DEFAULT_CONFIG_PATH, help="Config file output path")
    config_parser.add_argument("--db", default=None, help="Database path recorded in the config")

    # --- serve-mcp ---
    mcp_parser = sub.add_parser("serve-mcp", help="Start MCP server")
    mcp_parser.add_argument("--db", default=None, help="SQLite database path")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    handlers = {
        "import": _handle_import,
        "show": _handle_show,
        "process": _handle_process,
        "pay": _handle_pay,
        "schedule": _handle_schedule,
        "reschedule": _handle_reschedule,
        "cancel": _handle_cancel,
        "memo": _handle_memo,
        "history": _handle_history,
        "init-config": _handle_init_config,
        "serve-mcp": _handle_serve_mcp,
    }
    handlers[args.command](args)


def _load_config(args) -> dict:
    from chartdesk.config import load_config

    return load_config(args.config)


def _db_path(args, config: dict) -> str:
    return args.db or config["storage"]["db_path"]


def _now(args):
    from chartdesk.core.utils import parse_timestamp, utc_now

    if not getattr(args, "now", ""):
        return utc_now()
    try:
        return parse_timestamp(args.now)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


def _open_session(args, db, config, now):
    from chartdesk.errors import LoadFailure
    from chartdesk.session import PatientSession
    from chartdesk.sources import DatabaseSink, DatabaseSource

    try:
        return PatientSession.open(
            DatabaseSource(db, args.patient),
            now=now,
            sink=DatabaseSink(db, reason=f"cli:{args.command}"),
            config=config,
        )
    except LoadFailure as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)


def _run_command(args, command):
    """Apply one record command, persist it and log the outcome."""
    from chartdesk.db import ChartdeskDB

    config = _load_config(args)
    now = _now(args)
    with ChartdeskDB(_db_path(args, config)) as db:
        db.init_schema()
        session = _open_session(args, db, config, now)
        result = session.execute(command, now)
        name = type(command).__name__
        if not result.ok:
            db.log_command(args.patient, name, "rejected", result.error.code, result.error.message)
            print(f"Error: {result.error.message}", file=sys.stderr)
            sys.exit(1)
        db.log_command(args.patient, name, "ok")

    print(f"{name}: ok")
    if result.record.memos and result.record.memos[0].created_date == now:
        print(f"  Memo: {result.record.memos[0].note}")
    for cid in result.settled_charge_ids:
        print(f"  Auto-payment settled charge {cid}")


def _handle_import(args):
    from chartdesk.db import ChartdeskDB
    from chartdesk.errors import LoadFailure
    from chartdesk.sources import load_record_file

    config = _load_config(args)
    try:
        record = load_record_file(args.path)
    except LoadFailure as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)

    with ChartdeskDB(_db_path(args, config)) as db:
        db.init_schema()
        result = db.save_record(record, reason=f"import:{args.path}")

    patient = record.patient
    if result.skipped:
        print(f"{patient.full_name} ({patient.id}): unchanged, nothing imported")
        return
    print(f"Imported {patient.full_name} ({patient.id}) as snapshot {result.snapshot_id}")
    for name, count in record.counts().items():
        print(f"  {name:<20} {count:>5}")


def _handle_show(args):
    from chartdesk.db import ChartdeskDB
    from chartdesk.serialize import record_to_json

    config = _load_config(args)
    now = _now(args)
    with ChartdeskDB(_db_path(args, config)) as db:
        db.init_schema()
        session = _open_session(args, db, config, now)
        if args.json:
            print(record_to_json(session.record, indent=2))
            return
        _print_dashboard(session, now)


def _print_dashboard(session, now):
    from chartdesk.appointments import appointment_stats
    from chartdesk.billing import billing_totals, outstanding_charges, scheduled_payment_status
    from chartdesk.core.utils import format_datetime, format_money
    from chartdesk.summary import generate_summary
    from chartdesk.view_state import SECTIONS

    record = session.record
    view = session.view_state(now)
    patient = record.patient

    print(f"\n{'='*60}")
    print(f"{patient.full_name} ({patient.id})")
    print(f"{'='*60}")

    print(f"\n{'Section':<14} {'Expanded':<9} {'Badge':>5}")
    print(f"{'─'*14} {'─'*9} {'─'*5}")
    for name in SECTIONS:
        state = view.section(name)
        badge = str(state.notification_count) if state.has_notification else ""
        expanded = "yes" if session.is_expanded(name, now) else "no"
        print(f"{name:<14} {expanded:<9} {badge:>5}")

    if view.active_alerts:
        print("\nAlerts:")
        for a in view.active_alerts:
            flag = "!" if a.action_required else " "
            print(f"  {flag} {a.id:<24} {a.type}")

    totals = billing_totals(record.charges)
    print(f"\nBilling: {format_money(totals['total_outstanding'])} outstanding, "
          f"{format_money(totals['total_paid'])} paid")
    for c in outstanding_charges(record.charges):
        status = scheduled_payment_status(c, now)
        note = f"  [{status['text']}]" if status else ""
        print(f"  {c.id:<24} {format_money(c.total_outstanding):>10}  {c.description[:30]}{note}")

    stats = appointment_stats(record.events, now, session.upcoming_window)
    print(f"\nAppointments: {stats['total']} upcoming, {stats['this_week']} this week")
    if stats["next"] is not None:
        nxt = stats["next"]
        print(f"  Next: {nxt.title} on {format_datetime(nxt.start.astimezone(now.tzinfo))} ({nxt.id})")

    if record.memos:
        print("\nRecent memos:")
        for m in record.memos[:5]:
            print(f"  {m.created_date.isoformat()[:19]}  {m.note[:70]}")

    summary = generate_summary(record, now)
    print(f"\nSummary: {summary.text}")
    for insight in summary.insights:
        print(f"  - {insight}")
    print()


def _handle_process(args):
    from chartdesk.billing import process_scheduled_payments
    from chartdesk.db import ChartdeskDB
    from chartdesk.errors import LoadFailure
    from chartdesk.sources import DatabaseSource

    config = _load_config(args)
    now = _now(args)
    with ChartdeskDB(_db_path(args, config)) as db:
        db.init_schema()
        try:
            record = DatabaseSource(db, args.patient)()
        except LoadFailure as e:
            print(f"Error: {e.message}", file=sys.stderr)
            sys.exit(1)
        result = process_scheduled_payments(record, now)
        if not result.changed:
            print("No scheduled payments due.")
            return
        db.save_record(result.record, reason="cli:process")
        db.log_command(args.patient, "ProcessScheduledPayments", "ok",
                       detail=", ".join(result.settled_charge_ids))

    for cid in result.settled_charge_ids:
        print(f"Auto-payment settled charge {cid}")


def _handle_pay(args):
    from chartdesk.commands import ChargeNow

    _run_command(args, ChargeNow(charge_ids=tuple(args.charge), payment_method_id=args.method))


def _parse_amounts(pairs: list[str]) -> dict:
    from chartdesk.core.utils import to_money

    amounts = {}
    for pair in pairs:
        charge_id, sep, value = pair.partition("=")
        if not sep:
            print(f"Error: expected CHARGE_ID=AMOUNT, got {pair!r}", file=sys.stderr)
            sys.exit(2)
        try:
            amounts[charge_id.strip()] = to_money(value)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(2)
    return amounts


def _handle_schedule(args):
    from chartdesk.commands import SchedulePayment

    command = SchedulePayment(
        charge_ids=tuple(args.charge),
        scheduled_date=args.date,
        scheduled_time=args.time,
        payment_method_id=args.method,
        auto_pay_enabled=not args.no_auto_pay,
        amounts=_parse_amounts(args.amount),
    )
    _run_command(args, command)


def _handle_reschedule(args):
    from chartdesk.commands import RescheduleAppointment
    from chartdesk.core.utils import parse_timestamp

    try:
        start = parse_timestamp(args.start)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    _run_command(args, RescheduleAppointment(event_id=args.event_id, new_start=start))


def _handle_cancel(args):
    from chartdesk.commands import CancelAppointment

    _run_command(args, CancelAppointment(event_id=args.event_id, reason=args.reason))


def _handle_memo(args):
    from chartdesk.commands import AddMemo

    _run_command(args, AddMemo(text=args.text))


def _handle_history(args):
    from chartdesk.db import ChartdeskDB

    config = _load_config(args)
    with ChartdeskDB(_db_path(args, config)) as db:
        db.init_schema()
        snapshots = db.history(args.patient)
        log = db.command_log(args.patient)

    if not snapshots:
        print(f"No snapshots stored for patient {args.patient}.")
        return

    print(f"\n{'ID':>5}  {'Saved':<19}  {'Reason':<30}  {'Outstanding':>11}  {'Memos':>5}")
    print(f"{'─'*5}  {'─'*19}  {'─'*30}  {'─'*11}  {'─'*5}")
    for s in snapshots:
        print(f"{s['id']:>5}  {s['saved_at'][:19]:<19}  {s['reason'][:30]:<30}  "
              f"{s['total_outstanding']:>11}  {s['memos_count']:>5}")
    print(f"\n({len(snapshots)} snapshots)")

    if log:
        print("\nCommands:")
        for row in log:
            code = f" {row['error_code']}" if row["error_code"] else ""
            print(f"  {row['logged_at'][:19]}  {row['command']:<24} {row['outcome']}{code}")


def _handle_init_config(args):
    from chartdesk.config import DEFAULT_DB, generate_config

    path = generate_config(config_path=args.output, db_path=args.db or DEFAULT_DB)
    print(f"Config generated at {path}")


def _handle_serve_mcp(args):
    import os

    config = _load_config(args)
    os.environ["CHARTDESK_DB"] = _db_path(args, config)
    os.environ["CHARTDESK_CONFIG"] = args.config

    from chartdesk.mcp.server import mcp

    mcp.run()


if __name__ == "__main__":
    main()
