"""Session controller: the single owner of a live record and its overlay.

PatientSession applies commands strictly one at a time, runs the
scheduled-payment processor whenever the record may have changed, and hands
every new record to the data sink. Command rejections never escape
execute(); they come back as a failed CommandResult with the record
untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from chartdesk import view_state as vs
from chartdesk.billing import process_scheduled_payments
from chartdesk.commands import (
    DEFAULT_ACTOR,
    CommandContext,
    DismissAlert,
    apply_command,
)
from chartdesk.config import actor_from_config, view_windows
from chartdesk.core.utils import ensure_aware, utc_now
from chartdesk.errors import CommandInFlight, CommandRejected
from chartdesk.models import PatientRecord, PersonRef
from chartdesk.view_state import (
    RECENT_NOTE_WINDOW,
    UPCOMING_WINDOW,
    Overlay,
    ViewState,
    compute_view_state,
)

logger = logging.getLogger(__name__)

RecordSink = Callable[[PatientRecord], None]


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command: ok with the new record, or the rejection."""

    ok: bool
    record: PatientRecord
    error: CommandRejected | None = None
    settled_charge_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        out = {"ok": self.ok}
        if self.error is not None:
            out["error"] = self.error.to_dict()
        if self.settled_charge_ids:
            out["settled_charge_ids"] = list(self.settled_charge_ids)
        return out


class PatientSession:
    """Live session over one patient's record."""

    def __init__(
        self,
        record: PatientRecord,
        *,
        now: datetime | None = None,
        sink: RecordSink | None = None,
        actor: PersonRef = DEFAULT_ACTOR,
        memo_on_charge_now: bool = False,
        upcoming_window: timedelta = UPCOMING_WINDOW,
        recent_note_window: timedelta = RECENT_NOTE_WINDOW,
    ):
        self._record = record
        self.overlay = Overlay()
        self.sink = sink
        self.actor = actor
        self.memo_on_charge_now = memo_on_charge_now
        self.upcoming_window = upcoming_window
        self.recent_note_window = recent_note_window
        self.last_processed: datetime | None = None
        self._in_flight = False
        self.refresh(now)

    @classmethod
    def open(
        cls,
        source: Callable[[], PatientRecord],
        now: datetime | None = None,
        sink: RecordSink | None = None,
        config: dict | None = None,
    ) -> PatientSession:
        """Load a record from ``source`` and start a session on it.

        LoadFailure raised by the source propagates unchanged. When a config
        dict is given, the memo author, the audit options and the view
        windows are taken from it.
        """
        record = source()
        logger.info("Opened session for patient %s", record.patient.id)
        if config is None:
            return cls(record, now=now, sink=sink)

        upcoming, recent = view_windows(config)
        return cls(
            record,
            now=now,
            sink=sink,
            actor=actor_from_config(config),
            memo_on_charge_now=bool(config.get("audit", {}).get("memo_on_charge_now", False)),
            upcoming_window=upcoming,
            recent_note_window=recent,
        )

    @property
    def record(self) -> PatientRecord:
        return self._record

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def _publish(self, record: PatientRecord) -> None:
        self._record = record
        if self.sink is not None:
            self.sink(record)

    def _process(self, record: PatientRecord, now: datetime):
        result = process_scheduled_payments(record, now)
        if result.changed:
            self.last_processed = result.last_processed
        return result

    def refresh(self, now: datetime | None = None) -> tuple[str, ...]:
        """Run the scheduled-payment processor; returns the settled charge ids."""
        now = ensure_aware(now or utc_now())
        result = self._process(self._record, now)
        if result.changed:
            self._publish(result.record)
        return result.settled_charge_ids

    def execute(self, command, now: datetime | None = None) -> CommandResult:
        """Apply one command and return its result.

        DismissAlert only updates the overlay. Every other command goes
        through its handler; on success the processor runs on the new
        record and the sink receives it.
        """
        name = type(command).__name__
        if self._in_flight:
            error = CommandInFlight("Another command is still being applied", name)
            logger.warning("Rejected %s: %s", name, error.message)
            return CommandResult(ok=False, record=self._record, error=error)

        self._in_flight = True
        try:
            if isinstance(command, DismissAlert):
                self.dismiss_alert(command.alert_id)
                return CommandResult(ok=True, record=self._record)

            now = ensure_aware(now or utc_now())
            ctx = CommandContext(now=now, actor=self.actor, memo_on_charge_now=self.memo_on_charge_now)
            try:
                updated = apply_command(self._record, command, ctx)
            except CommandRejected as e:
                logger.warning("Rejected %s (%s): %s", name, e.code, e.message)
                return CommandResult(ok=False, record=self._record, error=e)

            result = self._process(updated, now)
            self._publish(result.record)
            logger.info("Applied %s for patient %s", name, self._record.patient.id)
            return CommandResult(
                ok=True, record=self._record, settled_charge_ids=result.settled_charge_ids
            )
        finally:
            self._in_flight = False

    # --- Overlay ---

    def view_state(self, now: datetime | None = None) -> ViewState:
        return compute_view_state(
            self._record,
            self.overlay.dismissed_alert_ids,
            self.overlay.summary_viewed,
            now or utc_now(),
            upcoming_window=self.upcoming_window,
            recent_note_window=self.recent_note_window,
        )

    def dismiss_alert(self, alert_id: str) -> None:
        self.overlay = vs.dismiss_alert(self.overlay, alert_id)

    def mark_summary_viewed(self) -> None:
        self.overlay = vs.mark_summary_viewed(self.overlay)

    def is_expanded(self, section: str, now: datetime | None = None) -> bool:
        return vs.is_expanded(self.overlay, section, self.view_state(now))

    def toggle_section(self, section: str, now: datetime | None = None) -> bool:
        """Flip a section open or closed; returns the new expanded state."""
        self.overlay = vs.toggle_section(self.overlay, section, self.view_state(now))
        return self.overlay.pinned[section]
