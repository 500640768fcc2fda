"""Derived dashboard state — which sections open themselves and carry badges.

compute_view_state() is a pure function of the record, the session overlay
values and the current time. The Overlay holds the session-only state the
dashboard layers on top of the record (dismissed alerts, the summary-viewed
flag, sections the user has pinned open or closed); it is never persisted
with the record.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal

from chartdesk.appointments import is_upcoming
from chartdesk.billing import is_balance_alert_resolved
from chartdesk.core.utils import ensure_aware
from chartdesk.models import Alert, PatientRecord

ALERTS = "alerts"
BILLING = "billing"
APPOINTMENTS = "appointments"
NOTES = "notes"
AI_SUMMARY = "ai_summary"
SECTIONS = (ALERTS, BILLING, APPOINTMENTS, NOTES, AI_SUMMARY)

UPCOMING_WINDOW = timedelta(days=7)
RECENT_NOTE_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class SectionState:
    should_auto_expand: bool
    has_notification: bool
    notification_count: int = 0


@dataclass(frozen=True)
class ViewState:
    alerts: SectionState
    billing: SectionState
    appointments: SectionState
    notes: SectionState
    ai_summary: SectionState
    active_alerts: tuple[Alert, ...] = ()

    def section(self, name: str) -> SectionState:
        if name not in SECTIONS:
            raise KeyError(name)
        return getattr(self, name)

    def to_dict(self) -> dict:
        out = {name: asdict(self.section(name)) for name in SECTIONS}
        out["active_alert_ids"] = [a.id for a in self.active_alerts]
        return out


@dataclass(frozen=True)
class Overlay:
    """Session-local state; replaced, never mutated."""

    dismissed_alert_ids: frozenset[str] = frozenset()
    summary_viewed: bool = False
    pinned: dict[str, bool] = field(default_factory=dict)  # section -> expanded


def active_alerts(record: PatientRecord, dismissed_alert_ids=frozenset()) -> tuple[Alert, ...]:
    """Alerts not dismissed this session and not resolved by paid-off charges."""
    return tuple(
        a
        for a in record.alerts
        if a.id not in dismissed_alert_ids and not is_balance_alert_resolved(a, record.charges)
    )


def compute_view_state(
    record: PatientRecord,
    dismissed_alert_ids,
    summary_viewed: bool,
    now: datetime,
    *,
    upcoming_window: timedelta = UPCOMING_WINDOW,
    recent_note_window: timedelta = RECENT_NOTE_WINDOW,
) -> ViewState:
    """Compute per-section auto-expand and notification flags."""
    now = ensure_aware(now)

    alerts = active_alerts(record, dismissed_alert_ids)
    action_required = sum(1 for a in alerts if a.action_required)

    outstanding = sum((c.total_outstanding for c in record.charges), Decimal("0.00"))
    owing = sum(1 for c in record.charges if c.total_outstanding > 0)

    upcoming = sum(1 for e in record.events if is_upcoming(e, now, upcoming_window))

    recent_notes = sum(
        1 for n in record.doctors_notes if now - recent_note_window <= n.created_date <= now
    )

    return ViewState(
        alerts=SectionState(bool(alerts), bool(alerts), action_required),
        billing=SectionState(outstanding > 0, outstanding > 0, owing),
        appointments=SectionState(upcoming > 0, upcoming > 0, upcoming),
        notes=SectionState(recent_notes > 0, recent_notes > 0, recent_notes),
        ai_summary=SectionState(False, not summary_viewed, 0),
        active_alerts=alerts,
    )


# --- Overlay transitions ---


def dismiss_alert(overlay: Overlay, alert_id: str) -> Overlay:
    """Hide an alert for the rest of the session. Dismissing twice is a no-op."""
    if alert_id in overlay.dismissed_alert_ids:
        return overlay
    return replace(overlay, dismissed_alert_ids=overlay.dismissed_alert_ids | {alert_id})


def mark_summary_viewed(overlay: Overlay) -> Overlay:
    if overlay.summary_viewed:
        return overlay
    return replace(overlay, summary_viewed=True)


def is_expanded(overlay: Overlay, section: str, view: ViewState) -> bool:
    """A pinned section keeps the user's choice; others follow auto-expand."""
    if section in overlay.pinned:
        return overlay.pinned[section]
    return view.section(section).should_auto_expand


def toggle_section(overlay: Overlay, section: str, view: ViewState) -> Overlay:
    """Flip a section's expanded state and pin it for the rest of the session.

    Expanding the AI summary marks it viewed.
    """
    expanded = not is_expanded(overlay, section, view)
    updated = replace(overlay, pinned={**overlay.pinned, section: expanded})
    if section == AI_SUMMARY and expanded:
        updated = mark_summary_viewed(updated)
    return updated
