"""Appointment rules — modifiability, status transitions, and upcoming stats."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from chartdesk.core.utils import ensure_aware
from chartdesk.models import (
    ACTIVE_EVENT_STATUSES,
    TERMINAL_EVENT_STATUSES,
    Event,
    EventStatus,
)

# Allowed status transitions. Reschedule always lands on CONFIRMED.
_TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.CONFIRMED: frozenset({EventStatus.CONFIRMED, EventStatus.CANCELLED, EventStatus.COMPLETED}),
    EventStatus.RESCHEDULED: frozenset({EventStatus.CONFIRMED, EventStatus.CANCELLED, EventStatus.COMPLETED}),
    EventStatus.CANCELLED: frozenset(),
    EventStatus.COMPLETED: frozenset(),
}


def can_modify(event: Event, now: datetime) -> bool:
    """An event can be rescheduled or cancelled while it is in the future and not terminal."""
    return event.start > ensure_aware(now) and event.status not in TERMINAL_EVENT_STATUSES


def can_transition(current: EventStatus, target: EventStatus) -> bool:
    return target in _TRANSITIONS[current]


def transition(event: Event, target: EventStatus) -> Event:
    """Return the event with a new status, rejecting illegal transitions with ValueError."""
    if not can_transition(event.status, target):
        raise ValueError(f"Event {event.id}: cannot move from {event.status.value} to {target.value}")
    return replace(event, status=target)


def move(event: Event, new_start: datetime) -> Event:
    """Shift an event to a new start, keeping its duration, and confirm it."""
    new_start = ensure_aware(new_start)
    moved = transition(event, EventStatus.CONFIRMED)
    return replace(moved, start=new_start, end=new_start + event.duration)


def is_upcoming(event: Event, now: datetime, window: timedelta) -> bool:
    """Active event starting within [now, now + window]."""
    now = ensure_aware(now)
    return event.status in ACTIVE_EVENT_STATUSES and now <= event.start <= now + window


def appointment_stats(events, now: datetime, window: timedelta = timedelta(days=7)) -> dict:
    """Upcoming active appointments: total, how many fall within the window, the next one."""
    now = ensure_aware(now)
    upcoming = sorted(
        (e for e in events if e.start > now and e.status in ACTIVE_EVENT_STATUSES),
        key=lambda e: e.start,
    )
    return {
        "total": len(upcoming),
        "this_week": sum(1 for e in upcoming if e.start - now <= window),
        "next": upcoming[0] if upcoming else None,
    }
