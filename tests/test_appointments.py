"""Tests for chartdesk.appointments."""

from datetime import datetime, timedelta, timezone

import pytest

from chartdesk.appointments import appointment_stats, can_modify, can_transition, is_upcoming, move, transition
from chartdesk.models import Event, EventStatus

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _event(status=EventStatus.CONFIRMED, start=NOW + timedelta(days=1), minutes=30):
    return Event(id="evt_1", start=start, end=start + timedelta(minutes=minutes), status=status, title="Visit")


class TestCanModify:
    @pytest.mark.parametrize("status", [EventStatus.CONFIRMED, EventStatus.RESCHEDULED])
    def test_future_active(self, status):
        assert can_modify(_event(status), NOW)

    @pytest.mark.parametrize("status", [EventStatus.CANCELLED, EventStatus.COMPLETED])
    def test_terminal(self, status):
        assert not can_modify(_event(status), NOW)

    def test_started(self):
        assert not can_modify(_event(start=NOW), NOW)
        assert not can_modify(_event(start=NOW - timedelta(hours=1)), NOW)

    def test_naive_now_is_utc(self):
        assert can_modify(_event(), NOW.replace(tzinfo=None))


class TestTransitions:
    def test_terminal_has_no_exits(self):
        for target in EventStatus:
            assert not can_transition(EventStatus.CANCELLED, target)
            assert not can_transition(EventStatus.COMPLETED, target)

    def test_illegal_transition_raises(self):
        with pytest.raises(ValueError, match="cannot move"):
            transition(_event(EventStatus.COMPLETED), EventStatus.CONFIRMED)

    def test_cancel(self):
        assert transition(_event(), EventStatus.CANCELLED).status == EventStatus.CANCELLED

    def test_move_keeps_duration(self):
        event = _event(EventStatus.RESCHEDULED, minutes=50)
        moved = move(event, NOW + timedelta(days=4, hours=3))
        assert moved.status == EventStatus.CONFIRMED
        assert moved.duration == timedelta(minutes=50)
        assert moved.start == NOW + timedelta(days=4, hours=3)


class TestUpcoming:
    def test_is_upcoming(self):
        window = timedelta(days=7)
        assert is_upcoming(_event(start=NOW), NOW, window)
        assert is_upcoming(_event(start=NOW + window), NOW, window)
        assert not is_upcoming(_event(start=NOW + window + timedelta(minutes=1)), NOW, window)
        assert not is_upcoming(_event(start=NOW - timedelta(minutes=1)), NOW, window)
        assert not is_upcoming(_event(EventStatus.CANCELLED), NOW, window)

    def test_stats(self, sample_record):
        stats = appointment_stats(sample_record.events, NOW)
        assert stats["total"] == 2
        assert stats["this_week"] == 1
        assert stats["next"].id == "evt_followup"

    def test_stats_empty(self):
        assert appointment_stats([], NOW) == {"total": 0, "this_week": 0, "next": None}
