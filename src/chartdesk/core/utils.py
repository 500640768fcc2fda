"""Shared utility functions for money, timestamps, and identifiers."""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENTS = Decimal("0.01")

_MONTHS = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
}


def to_money(value) -> Decimal:
    """Convert an int, float, str or Decimal amount to a Decimal rounded to cents.

    Floats go through str() first so 85.1 becomes Decimal("85.10"), not the
    binary approximation.
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValueError(f"Not a monetary amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValueError(f"Amount out of range: {value!r}") from e


def format_money(amount: Decimal) -> str:
    """Format an amount as dollars: Decimal("135") -> "$135.00"."""
    return f"${to_money(amount):,.2f}"


def ensure_aware(ts: datetime) -> datetime:
    """Attach UTC to naive datetimes; aware ones pass through unchanged."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> datetime:
    """Parse an ISO-8601 timestamp into an aware datetime.

    Accepts datetime, date (midnight UTC) or strings such as
    "2023-10-05T12:00:00Z", "2024-03-20T11:00:00.000Z" and "2025-06-30".
    Naive values are interpreted as UTC.
    """
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Not a timestamp: {value!r}")
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return ensure_aware(datetime.fromisoformat(s))
    except ValueError as e:
        raise ValueError(f"Not an ISO-8601 timestamp: {value!r}") from e


def to_iso(ts: datetime) -> str:
    """Render an aware datetime as ISO-8601 with a trailing Z for UTC."""
    ts = ensure_aware(ts)
    if ts.utcoffset() == timedelta(0):
        return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    return ts.isoformat()


def parse_calendar_date(value) -> date:
    """Convert common date formats to a date.

    Supported formats:
    - YYYY-MM-DD (optionally followed by a time): "2025-06-30T13:25:00Z"
    - MM/DD/YYYY: "01/15/2026"
    - Month DDth, YYYY: "November 23rd, 2021"
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Not a date: {value!r}")
    s = value.strip()

    m = re.match(r"(\d{4})-(\d{2})-(\d{2})", s)
    if m:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = re.match(r"(\d{1,2})/(\d{1,2})/(\d{4})", s)
    if m:
        return date(int(m.group(3)), int(m.group(1)), int(m.group(2)))

    m = re.match(r"(\w+)\s+(\d{1,2})(?:st|nd|rd|th)?,?\s*(\d{4})", s, re.IGNORECASE)
    if m and m.group(1).lower() in _MONTHS:
        return date(int(m.group(3)), _MONTHS[m.group(1).lower()], int(m.group(2)))

    raise ValueError(f"Unrecognized date: {value!r}")


def parse_clock_time(value: str) -> time:
    """Parse "14:30", "14:30:15", "2:30pm" or "2:30 PM" into a time."""
    if not value or not value.strip():
        raise ValueError("Empty time")
    s = value.strip().lower()

    m = re.fullmatch(r"(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(am|pm)?", s)
    if not m:
        raise ValueError(f"Unrecognized time: {value!r}")
    hour, minute = int(m.group(1)), int(m.group(2))
    second = int(m.group(3) or 0)
    meridiem = m.group(4)
    if meridiem:
        if not 1 <= hour <= 12:
            raise ValueError(f"Unrecognized time: {value!r}")
        hour = hour % 12 + (12 if meridiem == "pm" else 0)
    return time(hour, minute, second)


def combine_date_time(date_str: str, time_str: str, tz: tzinfo | None = None) -> datetime:
    """Join a date-picker value and a time-picker value into one aware timestamp."""
    d = parse_calendar_date(date_str)
    t = parse_clock_time(time_str)
    return datetime.combine(d, t, tzinfo=tz or timezone.utc)


def local_day(ts: datetime, ref: datetime) -> date:
    """Truncate ts to a calendar day in the timezone of ref."""
    ts = ensure_aware(ts)
    ref = ensure_aware(ref)
    return ts.astimezone(ref.tzinfo).date()


def format_date(ts: datetime | date) -> str:
    return ts.strftime("%m/%d/%Y")


def format_time(ts: datetime) -> str:
    return ts.strftime("%I:%M %p").lstrip("0")


def format_datetime(ts: datetime) -> str:
    return f"{format_date(ts)} {format_time(ts)}"


def new_id(prefix: str) -> str:
    """Generate a prefixed unique identifier, e.g. "pmt_3f2a9c0d1e4b5a6f"."""
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def snake_to_camel(name: str) -> str:
    """total_outstanding -> totalOutstanding."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)
