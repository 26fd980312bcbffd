"""
Domain time utilities.

Centralized timestamp validation and the one sanctioned wall-clock read.

Behavior and error messages must remain consistent across the domain model.
Pure domain functions never call `utc_now()` themselves; "now" is always passed
in explicitly by the caller.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces the requirement that timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC. Naive values are assumed to already be UTC."""

    if value.tzinfo is None or value.utcoffset() is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Current wall-clock time in UTC. Services inject this as their default clock."""

    return datetime.now(timezone.utc)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """Half-open UTC interval [00:00, next 00:00) covering `day`."""

    start = start_of_day(day)
    return start, start + timedelta(days=1)


def start_of_month(value: date) -> datetime:
    return datetime(value.year, value.month, 1, tzinfo=timezone.utc)


def add_months(month_start: datetime, months: int) -> datetime:
    """Shift a first-of-month UTC timestamp by a whole number of months."""

    index = month_start.year * 12 + (month_start.month - 1) + months
    return datetime(index // 12, index % 12 + 1, 1, tzinfo=timezone.utc)


def start_of_week(day: date) -> datetime:
    """Weeks start on Sunday."""

    return start_of_day(day - timedelta(days=(day.weekday() + 1) % 7))
