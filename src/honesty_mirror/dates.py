"""Calendar helpers shared by the analytics and stats layers."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

# Inclusive upper bounds stop one microsecond before the next boundary.
_EPSILON = timedelta(microseconds=1)


def start_of_day(value: Optional[datetime] = None) -> datetime:
    value = value or datetime.now()
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: Optional[datetime] = None) -> datetime:
    return start_of_day(value) + timedelta(days=1) - _EPSILON


def start_of_week(value: Optional[datetime] = None, first_weekday: int = 0) -> datetime:
    """Return midnight of the first day of the week containing ``value``.

    ``first_weekday`` follows :meth:`datetime.weekday` numbering (0 is Monday,
    6 is Sunday).
    """
    day = start_of_day(value)
    offset = (day.weekday() - first_weekday) % 7
    return day - timedelta(days=offset)


def end_of_week(value: Optional[datetime] = None, first_weekday: int = 0) -> datetime:
    return start_of_week(value, first_weekday) + timedelta(days=7) - _EPSILON


def previous_week_start(value: Optional[datetime] = None, first_weekday: int = 0) -> datetime:
    return start_of_week(value, first_weekday) - timedelta(days=7)


def previous_week_end(value: Optional[datetime] = None, first_weekday: int = 0) -> datetime:
    return start_of_week(value, first_weekday) - _EPSILON


def days_in_range(start: datetime, end: datetime) -> list[datetime]:
    days: list[datetime] = []
    current = start_of_day(start)
    last = start_of_day(end)
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days


def hour_of_day(value: datetime) -> int:
    return value.hour


def parse_day(value: str) -> datetime:
    """Parse ``YYYY-MM-DD`` into midnight of that day."""
    return start_of_day(datetime.strptime(value, "%Y-%m-%d"))
