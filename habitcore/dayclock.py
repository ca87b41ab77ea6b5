"""Logical-day computation.

A "logical day" is the calendar date an instant belongs to once the
user's rollover hour is applied: with a rollover of 4, 02:30 on the 10th
still counts as the 9th.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from habitcore.errors import ValidationError

DEFAULT_DAY_START_HOUR = 4


def check_rollover_hour(hour: int) -> int:
    if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
        raise ValidationError(f"Rollover hour must be an integer 0-23, got {hour!r}")
    return hour


def logical_day(instant: datetime, rollover_hour: int) -> date:
    check_rollover_hour(rollover_hour)
    d = instant.date()
    if instant.hour < rollover_hour:
        d -= timedelta(days=1)
    return d


def logical_date(instant: datetime, rollover_hour: int) -> str:
    """Return the YYYY-MM-DD logical day of *instant*."""
    return logical_day(instant, rollover_hour).isoformat()


def past_n_days(instant: datetime, rollover_hour: int, n: int) -> Iterator[str]:
    """Yield the *n* logical days ending at today's, oldest first."""
    end = logical_day(instant, rollover_hour)
    for offset in range(n - 1, -1, -1):
        yield (end - timedelta(days=offset)).isoformat()


def parse_day(day: str) -> date:
    try:
        parsed = date.fromisoformat(day)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid day key: {day!r}") from None
    if parsed.isoformat() != day:
        raise ValidationError(f"Invalid day key: {day!r}")
    return parsed


def shift_day(day: str, days: int) -> str:
    return (parse_day(day) + timedelta(days=days)).isoformat()


def now_local(tz: ZoneInfo | None = None) -> datetime:
    return datetime.now(tz or ZoneInfo("UTC"))
