"""Derived state and write payloads for habit records.

Everything here is pure: functions read a Habit snapshot and return
either a value or a field-path update dict for the store. Duration
changes are always expressed as increments, and every change to a day's
duration is mirrored into ``totalDuration``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from habitcore.dayclock import logical_date, logical_day, parse_day, shift_day
from habitcore.errors import ValidationError
from habitcore.models import Habit, HistoryRow, parse_timestamp
from habitcore.store import Increment, Updates

STREAK_LOOKBACK_DAYS = 365
HISTORY_DAYS = 30


# ── Validation ────────────────────────────────────────────────


def validate_name(name: Any) -> str:
    """Trim and return *name*; reject blanks."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Habit name must not be empty")
    return name.strip()


def validate_duration(value: Any) -> int:
    """Accept a non-negative whole number of seconds (int or digit string)."""
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"Duration must be a non-negative integer, got {value!r}")
    return value


# ── Derived state ─────────────────────────────────────────────


def is_done_on(habit: Habit, day: str) -> bool:
    log = habit.logs.get(day)
    return bool(log and log.done)


def streak(habit: Habit, now: datetime, rollover_hour: int) -> int:
    """Consecutive done days ending today, or yesterday if today is open."""
    today = logical_date(now, rollover_hour)
    start = 0 if is_done_on(habit, today) else 1
    count = 0
    for offset in range(start, STREAK_LOOKBACK_DAYS):
        if not is_done_on(habit, shift_day(today, -offset)):
            break
        count += 1
    return count


def history(habit: Habit, now: datetime, rollover_hour: int, days: int = HISTORY_DAYS) -> list[HistoryRow]:
    """Newest-first rows for the last *days* logical days since creation."""
    today = logical_date(now, rollover_hour)
    created = parse_timestamp(habit.created_at)
    created_day = None
    if created is not None:
        if created.tzinfo is not None and now.tzinfo is not None:
            created = created.astimezone(now.tzinfo)
        created_day = logical_day(created, rollover_hour)

    rows = []
    for offset in range(days):
        day = shift_day(today, -offset)
        if created_day is not None and parse_day(day) < created_day:
            continue
        log = habit.log(day)
        rows.append(HistoryRow(
            day=day,
            done=log.done,
            duration=log.duration,
            memo=log.memo,
            is_today=offset == 0,
        ))
    return rows


# ── Write payloads ────────────────────────────────────────────


def build_log_patch(
    day: str,
    done: bool,
    duration_delta: int,
    memo: str | None,
    now: datetime,
) -> Updates:
    """Field-path update for one day's log.

    ``memo=None`` leaves the stored memo untouched. The duration is
    adjusted relatively so two patches for the same day compose.
    """
    parse_day(day)
    prefix = f"logs.{day}"
    patch: Updates = {
        f"{prefix}.done": done,
        f"{prefix}.completedAt": now.isoformat(timespec="seconds") if done else None,
        f"{prefix}.duration": Increment(duration_delta),
    }
    if memo is not None:
        patch[f"{prefix}.memo"] = memo
    if duration_delta:
        patch["totalDuration"] = Increment(duration_delta)
    return patch


def complete_patch(day: str, memo: str, now: datetime) -> Updates:
    """Mark *day* done, keeping whatever duration it already has."""
    return build_log_patch(day, True, 0, memo, now)


def undo_patch(habit: Habit, day: str, now: datetime) -> Updates:
    """Clear *day* back to not-done with zero duration and no memo."""
    return build_log_patch(day, False, -habit.log(day).duration, "", now)


def edit_log_patch(
    habit: Habit,
    day: str,
    done: bool,
    duration: Any,
    memo: str,
    now: datetime,
) -> Updates:
    """Overwrite a day's log from the history editor.

    The absolute duration is turned into a delta against the locally
    known value.
    """
    seconds = validate_duration(duration)
    return build_log_patch(day, bool(done), seconds - habit.log(day).duration, memo or "", now)


# ── Formatting ────────────────────────────────────────────────


def format_total_duration(seconds: int) -> str:
    """'2h 5m', '45m', or '' when nothing is recorded."""
    if not seconds or seconds <= 0:
        return ""
    hours, rest = divmod(int(seconds), 3600)
    minutes = rest // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
