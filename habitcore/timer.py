"""Timer session state machine.

    IDLE --start--> RUNNING --pause--> PAUSED --resume--> RUNNING
    RUNNING | PAUSED --stop--> IDLE (duration committed to targetDate)

The session lives on the habit document, so it survives reloads: while
running only ``startTime`` is stored and the live elapsed value is derived
from the clock. ``targetDate`` is fixed at start and never follows a day
rollover.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from habitcore.dayclock import logical_date
from habitcore.errors import InvalidTransition
from habitcore.models import Habit, TimerState, parse_timestamp
from habitcore.records import build_log_patch
from habitcore.store import Increment, Updates


@dataclass(frozen=True)
class StopCapture:
    """What a stop measured, held until the memo (if any) arrives."""

    habit_id: str
    target_date: str
    elapsed_seconds: int


def _require(habit: Habit, action: str, *allowed: TimerState) -> None:
    state = habit.timer_state
    if state not in allowed:
        raise InvalidTransition(f"Cannot {action} timer of {habit.name!r} while {state.value}")


def _seconds_since(start_time: str, now: datetime) -> int:
    started = parse_timestamp(start_time)
    return max(0, int((now - started).total_seconds()))


def start_patch(habit: Habit, now: datetime, rollover_hour: int) -> Updates:
    """Open a session for today and mark today done."""
    _require(habit, "start", TimerState.IDLE)
    today = logical_date(now, rollover_hour)
    patch: Updates = {
        "currentSession": {
            "startTime": now.isoformat(),
            "elapsed": 0,
            "targetDate": today,
        },
    }
    # memo=None keeps a memo already written for today
    patch.update(build_log_patch(today, True, 0, None, now))
    return patch


def pause_patch(habit: Habit, now: datetime) -> Updates:
    _require(habit, "pause", TimerState.RUNNING)
    session = habit.current_session
    return {
        "currentSession.startTime": None,
        "currentSession.elapsed": session.elapsed + _seconds_since(session.start_time, now),
    }


def resume_patch(habit: Habit, now: datetime) -> Updates:
    _require(habit, "resume", TimerState.PAUSED)
    return {"currentSession.startTime": now.isoformat()}


def stop(habit: Habit, now: datetime) -> StopCapture:
    """Measure the session. Nothing is written until commit_stop_patch."""
    _require(habit, "stop", TimerState.RUNNING, TimerState.PAUSED)
    return StopCapture(
        habit_id=habit.id,
        target_date=habit.current_session.target_date,
        elapsed_seconds=display_seconds(habit, now),
    )


def commit_stop_patch(target_date: str, elapsed_seconds: int, memo: str | None) -> Updates:
    patch: Updates = {
        "currentSession": None,
        f"logs.{target_date}.duration": Increment(elapsed_seconds),
        "totalDuration": Increment(elapsed_seconds),
    }
    if memo is not None:
        patch[f"logs.{target_date}.memo"] = memo
    return patch


def display_seconds(habit: Habit, now: datetime) -> int:
    """Live elapsed seconds: stored elapsed plus the running stretch."""
    session = habit.current_session
    if session is None:
        return 0
    if session.start_time is None:
        return session.elapsed
    return session.elapsed + _seconds_since(session.start_time, now)


def format_clock(seconds: int) -> str:
    hours, rest = divmod(max(0, int(seconds)), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
