"""Typed dataclasses for habit documents.

Documents use camelCase keys; attributes are snake_case. ``from_dict``
is the store boundary: missing optional keys take defaults, anything of
the wrong type raises DocumentSchemaError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from habitcore.dayclock import DEFAULT_DAY_START_HOUR, parse_day
from habitcore.errors import DocumentSchemaError, ValidationError


# ── Field coercion ────────────────────────────────────────────


def _int(d: dict[str, Any], key: str, default: int | None, *, minimum: int | None = None) -> int | None:
    value = d.get(key, default)
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise DocumentSchemaError(f"{key} must be an integer, got {value!r}")
    if minimum is not None and value < minimum:
        raise DocumentSchemaError(f"{key} must be >= {minimum}, got {value}")
    return value


def _bool(d: dict[str, Any], key: str, default: bool) -> bool:
    value = d.get(key, default)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise DocumentSchemaError(f"{key} must be a boolean, got {value!r}")
    return value


def _str(d: dict[str, Any], key: str, default: str | None) -> str | None:
    value = d.get(key, default)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DocumentSchemaError(f"{key} must be a string, got {value!r}")
    return value


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    if value.endswith("Z"):
        # JavaScript toISOString() form
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise DocumentSchemaError(f"Invalid timestamp: {value!r}") from None


# ── Day log ───────────────────────────────────────────────────


@dataclass
class DayLog:
    done: bool = False
    completed_at: str | None = None
    duration: int = 0
    memo: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> DayLog:
        if not isinstance(d, dict):
            raise DocumentSchemaError(f"Day log must be a mapping, got {d!r}")
        return cls(
            done=_bool(d, "done", False),
            completed_at=_str(d, "completedAt", None),
            duration=_int(d, "duration", 0, minimum=0) or 0,
            memo=_str(d, "memo", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "done": self.done,
            "completedAt": self.completed_at,
            "duration": self.duration,
            "memo": self.memo,
        }


# ── Timer session ─────────────────────────────────────────────


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass
class TimerSession:
    target_date: str
    start_time: str | None = None  # None while paused
    elapsed: int = 0

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TimerSession:
        if not isinstance(d, dict):
            raise DocumentSchemaError(f"currentSession must be a mapping, got {d!r}")
        target = _str(d, "targetDate", None)
        if not target:
            raise DocumentSchemaError("currentSession.targetDate is required")
        try:
            parse_day(target)
        except ValidationError as e:
            raise DocumentSchemaError(str(e)) from None
        start = _str(d, "startTime", None)
        parse_timestamp(start)
        return cls(
            target_date=target,
            start_time=start,
            elapsed=_int(d, "elapsed", 0, minimum=0) or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "startTime": self.start_time,
            "elapsed": self.elapsed,
            "targetDate": self.target_date,
        }

    @property
    def running(self) -> bool:
        return self.start_time is not None


# ── Habit ─────────────────────────────────────────────────────


@dataclass
class Habit:
    id: str
    name: str
    order: int | None = None
    created_at: str | None = None
    is_timer_enabled: bool = False
    is_memo_enabled: bool = False
    total_duration: int = 0
    current_session: TimerSession | None = None
    logs: dict[str, DayLog] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, habit_id: str, d: dict[str, Any]) -> Habit:
        if not isinstance(d, dict):
            raise DocumentSchemaError(f"Habit {habit_id} is not a mapping")
        name = _str(d, "name", None)
        if not name or not name.strip():
            raise DocumentSchemaError(f"Habit {habit_id} has no name")
        raw_logs = d.get("logs") or {}
        if not isinstance(raw_logs, dict):
            raise DocumentSchemaError(f"Habit {habit_id}: logs must be a mapping")
        logs = {}
        for day, entry in raw_logs.items():
            try:
                parse_day(day)
            except ValidationError as e:
                raise DocumentSchemaError(f"Habit {habit_id}: {e}") from None
            logs[day] = DayLog.from_dict(entry)
        session = d.get("currentSession")
        created_at = _str(d, "createdAt", None)
        parse_timestamp(created_at)
        return cls(
            id=habit_id,
            name=name,
            order=_int(d, "order", None),
            created_at=created_at,
            is_timer_enabled=_bool(d, "isTimerEnabled", False),
            is_memo_enabled=_bool(d, "isMemoEnabled", False),
            total_duration=_int(d, "totalDuration", 0) or 0,
            current_session=TimerSession.from_dict(session) if session else None,
            logs=logs,
        )

    def to_dict(self) -> dict[str, Any]:
        """Document body (the id lives in the document path, not the body)."""
        d: dict[str, Any] = {
            "name": self.name,
            "isTimerEnabled": self.is_timer_enabled,
            "isMemoEnabled": self.is_memo_enabled,
            "totalDuration": self.total_duration,
            "currentSession": self.current_session.to_dict() if self.current_session else None,
            "logs": {day: log.to_dict() for day, log in self.logs.items()},
        }
        if self.order is not None:
            d["order"] = self.order
        if self.created_at is not None:
            d["createdAt"] = self.created_at
        return d

    def log(self, day: str) -> DayLog:
        """The day's log, or an empty one if the key is absent."""
        return self.logs.get(day) or DayLog()

    @property
    def timer_state(self) -> TimerState:
        if self.current_session is None:
            return TimerState.IDLE
        if self.current_session.running:
            return TimerState.RUNNING
        return TimerState.PAUSED


# ── Settings ──────────────────────────────────────────────────


@dataclass
class Settings:
    day_start_hour: int = DEFAULT_DAY_START_HOUR

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> Settings:
        if not d:
            return cls()
        hour = _int(d, "dayStartHour", DEFAULT_DAY_START_HOUR)
        if hour is None:
            hour = DEFAULT_DAY_START_HOUR
        if not 0 <= hour <= 23:
            raise DocumentSchemaError(f"dayStartHour out of range: {hour}")
        return cls(day_start_hour=hour)

    def to_dict(self) -> dict[str, Any]:
        return {"dayStartHour": self.day_start_hour}


# ── History ───────────────────────────────────────────────────


@dataclass
class HistoryRow:
    day: str
    done: bool = False
    duration: int = 0
    memo: str = ""
    is_today: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "day": self.day,
            "done": self.done,
            "duration": self.duration,
            "memo": self.memo,
            "isToday": self.is_today,
        }
