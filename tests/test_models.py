"""Tests for habitcore/models.py — store boundary parsing."""

import pytest

from habitcore.errors import DocumentSchemaError
from habitcore.models import DayLog, Habit, Settings, TimerSession, TimerState, parse_timestamp


def _doc(**overrides):
    doc = {
        "name": "Read",
        "order": 2,
        "createdAt": "2026-02-01T08:00:00+00:00",
        "isTimerEnabled": True,
        "isMemoEnabled": False,
        "totalDuration": 120,
        "currentSession": None,
        "logs": {
            "2026-02-10": {"done": True, "completedAt": "2026-02-10T21:00:00+00:00", "duration": 120, "memo": "ch. 3"},
        },
    }
    doc.update(overrides)
    return doc


def test_habit_from_dict():
    h = Habit.from_dict("h1", _doc())
    assert h.id == "h1"
    assert h.order == 2
    assert h.is_timer_enabled is True
    assert h.logs["2026-02-10"].memo == "ch. 3"
    assert h.timer_state is TimerState.IDLE


def test_habit_to_dict_omits_id():
    d = Habit.from_dict("h1", _doc()).to_dict()
    assert "id" not in d
    assert d["logs"]["2026-02-10"]["duration"] == 120
    assert d["createdAt"] == "2026-02-01T08:00:00+00:00"


def test_legacy_habit_defaults():
    h = Habit.from_dict("old", {"name": "Walk"})
    assert h.order is None
    assert h.total_duration == 0
    assert h.logs == {}
    assert "order" not in h.to_dict()


def test_missing_log_key_reads_as_empty():
    h = Habit.from_dict("h1", _doc())
    log = h.log("2026-02-11")
    assert log == DayLog()
    assert "2026-02-11" not in h.logs


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": "   "},
        {"name": 5},
        {"order": "first"},
        {"isTimerEnabled": "yes"},
        {"logs": ["2026-02-10"]},
        {"logs": {"yesterday": {"done": True}}},
        {"logs": {"2026-02-10": {"done": True, "duration": -5}}},
        {"currentSession": {"startTime": None, "elapsed": 3}},
        {"createdAt": "not a date"},
    ],
)
def test_habit_rejects_malformed_documents(overrides):
    with pytest.raises(DocumentSchemaError):
        Habit.from_dict("h1", _doc(**overrides))


def test_session_states():
    running = Habit.from_dict("h", _doc(currentSession={
        "startTime": "2026-02-11T09:00:00+00:00", "elapsed": 0, "targetDate": "2026-02-11",
    }))
    paused = Habit.from_dict("h", _doc(currentSession={
        "startTime": None, "elapsed": 40, "targetDate": "2026-02-11",
    }))
    assert running.timer_state is TimerState.RUNNING
    assert paused.timer_state is TimerState.PAUSED
    assert paused.current_session == TimerSession(target_date="2026-02-11", start_time=None, elapsed=40)


def test_settings_default_and_range():
    assert Settings.from_dict(None).day_start_hour == 4
    assert Settings.from_dict({"dayStartHour": 0}).day_start_hour == 0
    with pytest.raises(DocumentSchemaError):
        Settings.from_dict({"dayStartHour": 24})


def test_utc_z_suffix_timestamps_accepted():
    h = Habit.from_dict("h1", _doc(
        createdAt="2026-02-01T08:00:00.000Z",
        currentSession={"startTime": "2026-02-11T08:59:00.123Z", "elapsed": 0, "targetDate": "2026-02-11"},
        logs={"2026-02-10": {"done": True, "completedAt": "2026-02-10T21:00:00Z"}},
    ))
    assert h.timer_state is TimerState.RUNNING
    assert parse_timestamp(h.current_session.start_time).utcoffset().total_seconds() == 0
    assert parse_timestamp("2026-02-10T21:00:00Z") == parse_timestamp("2026-02-10T21:00:00+00:00")
