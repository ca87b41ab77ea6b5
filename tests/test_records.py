"""Tests for habitcore/records.py — done state, streaks, log patches."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from habitcore.dayclock import shift_day
from habitcore.errors import ValidationError
from habitcore.models import DayLog, Habit
from habitcore.records import (
    build_log_patch,
    edit_log_patch,
    format_total_duration,
    history,
    is_done_on,
    streak,
    undo_patch,
    validate_duration,
    validate_name,
)
from habitcore.store import Increment, apply_updates

NOW = datetime(2026, 2, 11, 9, 0, tzinfo=ZoneInfo("UTC"))


def _habit(done_days=(), **kwargs) -> Habit:
    logs = {day: DayLog(done=True, duration=0) for day in done_days}
    return Habit(id=kwargs.pop("id", "h1"), name=kwargs.pop("name", "Read"), logs=logs, **kwargs)


# ── Validation ────────────────────────────────────────────────


def test_validate_name_trims():
    assert validate_name("  Read  ") == "Read"


@pytest.mark.parametrize("bad", ["", "   ", "\t\n", None])
def test_validate_name_rejects_blank(bad):
    with pytest.raises(ValidationError):
        validate_name(bad)


def test_validate_duration():
    assert validate_duration(3600) == 3600
    assert validate_duration("90") == 90
    for bad in (-1, "abc", 1.5, True):
        with pytest.raises(ValidationError):
            validate_duration(bad)


# ── Done / streak ─────────────────────────────────────────────


def test_is_done_on_missing_key():
    assert is_done_on(_habit(), "2026-02-11") is False
    assert is_done_on(_habit(["2026-02-11"]), "2026-02-11") is True


def test_streak_no_logs():
    assert streak(_habit(), NOW, 4) == 0


def test_streak_only_today():
    assert streak(_habit(["2026-02-11"]), NOW, 4) == 1


def test_streak_counts_from_yesterday_when_today_open():
    h = _habit(["2026-02-08", "2026-02-09", "2026-02-10"])
    assert streak(h, NOW, 4) == 3


def test_streak_zero_when_today_and_yesterday_open():
    assert streak(_habit(["2026-02-09"]), NOW, 4) == 0


def test_streak_ignores_older_gaps():
    h = _habit(["2026-02-01", "2026-02-02", "2026-02-09", "2026-02-10", "2026-02-11"])
    assert streak(h, NOW, 4) == 3


def test_streak_uses_logical_day():
    # 02:00 on the 12th is still the 11th with a 04:00 rollover
    late = datetime(2026, 2, 12, 2, 0, tzinfo=ZoneInfo("UTC"))
    assert streak(_habit(["2026-02-11"]), late, 4) == 1
    assert streak(_habit(["2026-02-11"]), late, 0) == 1


def test_streak_undone_log_breaks_chain():
    h = _habit(["2026-02-09", "2026-02-11"])
    h.logs["2026-02-10"] = DayLog(done=False)
    assert streak(h, NOW, 4) == 1


def test_streak_bounded_lookback():
    h = _habit()
    day = "2026-02-11"
    for _ in range(400):
        h.logs[day] = DayLog(done=True)
        day = shift_day(day, -1)
    assert streak(h, NOW, 4) == 365


# ── Patches ───────────────────────────────────────────────────


def test_build_log_patch_shape():
    patch = build_log_patch("2026-02-11", True, 300, "good", NOW)
    assert patch["logs.2026-02-11.done"] is True
    assert patch["logs.2026-02-11.completedAt"] == "2026-02-11T09:00:00+00:00"
    assert patch["logs.2026-02-11.duration"] == Increment(300)
    assert patch["logs.2026-02-11.memo"] == "good"
    assert patch["totalDuration"] == Increment(300)


def test_build_log_patch_memo_none_leaves_memo():
    patch = build_log_patch("2026-02-11", False, 0, None, NOW)
    assert "logs.2026-02-11.memo" not in patch
    assert patch["logs.2026-02-11.completedAt"] is None
    assert "totalDuration" not in patch


def test_build_log_patch_rejects_bad_day():
    with pytest.raises(ValidationError):
        build_log_patch("11/02/2026", True, 0, None, NOW)


def test_two_patches_accumulate_regardless_of_done_flip():
    doc = _habit().to_dict()
    first = build_log_patch("2026-02-11", True, 300, None, NOW)
    second = build_log_patch("2026-02-11", False, 300, None, NOW)

    a = apply_updates(apply_updates(doc, first), second)
    b = apply_updates(apply_updates(doc, second), first)
    for result in (a, b):
        assert result["logs"]["2026-02-11"]["duration"] == 600
        assert result["totalDuration"] == 600
    assert a["logs"]["2026-02-11"]["done"] is False
    assert b["logs"]["2026-02-11"]["done"] is True


def test_undo_patch_mirrors_duration_into_total():
    h = _habit(total_duration=500)
    h.logs["2026-02-11"] = DayLog(done=True, duration=200, memo="x")
    result = Habit.from_dict("h1", apply_updates(h.to_dict(), undo_patch(h, "2026-02-11", NOW)))
    assert result.logs["2026-02-11"] == DayLog(done=False, completed_at=None, duration=0, memo="")
    assert result.total_duration == 300


def test_edit_log_patch_sets_absolute_duration():
    h = _habit(total_duration=100)
    h.logs["2026-02-09"] = DayLog(done=True, duration=100)
    patch = edit_log_patch(h, "2026-02-09", True, "3600", "long session", NOW)
    result = Habit.from_dict("h1", apply_updates(h.to_dict(), patch))
    assert result.logs["2026-02-09"].duration == 3600
    assert result.logs["2026-02-09"].memo == "long session"
    assert result.total_duration == 3600


def test_edit_log_patch_invalid_duration():
    with pytest.raises(ValidationError):
        edit_log_patch(_habit(), "2026-02-09", True, "-3", "", NOW)


# ── History / formatting ──────────────────────────────────────


def test_history_newest_first_with_today_flag():
    h = _habit(["2026-02-10"])
    rows = history(h, NOW, 4, days=3)
    assert [r.day for r in rows] == ["2026-02-11", "2026-02-10", "2026-02-09"]
    assert rows[0].is_today is True
    assert rows[1].done is True
    assert not any(r.is_today for r in rows[1:])


def test_history_skips_days_before_creation():
    h = _habit(created_at="2026-02-09T15:00:00+00:00")
    rows = history(h, NOW, 4)
    assert [r.day for r in rows] == ["2026-02-11", "2026-02-10", "2026-02-09"]


def test_history_creation_before_rollover_counts_as_previous_day():
    h = _habit(created_at="2026-02-10T02:00:00+00:00")
    rows = history(h, NOW, 4)
    assert rows[-1].day == "2026-02-09"


def test_format_total_duration():
    assert format_total_duration(0) == ""
    assert format_total_duration(59) == "0m"
    assert format_total_duration(45 * 60) == "45m"
    assert format_total_duration(2 * 3600 + 5 * 60) == "2h 5m"
