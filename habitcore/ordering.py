"""Habit ordering: stored rank, drag reorders, and the home-view buckets.

Every reorder renumbers the whole sequence 0..n-1, which also repairs
legacy records that never had an ``order``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from functools import cmp_to_key

from habitcore.errors import ValidationError
from habitcore.models import Habit, parse_timestamp
from habitcore.records import is_done_on

POSITIONS = {None, "before", "after"}


def _created_seconds(habit: Habit) -> float:
    created = parse_timestamp(habit.created_at)
    return created.timestamp() if created else 0.0


def _compare(a: Habit, b: Habit) -> int:
    if a.order is not None and b.order is not None:
        return a.order - b.order
    # Legacy records: newest first
    diff = _created_seconds(b) - _created_seconds(a)
    return (diff > 0) - (diff < 0)


def sort_habits(habits: Iterable[Habit]) -> list[Habit]:
    return sorted(habits, key=cmp_to_key(_compare))


def next_order(habits: Iterable[Habit]) -> int:
    """Rank for a newly created habit: one past the current maximum."""
    orders = [h.order if h.order is not None else -1 for h in habits]
    return max(orders) + 1 if orders else 0


def renumber(habits: Iterable[Habit]) -> list[Habit]:
    return [replace(h, order=i) for i, h in enumerate(habits)]


def reorder(
    habits: list[Habit],
    moved_id: str,
    target_id: str,
    position: str | None = None,
) -> list[Habit]:
    """Move *moved_id* next to *target_id* and renumber everything.

    position="before"/"after" places it relative to the target; None
    gives list-move semantics (the moved habit takes the target's index).
    """
    if position not in POSITIONS:
        raise ValidationError(f"Invalid drop position: {position!r}")
    seq = list(habits)
    ids = [h.id for h in seq]
    if moved_id == target_id or moved_id not in ids or target_id not in ids:
        return renumber(seq)

    target_index = ids.index(target_id)
    moved = seq.pop(ids.index(moved_id))
    if position is not None:
        target_index = next(i for i, h in enumerate(seq) if h.id == target_id)
        if position == "after":
            target_index += 1
    seq.insert(target_index, moved)
    return renumber(seq)


def bucket_reorder(
    habits: list[Habit],
    today: str,
    moved_id: str,
    target_id: str,
    position: str | None = None,
) -> list[Habit]:
    """Home-view reorder that keeps open habits ahead of done ones.

    A drop across the done/open boundary lands the moved habit on the
    boundary itself instead of at the literal drop index.
    """
    by_id = {h.id: h for h in habits}
    moved = by_id.get(moved_id)
    target = by_id.get(target_id)
    if moved is None or target is None or moved_id == target_id:
        return reorder(habits, moved_id, target_id, position)
    if is_done_on(moved, today) == is_done_on(target, today):
        return reorder(habits, moved_id, target_id, position)

    rest = [h for h in habits if h.id != moved_id]
    incomplete = [h for h in rest if not is_done_on(h, today)]
    complete = [h for h in rest if is_done_on(h, today)]
    return renumber(incomplete + [moved] + complete)


def display_order(habits: Iterable[Habit], today: str) -> list[Habit]:
    """Open habits first, then done ones; stable within each group."""
    habits = list(habits)
    return [h for h in habits if not is_done_on(h, today)] + [h for h in habits if is_done_on(h, today)]
