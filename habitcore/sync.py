"""Reconciliation between the in-memory habit list and the document store.

Every mutation follows the same cycle:

1. build a field-path patch with the pure helpers (records/timer/ordering)
2. apply it to the local copy so the caller sees the result at once
3. send it to the store, addressed by habit id and day key
4. reload the whole collection; whatever the store returns wins

A failed write is logged and raised as RemoteWriteFailure. The local copy
keeps the optimistic change; the next successful reload corrects it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from zoneinfo import ZoneInfo

from habitcore import timer
from habitcore.dayclock import check_rollover_hour, logical_date, now_local, parse_day
from habitcore.errors import (
    DocumentNotFound,
    DocumentSchemaError,
    NotFoundError,
    PendingActionError,
    RemoteWriteFailure,
    StoreError,
)
from habitcore.models import Habit, HistoryRow, Settings
from habitcore.ordering import bucket_reorder, display_order, next_order, reorder, sort_habits
from habitcore.records import (
    complete_patch,
    edit_log_patch,
    history,
    is_done_on,
    streak,
    undo_patch,
    validate_name,
)
from habitcore.store import (
    SERVER_TIMESTAMP,
    DocumentStore,
    Updates,
    apply_updates,
    habit_path,
    habits_collection,
    settings_path,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserContext:
    """Who is signed in and where their documents live."""

    uid: str
    store: DocumentStore


class PendingKind(str, Enum):
    STOP_TIMER = "stopTimer"
    COMPLETE = "complete"


@dataclass(frozen=True)
class PendingAction:
    """A stop/complete waiting on memo input."""

    kind: PendingKind
    habit_id: str
    habit_name: str
    day: str
    elapsed_seconds: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "habitId": self.habit_id,
            "habitName": self.habit_name,
            "day": self.day,
            "elapsedSeconds": self.elapsed_seconds,
        }


class HabitBoard:
    """One user's habits plus the single-slot memo register."""

    def __init__(
        self,
        context: UserContext,
        clock: Callable[[], datetime] | None = None,
        tz: ZoneInfo | None = None,
    ) -> None:
        self.context = context
        self._clock = clock or (lambda: now_local(tz))
        self.habits: list[Habit] = []
        self.settings = Settings()
        self.pending: PendingAction | None = None

    # ── Snapshots ─────────────────────────────────────────────

    def now(self) -> datetime:
        return self._clock()

    @property
    def rollover_hour(self) -> int:
        return self.settings.day_start_hour

    @property
    def today(self) -> str:
        return logical_date(self.now(), self.rollover_hour)

    def find(self, habit_id: str) -> Habit | None:
        for h in self.habits:
            if h.id == habit_id:
                return h
        return None

    def _habit(self, habit_id: str) -> Habit:
        habit = self.find(habit_id)
        if habit is None:
            raise NotFoundError(f"Habit not found: {habit_id}")
        return habit

    def display(self) -> list[Habit]:
        return display_order(self.habits, self.today)

    def streak_of(self, habit: Habit) -> int:
        return streak(habit, self.now(), self.rollover_hour)

    def history_of(self, habit: Habit) -> list[HistoryRow]:
        return history(habit, self.now(), self.rollover_hour)

    # ── Reads ─────────────────────────────────────────────────

    async def load(self) -> bool:
        """Reload every habit. Returns False (state left stale) on failure."""
        try:
            docs = await self.context.store.get_all(habits_collection(self.context.uid))
        except StoreError:
            logger.exception("Failed to load habits for %s", self.context.uid)
            return False

        loaded = []
        for habit_id, doc in docs.items():
            try:
                loaded.append(Habit.from_dict(habit_id, doc))
            except DocumentSchemaError as e:
                logger.error("Skipping malformed habit %s: %s", habit_id, e)
        loaded = sort_habits(loaded)

        before = {h.id: h.to_dict() for h in self.habits}
        after = {h.id: h.to_dict() for h in loaded}
        if before and before != after:
            logger.debug("Reload replaced local state for %d habits", len(after))
        self.habits = loaded
        return True

    async def load_settings(self) -> Settings:
        try:
            doc = await self.context.store.get(settings_path(self.context.uid))
            self.settings = Settings.from_dict(doc)
        except StoreError:
            logger.exception("Failed to load settings for %s", self.context.uid)
        except DocumentSchemaError as e:
            logger.error("Ignoring malformed settings for %s: %s", self.context.uid, e)
        return self.settings

    async def open_habit(self, habit_id: str) -> Habit:
        """Fetch one habit for the detail view."""
        try:
            doc = await self.context.store.get(habit_path(self.context.uid, habit_id))
        except StoreError:
            logger.exception("Failed to fetch habit %s", habit_id)
            return self._habit(habit_id)
        if doc is None:
            self.habits = [h for h in self.habits if h.id != habit_id]
            raise NotFoundError(f"Habit not found: {habit_id}")
        habit = Habit.from_dict(habit_id, doc)
        self._replace(habit)
        return habit

    async def on_visible(self) -> str:
        """Foreground refresh: recompute the logical day and reload."""
        await self.load()
        return self.today

    # ── Settings ──────────────────────────────────────────────

    async def save_settings(self, day_start_hour: int) -> Settings:
        check_rollover_hour(day_start_hour)
        settings = Settings(day_start_hour=day_start_hour)
        try:
            await self.context.store.set(settings_path(self.context.uid), settings.to_dict(), merge=True)
        except StoreError as e:
            logger.exception("Failed to save settings for %s", self.context.uid)
            raise RemoteWriteFailure("save settings", e) from e
        self.settings = settings
        logger.info("Day start hour for %s set to %d", self.context.uid, day_start_hour)
        return settings

    # ── Habit CRUD ────────────────────────────────────────────

    async def add_habit(self, name: str, timer_enabled: bool = False, memo_enabled: bool = False) -> Habit:
        name = validate_name(name)
        order = next_order(self.habits)
        data = {
            "name": name,
            "createdAt": SERVER_TIMESTAMP,
            "order": order,
            "isTimerEnabled": bool(timer_enabled),
            "isMemoEnabled": bool(memo_enabled),
            "totalDuration": 0,
            "currentSession": None,
            "logs": {},
        }
        try:
            habit_id = await self.context.store.add(habits_collection(self.context.uid), data)
        except StoreError as e:
            logger.exception("Failed to add habit %r", name)
            raise RemoteWriteFailure("add habit", e) from e

        # createdAt stays empty until the reload brings the server value
        habit = Habit(
            id=habit_id,
            name=name,
            order=order,
            is_timer_enabled=bool(timer_enabled),
            is_memo_enabled=bool(memo_enabled),
        )
        self.habits.append(habit)
        logger.info("Added habit %s (%r)", habit_id, name)
        await self.load()
        return self.find(habit_id) or habit

    async def rename_habit(self, habit_id: str, name: str) -> Habit:
        name = validate_name(name)
        return await self._commit(habit_id, {"name": name}, "rename")

    async def set_flags(
        self,
        habit_id: str,
        timer_enabled: bool | None = None,
        memo_enabled: bool | None = None,
    ) -> Habit:
        patch: Updates = {}
        if timer_enabled is not None:
            patch["isTimerEnabled"] = bool(timer_enabled)
        if memo_enabled is not None:
            patch["isMemoEnabled"] = bool(memo_enabled)
        if not patch:
            return self._habit(habit_id)
        return await self._commit(habit_id, patch, "update flags")

    async def delete_habit(self, habit_id: str) -> None:
        self._habit(habit_id)
        self.habits = [h for h in self.habits if h.id != habit_id]
        if self.pending is not None and self.pending.habit_id == habit_id:
            self.pending = None
        try:
            await self.context.store.delete(habit_path(self.context.uid, habit_id))
        except StoreError as e:
            logger.exception("Failed to delete habit %s", habit_id)
            raise RemoteWriteFailure("delete habit", e) from e
        logger.info("Deleted habit %s", habit_id)
        await self.load()

    # ── Completion ────────────────────────────────────────────

    async def mark_done(self, habit_id: str) -> PendingAction | None:
        """Complete today. Memo habits return a pending action instead."""
        self._ensure_no_pending()
        habit = self._habit(habit_id)
        day = self.today
        if habit.is_memo_enabled:
            self.pending = PendingAction(PendingKind.COMPLETE, habit.id, habit.name, day)
            return self.pending
        await self._commit(habit_id, complete_patch(day, "", self.now()), "complete")
        return None

    async def undo_complete(self, habit_id: str) -> Habit:
        habit = self._habit(habit_id)
        return await self._commit(habit_id, undo_patch(habit, self.today, self.now()), "undo")

    async def toggle_today(self, habit_id: str) -> PendingAction | None:
        if is_done_on(self._habit(habit_id), self.today):
            await self.undo_complete(habit_id)
            return None
        return await self.mark_done(habit_id)

    async def edit_log(self, habit_id: str, day: str, done: bool, duration: object, memo: str = "") -> Habit:
        parse_day(day)
        habit = self._habit(habit_id)
        patch = edit_log_patch(habit, day, done, duration, memo, self.now())
        return await self._commit(habit_id, patch, "edit log")

    # ── Timer ─────────────────────────────────────────────────

    async def start_timer(self, habit_id: str) -> Habit:
        habit = self._habit(habit_id)
        patch = timer.start_patch(habit, self.now(), self.rollover_hour)
        return await self._commit(habit_id, patch, "start timer")

    async def pause_timer(self, habit_id: str) -> Habit:
        patch = timer.pause_patch(self._habit(habit_id), self.now())
        return await self._commit(habit_id, patch, "pause timer")

    async def resume_timer(self, habit_id: str) -> Habit:
        patch = timer.resume_patch(self._habit(habit_id), self.now())
        return await self._commit(habit_id, patch, "resume timer")

    async def stop_timer(self, habit_id: str) -> PendingAction | None:
        """Stop and commit, or hold the measurement until the memo arrives."""
        self._ensure_no_pending()
        habit = self._habit(habit_id)
        capture = timer.stop(habit, self.now())
        if habit.is_memo_enabled:
            self.pending = PendingAction(
                PendingKind.STOP_TIMER,
                habit.id,
                habit.name,
                capture.target_date,
                capture.elapsed_seconds,
            )
            return self.pending
        patch = timer.commit_stop_patch(capture.target_date, capture.elapsed_seconds, None)
        await self._commit(habit_id, patch, "stop timer")
        return None

    # ── Memo prompt ───────────────────────────────────────────

    async def submit_memo(self, memo: str) -> Habit:
        pending = self.pending
        if pending is None:
            raise PendingActionError("No memo prompt is open")
        self.pending = None
        memo = memo or ""
        if pending.kind is PendingKind.STOP_TIMER:
            patch = timer.commit_stop_patch(pending.day, pending.elapsed_seconds, memo)
            return await self._commit(pending.habit_id, patch, "stop timer")
        return await self._commit(pending.habit_id, complete_patch(pending.day, memo, self.now()), "complete")

    async def skip_memo(self) -> Habit:
        return await self.submit_memo("")

    async def close_memo(self) -> Habit:
        """Dismissing the prompt commits with an empty memo; there is no cancel."""
        return await self.skip_memo()

    def _ensure_no_pending(self) -> None:
        if self.pending is not None:
            raise PendingActionError(
                f"A memo prompt for {self.pending.habit_name!r} is still open"
            )

    # ── Ordering ──────────────────────────────────────────────

    async def move(self, moved_id: str, target_id: str, position: str | None = None) -> list[Habit]:
        """Home-view drop: keeps open habits ahead of done ones."""
        return await self._commit_order(
            bucket_reorder(self.habits, self.today, moved_id, target_id, position)
        )

    async def move_in_manager(self, moved_id: str, target_id: str, position: str | None = None) -> list[Habit]:
        return await self._commit_order(reorder(self.habits, moved_id, target_id, position))

    async def _commit_order(self, ordered: list[Habit]) -> list[Habit]:
        self.habits = ordered
        writes = [(habit_path(self.context.uid, h.id), {"order": h.order}) for h in ordered]
        try:
            await self.context.store.commit_batch(writes)
        except StoreError as e:
            logger.exception("Failed to save order for %s", self.context.uid)
            raise RemoteWriteFailure("reorder", e) from e
        logger.info("Saved order of %d habits", len(writes))
        await self.load()
        return self.habits

    # ── Write cycle ───────────────────────────────────────────

    def _replace(self, habit: Habit) -> None:
        self.habits = [habit if h.id == habit.id else h for h in self.habits]

    async def _commit(self, habit_id: str, patch: Updates, operation: str) -> Habit:
        habit = self._habit(habit_id)
        optimistic = Habit.from_dict(habit_id, apply_updates(habit.to_dict(), patch, self.now()))
        self._replace(optimistic)
        try:
            await self.context.store.update(habit_path(self.context.uid, habit_id), patch)
        except DocumentNotFound:
            logger.warning("%s: habit %s no longer exists", operation, habit_id)
            await self.load()
            raise NotFoundError(f"Habit not found: {habit_id}") from None
        except StoreError as e:
            logger.exception("%s failed for habit %s", operation, habit_id)
            raise RemoteWriteFailure(operation, e) from e
        logger.info("%s: habit %s", operation, habit_id)
        await self.load()
        return self.find(habit_id) or optimistic
