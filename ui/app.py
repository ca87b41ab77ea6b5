from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from habitcore import (
    AppConfig,
    DocumentStore,
    Habit,
    HabitBoard,
    HabitError,
    InvalidTransition,
    NotFoundError,
    PendingAction,
    PendingActionError,
    RemoteWriteFailure,
    UserContext,
    ValidationError,
    display_seconds,
    format_clock,
    format_total_duration,
    is_done_on,
    load_config,
    open_store,
    setup_logging,
    store_dir,
)

logger = logging.getLogger(__name__)

router = APIRouter()
security = HTTPBasic(auto_error=False)


# ── Auth ──────────────────────────────────────────────────────


def get_current_user(
    request: Request,
    credentials: HTTPBasicCredentials | None = Depends(security),
) -> str:
    """Resolve the user id. With no users configured everyone is 'guest'."""
    users: dict[str, str] = request.app.state.config.users
    if not users:
        return "guest"
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    expected = users.get(credentials.username, "")
    correct_password = secrets.compare_digest(
        credentials.password.encode("utf-8"), expected.encode("utf-8")
    )
    if not expected or not correct_password:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


async def get_board(request: Request, username: str = Depends(get_current_user)) -> HabitBoard:
    """One board per signed-in user, kept for the life of the app."""
    boards: dict[str, HabitBoard] = request.app.state.boards
    board = boards.get(username)
    if board is None:
        context = UserContext(uid=username, store=request.app.state.store)
        board = HabitBoard(context, clock=request.app.state.clock, tz=request.app.state.config.tzinfo())
        await board.load_settings()
        await board.load()
        boards[username] = board
    return board


def _require_confirm(payload: dict[str, Any], what: str) -> None:
    if not payload.get("confirm"):
        raise HTTPException(status_code=409, detail=f"Confirmation required to {what}")


# ── Serialization ─────────────────────────────────────────────


def habit_view(board: HabitBoard, habit: Habit) -> dict[str, Any]:
    now = board.now()
    today = board.today
    session = habit.current_session
    seconds = display_seconds(habit, now)
    return {
        "id": habit.id,
        "name": habit.name,
        "order": habit.order,
        "createdAt": habit.created_at,
        "isTimerEnabled": habit.is_timer_enabled,
        "isMemoEnabled": habit.is_memo_enabled,
        "totalDuration": habit.total_duration,
        "totalDurationLabel": format_total_duration(habit.total_duration),
        "doneToday": is_done_on(habit, today),
        "today": habit.log(today).to_dict(),
        "streak": board.streak_of(habit),
        "timer": {
            "state": habit.timer_state.value,
            "targetDate": session.target_date if session else None,
            "elapsedSeconds": seconds,
            "display": format_clock(seconds),
        },
    }


def board_view(board: HabitBoard) -> dict[str, Any]:
    return {
        "ok": True,
        "today": board.today,
        "habits": [habit_view(board, h) for h in board.display()],
        "pending": board.pending.to_dict() if board.pending else None,
    }


def _pending_response(board: HabitBoard, pending: PendingAction | None) -> dict[str, Any]:
    body = board_view(board)
    body["memoRequired"] = pending is not None
    return body


# ── Endpoints ─────────────────────────────────────────────────


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"ok": "true"}


@router.get("/api/habits")
async def api_list_habits(board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    """Home view: open habits first, then today's completed ones."""
    await board.load()
    return board_view(board)


@router.post("/api/habits")
async def api_create_habit(payload: dict[str, Any] = Body(...), board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    habit = await board.add_habit(
        payload.get("name", ""),
        timer_enabled=bool(payload.get("isTimerEnabled", False)),
        memo_enabled=bool(payload.get("isMemoEnabled", False)),
    )
    return {"ok": True, "habit": habit_view(board, habit)}


@router.get("/api/habits/{habit_id}")
async def api_get_habit(habit_id: str, board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    """Detail view with the last 30 days of history."""
    habit = await board.open_habit(habit_id)
    return {
        "ok": True,
        "habit": habit_view(board, habit),
        "history": [row.to_dict() for row in board.history_of(habit)],
    }


@router.put("/api/habits/{habit_id}")
async def api_update_habit(habit_id: str, payload: dict[str, Any] = Body(...), board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    habit = board.find(habit_id)
    if "name" in payload:
        habit = await board.rename_habit(habit_id, payload["name"])
    if "isTimerEnabled" in payload or "isMemoEnabled" in payload:
        habit = await board.set_flags(
            habit_id,
            timer_enabled=payload.get("isTimerEnabled"),
            memo_enabled=payload.get("isMemoEnabled"),
        )
    if habit is None:
        raise NotFoundError(f"Habit not found: {habit_id}")
    return {"ok": True, "habit": habit_view(board, habit)}


@router.delete("/api/habits/{habit_id}")
async def api_delete_habit(habit_id: str, confirm: bool = False, board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    _require_confirm({"confirm": confirm}, "delete a habit and all its records")
    await board.delete_habit(habit_id)
    return {"ok": True, "habit_id": habit_id}


@router.post("/api/habits/{habit_id}/toggle")
async def api_toggle_today(habit_id: str, payload: dict[str, Any] = Body(default={}), board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    """Tap on a habit: complete it, or (confirmed) undo today's record."""
    habit = board.find(habit_id)
    if habit is None:
        raise NotFoundError(f"Habit not found: {habit_id}")
    if is_done_on(habit, board.today):
        _require_confirm(payload, "undo today's record")
    pending = await board.toggle_today(habit_id)
    return _pending_response(board, pending)


@router.post("/api/habits/{habit_id}/timer/{action}")
async def api_timer(habit_id: str, action: str, board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    pending = None
    if action == "start":
        await board.start_timer(habit_id)
    elif action == "pause":
        await board.pause_timer(habit_id)
    elif action == "resume":
        await board.resume_timer(habit_id)
    elif action == "stop":
        pending = await board.stop_timer(habit_id)
    else:
        raise HTTPException(status_code=404, detail=f"Unknown timer action: {action}")
    return _pending_response(board, pending)


@router.put("/api/habits/{habit_id}/logs/{day}")
async def api_edit_log(habit_id: str, day: str, payload: dict[str, Any] = Body(...), board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    habit = await board.edit_log(
        habit_id,
        day,
        done=bool(payload.get("done", False)),
        duration=payload.get("duration", 0),
        memo=str(payload.get("memo", "") or ""),
    )
    return {
        "ok": True,
        "habit": habit_view(board, habit),
        "history": [row.to_dict() for row in board.history_of(habit)],
    }


@router.post("/api/memo")
async def api_submit_memo(payload: dict[str, Any] = Body(default={}), board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    await board.submit_memo(str(payload.get("memo", "") or ""))
    return board_view(board)


@router.post("/api/memo/skip")
async def api_skip_memo(board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    await board.skip_memo()
    return board_view(board)


@router.post("/api/reorder")
async def api_reorder(payload: dict[str, Any] = Body(...), board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    """Commit a drag. view="home" keeps the done/open buckets intact."""
    moved_id = str(payload.get("movedId", ""))
    target_id = str(payload.get("targetId", ""))
    position = payload.get("position")
    if payload.get("view", "home") == "manage":
        await board.move_in_manager(moved_id, target_id, position)
    else:
        await board.move(moved_id, target_id, position)
    return board_view(board)


@router.get("/api/settings")
async def api_get_settings(board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    settings = await board.load_settings()
    return {"ok": True, "settings": settings.to_dict()}


@router.put("/api/settings")
async def api_save_settings(payload: dict[str, Any] = Body(...), board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    _require_confirm(payload, "change the day start hour")
    hour = payload.get("dayStartHour")
    settings = await board.save_settings(hour)
    return {"ok": True, "settings": settings.to_dict(), "today": board.today}


@router.post("/api/visibility")
async def api_visibility(board: HabitBoard = Depends(get_board)) -> dict[str, Any]:
    """The client came back to the foreground."""
    await board.on_visible()
    return board_view(board)


# ── Errors ────────────────────────────────────────────────────


def _status_for(exc: HabitError) -> int:
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (InvalidTransition, PendingActionError)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, RemoteWriteFailure):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def habit_error_handler(request: Request, exc: HabitError) -> JSONResponse:
    return JSONResponse(status_code=_status_for(exc), content={"ok": False, "detail": str(exc)})


# ── App ───────────────────────────────────────────────────────


def create_app(
    config: AppConfig | None = None,
    store: DocumentStore | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    if config is None:
        config = load_config()
    setup_logging(config.log_level)

    app = FastAPI(title="Streakkeeper", version="0.1.0")
    app.state.config = config
    app.state.store = store or open_store(config.store, store_dir())
    app.state.clock = clock
    app.state.boards = {}
    app.add_exception_handler(HabitError, habit_error_handler)
    app.include_router(router)
    logger.info("Streakkeeper API ready (store=%s, tz=%s)", config.store, config.timezone)
    return app


app = create_app()
