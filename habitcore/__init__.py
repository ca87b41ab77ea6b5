"""Streakkeeper core library — day clock, habit records, timer and sync.

Public API re-exports for convenient imports:
    from habitcore import HabitBoard, UserContext, logical_date, ...
"""

# Config & logging
from habitcore.config import (
    AppConfig,
    data_root,
    config_path,
    store_dir,
    load_config,
)
from habitcore.logging_config import setup_logging

# Errors
from habitcore.errors import (
    HabitError,
    ValidationError,
    DocumentSchemaError,
    NotFoundError,
    RemoteWriteFailure,
    InvalidTransition,
    PendingActionError,
    StoreError,
    DocumentNotFound,
)

# Day clock
from habitcore.dayclock import (
    DEFAULT_DAY_START_HOUR,
    logical_date,
    past_n_days,
    shift_day,
    now_local,
)

# Models
from habitcore.models import (
    DayLog,
    TimerSession,
    TimerState,
    Habit,
    Settings,
    HistoryRow,
)

# Records
from habitcore.records import (
    validate_name,
    validate_duration,
    is_done_on,
    streak,
    history,
    build_log_patch,
    complete_patch,
    undo_patch,
    edit_log_patch,
    format_total_duration,
)

# Timer
from habitcore.timer import (
    StopCapture,
    start_patch,
    pause_patch,
    resume_patch,
    stop,
    commit_stop_patch,
    display_seconds,
    format_clock,
)

# Ordering
from habitcore.ordering import (
    sort_habits,
    next_order,
    reorder,
    bucket_reorder,
    display_order,
)

# Store
from habitcore.store import (
    Increment,
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    DocumentStore,
    MemoryDocumentStore,
    FileDocumentStore,
    apply_updates,
    open_store,
)

# Sync
from habitcore.sync import (
    UserContext,
    PendingKind,
    PendingAction,
    HabitBoard,
)
