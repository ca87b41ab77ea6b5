"""Exception taxonomy for the habit core."""

from __future__ import annotations


class HabitError(Exception):
    """Base class for all habit-core errors."""


class ValidationError(HabitError, ValueError):
    """Input rejected before any write reaches the store."""


class DocumentSchemaError(ValidationError):
    """A stored document does not match the expected schema."""


class NotFoundError(HabitError, LookupError):
    """The habit is gone (deleted elsewhere or a stale id)."""


class RemoteWriteFailure(HabitError):
    """A write to the document store failed. Never retried automatically."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.cause = cause
        msg = f"{operation} failed"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)


class InvalidTransition(HabitError, RuntimeError):
    """Timer transition attempted from a state that does not allow it."""


class PendingActionError(HabitError, RuntimeError):
    """A memo prompt is already outstanding (or none is, when one is required)."""


class StoreError(Exception):
    """Raised by document store implementations."""


class DocumentNotFound(StoreError):
    """The addressed document does not exist."""
