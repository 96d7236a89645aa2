"""Validation, delivery, and storage errors raised by the sync engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from applytrack.errors.base import ApplytrackError, ErrorCode, with_context

if TYPE_CHECKING:
    from applytrack.sync.models import OfflineAction


# Validation Errors


class ValidationError(ApplytrackError):
    """Raised for input validation failures."""

    default_message = "Validation error"
    default_code = ErrorCode.VAL_INVALID_INPUT

    def __init__(
        self,
        message: str | None = None,
        *,
        field: str | None = None,
        value: Any = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = with_context(
            details, field=field or None, value=repr(value) if value is not None else None
        )
        super().__init__(message, code=code, details=details, cause=cause)


class InvalidActionError(ValidationError):
    """Raised when an action draft cannot be queued.

    A malformed draft is a programmer error: it is rejected at enqueue
    time and never reaches the queue.
    """

    default_message = "Invalid offline action"


# Sync Errors


class SyncError(ApplytrackError):
    """Base class for failures inside the sync engine."""

    default_message = "Sync error"
    default_code = ErrorCode.SYNC_DELIVERY_FAILED

    def __init__(
        self,
        message: str | None = None,
        *,
        action_id: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.action_id = action_id
        details = with_context(details, action_id=action_id or None)
        super().__init__(message, code=code, details=details, cause=cause)


class DeliveryError(SyncError):
    """One failed delivery attempt (non-2xx response, transport error, timeout).

    Delivery errors are transient; the retry policy decides what happens next.
    """

    default_message = "Failed to deliver action"
    retryable = True

    def __init__(
        self,
        message: str | None = None,
        *,
        action_id: str | None = None,
        status_code: int | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.status_code = status_code
        details = with_context(details, status_code=status_code)
        super().__init__(message, action_id=action_id, code=code, details=details, cause=cause)


class ActionDeadLetteredError(SyncError):
    """Terminal failure: an action exhausted its retries and was dropped."""

    default_message = "Action dropped after exhausting retries"
    default_code = ErrorCode.SYNC_MAX_RETRIES
    user_message = "Some changes could not be saved. Please try again manually."

    def __init__(
        self,
        action: OfflineAction,
        last_error: Exception | None = None,
        message: str | None = None,
    ) -> None:
        self.action = action
        self.last_error = last_error
        details: dict[str, Any] = {
            "kind": action.kind,
            "endpoint": action.endpoint,
            "method": action.method.value,
            "attempts": action.retry_count,
            "max_retries": action.max_retries,
        }
        if last_error is not None:
            details["last_error"] = str(last_error)
        super().__init__(
            message or f"Failed to sync action after {action.max_retries} retries",
            action_id=action.id,
            details=details,
            cause=last_error,
        )


class SyncCycleError(SyncError):
    """Unexpected failure while running a sync cycle."""

    default_message = "Failed to sync offline actions"
    default_code = ErrorCode.SYNC_CYCLE_FAILED


# Storage Errors


class PersistenceError(ApplytrackError):
    """Raised when the action store cannot be read or written."""

    default_message = "Offline queue storage error"
    default_code = ErrorCode.STORE_WRITE_FAILED

    def __init__(
        self,
        message: str | None = None,
        *,
        location: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = with_context(details, location=location or None)
        super().__init__(message, code=code, details=details, cause=cause)
