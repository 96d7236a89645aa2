"""Convenience factory functions for common error scenarios.

Provides shorthand functions for creating commonly-used error instances
with appropriate error codes and details pre-filled.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from applytrack.errors.base import ErrorCode
from applytrack.errors.sync import ActionDeadLetteredError, DeliveryError, InvalidActionError

if TYPE_CHECKING:
    from applytrack.sync.models import OfflineAction


def invalid_action(
    field: str, reason: str, value: Any = None, *, wrong_type: bool = False
) -> InvalidActionError:
    """Create an InvalidActionError for a malformed draft field.

    A missing value wins over ``wrong_type``: None or "" is always reported
    as VAL_MISSING_REQUIRED.
    """
    if value is None or value == "":
        code = ErrorCode.VAL_MISSING_REQUIRED
    elif wrong_type:
        code = ErrorCode.VAL_TYPE_ERROR
    else:
        code = ErrorCode.VAL_INVALID_INPUT
    return InvalidActionError(
        f"Invalid action {field}: {reason}", field=field, value=value, code=code
    )


def http_status_error(action_id: str, status_code: int, reason: str = "") -> DeliveryError:
    """Create a DeliveryError for a non-2xx response."""
    message = f"HTTP {status_code}: {reason}" if reason else f"HTTP {status_code}"
    return DeliveryError(message, action_id=action_id, status_code=status_code)


def delivery_timeout(action_id: str, timeout: float) -> DeliveryError:
    """Create a DeliveryError for a request that did not finish in time."""
    return DeliveryError(
        f"Request timed out after {timeout:.1f}s",
        action_id=action_id,
        code=ErrorCode.SYNC_TIMEOUT,
        details={"timeout_seconds": timeout},
    )


def action_dead_lettered(
    action: OfflineAction, error: Exception | None = None
) -> ActionDeadLetteredError:
    """Create the terminal failure report for an action out of retries."""
    return ActionDeadLetteredError(action, last_error=error)
