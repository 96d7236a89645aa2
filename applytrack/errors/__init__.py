"""Unified exception hierarchy for applytrack.

Exception Hierarchy:
    ApplytrackError (base)
    +-- ConfigurationError - Configuration and settings issues
    +-- ValidationError - Input validation failures
    |   +-- InvalidActionError - Malformed offline action draft
    +-- SyncError - Offline sync engine failures
    |   +-- DeliveryError - One failed delivery attempt (retryable)
    |   +-- ActionDeadLetteredError - Retries exhausted, action dropped
    |   +-- SyncCycleError - Unexpected failure inside a sync cycle
    +-- PersistenceError - Offline queue storage issues

Usage:
    from applytrack.errors import ActionDeadLetteredError

    def report(error):
        if isinstance(error, ActionDeadLetteredError):
            show_toast(error.user_message)
"""

from applytrack.errors.base import (
    ApplytrackError,
    ConfigurationError,
    ErrorCode,
)
from applytrack.errors.factories import (
    action_dead_lettered,
    delivery_timeout,
    http_status_error,
    invalid_action,
)
from applytrack.errors.sync import (
    ActionDeadLetteredError,
    DeliveryError,
    InvalidActionError,
    PersistenceError,
    SyncCycleError,
    SyncError,
    ValidationError,
)

__all__ = [
    # Base
    "ApplytrackError",
    "ConfigurationError",
    "ErrorCode",
    # Validation
    "InvalidActionError",
    "ValidationError",
    # Sync
    "ActionDeadLetteredError",
    "DeliveryError",
    "SyncCycleError",
    "SyncError",
    # Storage
    "PersistenceError",
    # Factories
    "action_dead_lettered",
    "delivery_timeout",
    "http_status_error",
    "invalid_action",
]
