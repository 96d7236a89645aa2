"""Error codes and the root of the applytrack exception hierarchy.

Every error raised by applytrack carries a human-readable ``message``, a
machine-readable ``code`` and a ``details`` mapping of context. Errors
that a caller may retry (a single failed delivery) advertise it through
``retryable``; everything else is terminal for the operation that raised it.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Machine-readable error codes, grouped by prefix.

    The prefix before the first underscore is the category (see ``category``)
    and is what UI layers key their messaging on.
    """

    # Configuration (CFG_*)
    CFG_INVALID = "CFG_INVALID"
    CFG_MISSING = "CFG_MISSING"
    CFG_MIGRATION_FAILED = "CFG_MIGRATION_FAILED"

    # Draft validation (VAL_*)
    VAL_INVALID_INPUT = "VAL_INVALID_INPUT"
    VAL_MISSING_REQUIRED = "VAL_MISSING_REQUIRED"
    VAL_TYPE_ERROR = "VAL_TYPE_ERROR"

    # Delivery and sync cycles (SYNC_*)
    SYNC_DELIVERY_FAILED = "SYNC_DELIVERY_FAILED"
    SYNC_TIMEOUT = "SYNC_TIMEOUT"
    SYNC_MAX_RETRIES = "SYNC_MAX_RETRIES"
    SYNC_CYCLE_FAILED = "SYNC_CYCLE_FAILED"

    # Queue storage (STORE_*)
    STORE_READ_FAILED = "STORE_READ_FAILED"
    STORE_WRITE_FAILED = "STORE_WRITE_FAILED"
    STORE_CORRUPTED = "STORE_CORRUPTED"

    UNKNOWN = "UNKNOWN"

    @property
    def category(self) -> str:
        """Prefix of the code, e.g. "SYNC" for SYNC_TIMEOUT."""
        return self.value.split("_", 1)[0]


def with_context(details: dict[str, Any] | None, **context: Any) -> dict[str, Any]:
    """Copy ``details`` and add every ``context`` entry that is not None."""
    merged = dict(details or {})
    merged.update({key: value for key, value in context.items() if value is not None})
    return merged


class ApplytrackError(Exception):
    """Base exception for all applytrack errors.

    Subclasses set ``default_message``/``default_code`` and, for transient
    failures, ``retryable = True``.

    Attributes:
        message: Human-readable error message.
        code: Machine-readable ErrorCode.
        details: Extra context (ids, paths, status codes).
        cause: Underlying exception, also chained as ``__cause__``.
    """

    default_message: str = "An error occurred"
    default_code: ErrorCode = ErrorCode.UNKNOWN
    retryable: bool = False

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = dict(details or {})
        self.cause = cause
        super().__init__(self.message)
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        args = [repr(self.message)]
        if self.code != self.default_code:
            args.append(f"code={self.code.value!r}")
        if self.details:
            args.append(f"details={self.details!r}")
        if self.cause is not None:
            args.append(f"cause={self.cause!r}")
        return f"{type(self).__name__}({', '.join(args)})"

    def to_dict(self) -> dict[str, Any]:
        """Serializable form handed to listeners and the CLI."""
        report: dict[str, Any] = {
            "error": type(self).__name__,
            "code": self.code.value,
            "category": self.code.category,
            "detail": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            report["details"] = self.details
        return report


class ConfigurationError(ApplytrackError):
    """Invalid or unusable settings (bad queue path, unreadable config file)."""

    default_message = "Configuration error"
    default_code = ErrorCode.CFG_INVALID

    def __init__(
        self,
        message: str | None = None,
        *,
        config_key: str | None = None,
        config_path: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            details=with_context(details, config_key=config_key, config_path=config_path),
            cause=cause,
        )
