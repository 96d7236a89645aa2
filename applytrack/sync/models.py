"""Data models for the offline action queue.

Defines the queued-mutation contract (OfflineAction), the caller-supplied
draft it is built from, and the per-attempt SyncResult.

Usage:
    from applytrack.sync.models import ActionDraft, ActionPriority

    draft = ActionDraft(
        kind="ADD_APPLICATION",
        payload={"company": "Acme", "role": "Engineer"},
        endpoint="/api/applications",
        method="POST",
        priority=ActionPriority.HIGH,
    )
"""

from __future__ import annotations

import json
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from applytrack.errors import invalid_action


class ActionPriority(str, Enum):
    """Priority bucket of a queued action."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Dispatch rank; lower ranks are dispatched first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK: dict[ActionPriority, int] = {
    ActionPriority.HIGH: 0,
    ActionPriority.MEDIUM: 1,
    ActionPriority.LOW: 2,
}


class HttpMethod(str, Enum):
    """HTTP methods an action may be delivered with."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


def _enum_value(value: Any) -> str:
    """Return the raw value; str() of a str-mixin Enum yields "Cls.NAME"."""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


@dataclass
class ActionDraft:
    """What a caller hands to ``ActionQueue.enqueue``.

    Attributes:
        kind: Caller-defined tag, e.g. "ADD_APPLICATION".
        payload: JSON-serializable body of the mutation.
        endpoint: Target URL, absolute or relative to the configured base URL.
        method: HTTP method (GET, POST, PUT or DELETE).
        headers: Extra request headers.
        priority: Priority bucket, "medium" when omitted.
        max_retries: Retry budget; the queue default is used when None.
    """

    kind: str
    payload: dict[str, Any]
    endpoint: str
    method: HttpMethod | str
    headers: dict[str, str] | None = None
    priority: ActionPriority | str = ActionPriority.MEDIUM
    max_retries: int | None = None


@dataclass
class OfflineAction:
    """A queued, retryable unit of work representing one pending mutation.

    An action is only held by the queue while ``retry_count < max_retries``
    and no successful delivery has been recorded.
    """

    id: str
    kind: str
    payload: dict[str, Any]
    endpoint: str
    method: HttpMethod
    priority: ActionPriority
    max_retries: int
    headers: dict[str, str] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    retry_count: int = 0
    last_attempt_at: float | None = None
    last_error: str | None = None

    @classmethod
    def from_draft(
        cls,
        draft: ActionDraft,
        *,
        default_max_retries: int = 3,
        now: float | None = None,
    ) -> OfflineAction:
        """Validate a draft and stamp it with an id, timestamp and zero retries.

        Raises:
            InvalidActionError: If any draft field is malformed.
        """
        for field in ("kind", "endpoint"):
            value = getattr(draft, field)
            if not isinstance(value, str):
                raise invalid_action(field, "must be a string", value, wrong_type=True)
            if not value.strip():
                raise invalid_action(field, "must not be empty", value)

        try:
            method = HttpMethod(_enum_value(draft.method).upper())
        except ValueError:
            supported = ", ".join(m.value for m in HttpMethod)
            raise invalid_action(
                "method", f"unsupported method (expected one of {supported})", draft.method
            ) from None

        try:
            priority = ActionPriority(_enum_value(draft.priority).lower())
        except ValueError:
            raise invalid_action(
                "priority", "must be low, medium or high", draft.priority
            ) from None

        max_retries = default_max_retries if draft.max_retries is None else draft.max_retries
        if isinstance(max_retries, bool) or not isinstance(max_retries, int):
            raise invalid_action("max_retries", "must be an integer", max_retries, wrong_type=True)
        if max_retries < 1:
            raise invalid_action("max_retries", "must be >= 1", max_retries)

        if not isinstance(draft.payload, Mapping):
            raise invalid_action("payload", "must be a mapping", draft.payload, wrong_type=True)
        try:
            # Round-trip so the queue never shares mutable state with the caller
            payload = json.loads(json.dumps(dict(draft.payload)))
        except (TypeError, ValueError) as e:
            raise invalid_action("payload", f"must be JSON-serializable ({e})") from e

        headers = dict(draft.headers or {})
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in headers.items()):
            raise invalid_action(
                "headers", "names and values must be strings", draft.headers, wrong_type=True
            )

        return cls(
            id=str(uuid.uuid4()),
            kind=draft.kind,
            payload=payload,
            endpoint=draft.endpoint.strip(),
            method=method,
            priority=priority,
            max_retries=max_retries,
            headers=headers,
            created_at=time.time() if now is None else now,
        )

    @property
    def retries_left(self) -> int:
        """Delivery attempts remaining before the action is dead-lettered."""
        return self.max_retries - self.retry_count

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "kind": self.kind,
            "payload": self.payload,
            "endpoint": self.endpoint,
            "method": self.method.value,
            "priority": self.priority.value,
            "max_retries": self.max_retries,
            "headers": self.headers,
            "created_at": self.created_at,
            "retry_count": self.retry_count,
            "last_attempt_at": self.last_attempt_at,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OfflineAction:
        """Deserialize from dictionary.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If a field is invalid or the retry invariant is broken.
        """
        action = cls(
            id=str(data["id"]),
            kind=str(data["kind"]),
            payload=dict(data.get("payload") or {}),
            endpoint=str(data["endpoint"]),
            method=HttpMethod(data["method"]),
            priority=ActionPriority(data.get("priority", ActionPriority.MEDIUM.value)),
            max_retries=int(data["max_retries"]),
            headers=dict(data.get("headers") or {}),
            created_at=float(data["created_at"]),
            retry_count=int(data.get("retry_count", 0)),
            last_attempt_at=data.get("last_attempt_at"),
            last_error=data.get("last_error"),
        )
        if not 0 <= action.retry_count < action.max_retries:
            raise ValueError(
                f"retry_count {action.retry_count} outside [0, {action.max_retries})"
            )
        return action


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one delivery attempt for one action."""

    success: bool
    action_id: str
    error: Exception | None = None
    response: Any = None


@dataclass(frozen=True)
class QueueStatus:
    """Point-in-time status of the queue."""

    is_online: bool
    is_syncing: bool
    queue_length: int
    last_sync_attempt: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "is_online": self.is_online,
            "is_syncing": self.is_syncing,
            "queue_length": self.queue_length,
            "last_sync_attempt": self.last_sync_attempt,
        }
