"""Durable storage for the offline action queue.

The whole queue is stored as one JSON array under a single stable key.
Adapters only know how to read and write that record; pruning of stale
entries and corruption handling live in the shared base class so every
backend behaves the same way.

Backends:
    - JsonFilePersistence: one JSON file, replaced atomically on write
    - SqlitePersistence: one row of a key-value table in a SQLite file
    - MemoryPersistence: process-local, for tests and ephemeral queues
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from contextlib import closing
from pathlib import Path
from typing import Any

from applytrack.errors import ErrorCode, PersistenceError
from applytrack.sync.models import OfflineAction
from applytrack.utils.atomic_write import atomic_write_text

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "offline_sync_queue"
DEFAULT_RETENTION_SECONDS = 24 * 3600


class PersistenceAdapter(ABC):
    """Load and save the complete list of queued actions.

    ``load()`` drops entries older than the retention window and writes the
    pruned list back immediately, so a second load never resurrects them.
    ``save()`` never raises: a failed write is logged and reported as False,
    leaving the in-memory queue authoritative for the rest of the session.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._retention_seconds = retention_seconds
        self._clock = clock

    @property
    @abstractmethod
    def location(self) -> str:
        """Human-readable description of where the queue lives."""

    @abstractmethod
    def _read(self) -> Any:
        """Return the decoded stored record, or None if nothing is stored.

        Raises:
            PersistenceError: If the record exists but cannot be read or decoded.
        """

    @abstractmethod
    def _write(self, records: list[dict[str, Any]]) -> None:
        """Replace the stored record.

        Raises:
            PersistenceError: If the record cannot be written.
        """

    def load(self) -> list[OfflineAction]:
        """Load queued actions, pruning stale and unreadable entries."""
        try:
            raw = self._read()
        except PersistenceError as e:
            logger.warning(f"Failed to load offline queue from {self.location}: {e}")
            return []

        if raw is None:
            logger.debug(f"No persisted offline queue at {self.location}")
            return []

        if not isinstance(raw, list):
            logger.warning(f"Offline queue at {self.location} is not a list, starting fresh")
            return []

        cutoff = self._clock() - self._retention_seconds
        actions: list[OfflineAction] = []
        skipped = 0
        expired = 0

        for entry in raw:
            try:
                action = OfflineAction.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping corrupted offline action: {e}")
                skipped += 1
                continue

            if action.created_at <= cutoff:
                expired += 1
                continue

            actions.append(action)

        if expired or skipped:
            logger.info(
                f"Pruned {expired} expired and {skipped} corrupted actions "
                f"from {self.location}"
            )
            self.save(actions)

        logger.debug(f"Loaded {len(actions)} offline actions from {self.location}")
        return actions

    def save(self, actions: Sequence[OfflineAction]) -> bool:
        """Persist the full list of actions, replacing what was stored."""
        try:
            self._write([action.to_dict() for action in actions])
        except PersistenceError as e:
            logger.warning(f"Failed to persist offline queue to {self.location}: {e}")
            return False

        logger.debug(f"Persisted {len(actions)} offline actions to {self.location}")
        return True


class JsonFilePersistence(PersistenceAdapter):
    """Queue stored as a JSON array in a single file."""

    def __init__(
        self,
        path: Path | str,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(retention_seconds=retention_seconds, clock=clock)
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def location(self) -> str:
        return str(self._path)

    def _read(self) -> Any:
        if not self._path.exists():
            return None
        try:
            data = self._path.read_bytes()
        except OSError as e:
            raise PersistenceError(
                str(e), location=self.location, code=ErrorCode.STORE_READ_FAILED, cause=e
            ) from e
        try:
            return json.loads(data.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise PersistenceError(
                f"Not UTF-8 text: {e}", location=self.location, code=ErrorCode.STORE_CORRUPTED
            ) from e
        except json.JSONDecodeError as e:
            raise PersistenceError(
                f"Invalid JSON: {e}", location=self.location, code=ErrorCode.STORE_CORRUPTED
            ) from e

    def _write(self, records: list[dict[str, Any]]) -> None:
        try:
            atomic_write_text(self._path, json.dumps(records, indent=2))
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(str(e), location=self.location, cause=e) from e


class SqlitePersistence(PersistenceAdapter):
    """Queue stored as one JSON value in a SQLite key-value table."""

    def __init__(
        self,
        path: Path | str,
        key: str = DEFAULT_STORAGE_KEY,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(retention_seconds=retention_seconds, clock=clock)
        self._path = Path(path).expanduser()
        self._key = key
        self._initialized = False

    @property
    def location(self) -> str:
        return f"{self._path}#{self._key}"

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path), timeout=30.0)

    def _initialize(self) -> None:
        """Create the key-value table (idempotent)."""
        if self._initialized:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
        self._initialized = True

    def _read(self) -> Any:
        try:
            self._initialize()
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (self._key,)
                ).fetchone()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(
                str(e), location=self.location, code=ErrorCode.STORE_READ_FAILED, cause=e
            ) from e

        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            raise PersistenceError(
                f"Invalid JSON: {e}", location=self.location, code=ErrorCode.STORE_CORRUPTED
            ) from e

    def _write(self, records: list[dict[str, Any]]) -> None:
        try:
            value = json.dumps(records)
            self._initialize()
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (self._key, value, self._clock()),
                )
        except (OSError, TypeError, ValueError, sqlite3.Error) as e:
            raise PersistenceError(str(e), location=self.location, cause=e) from e


class MemoryPersistence(PersistenceAdapter):
    """Queue held in process memory as serialized JSON.

    Records every write so callers can observe how often the queue was saved.

    Attributes:
        writes: Number of successful writes since creation.
    """

    def __init__(
        self,
        initial: Sequence[dict[str, Any]] | None = None,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(retention_seconds=retention_seconds, clock=clock)
        self._data: str | None = json.dumps(list(initial)) if initial is not None else None
        self.writes = 0

    @property
    def location(self) -> str:
        return "memory"

    @property
    def records(self) -> list[dict[str, Any]]:
        """Decoded copy of what is currently stored."""
        return json.loads(self._data) if self._data is not None else []

    def _read(self) -> Any:
        return json.loads(self._data) if self._data is not None else None

    def _write(self, records: list[dict[str, Any]]) -> None:
        try:
            self._data = json.dumps(records)
        except (TypeError, ValueError) as e:
            raise PersistenceError(str(e), location=self.location, cause=e) from e
        self.writes += 1
