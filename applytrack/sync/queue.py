"""Offline action queue: the public surface of the sync engine.

Callers enqueue mutations as drafts; the queue persists them, notifies
listeners and delivers them in the background whenever the application is
online. The queue is the only component that mutates or persists the
action list.

Usage:
    from applytrack.sync import ActionDraft, create_action_queue

    queue = create_action_queue(config.sync)
    await queue.start()

    queue.enqueue(ActionDraft(
        kind="ADD_APPLICATION",
        payload={"company": "Acme"},
        endpoint="/api/applications",
        method="POST",
    ))

    queue.on_error(lambda err: print(err.user_message))
    await queue.close()
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from applytrack.config import SyncConfig, validate_path
from applytrack.errors import ConfigurationError, SyncCycleError, SyncError, action_dead_lettered
from applytrack.sync.connectivity import ConnectivityMonitor
from applytrack.sync.dispatcher import Dispatcher
from applytrack.sync.events import Subscribers, Unsubscribe
from applytrack.sync.models import (
    ActionDraft,
    ActionPriority,
    OfflineAction,
    QueueStatus,
    SyncResult,
)
from applytrack.sync.persistence import (
    JsonFilePersistence,
    MemoryPersistence,
    PersistenceAdapter,
    SqlitePersistence,
)
from applytrack.sync.retry import RetryPolicy
from applytrack.sync.scheduler import SyncScheduler
from applytrack.sync.transport import ActionTransport, BeaconTransport, HttpTransport

logger = logging.getLogger(__name__)


class ActionQueue:
    """Persistent queue of pending mutations with background delivery.

    Thread-safety: not thread-safe. All methods must be called from the
    thread running the event loop; mutations are plain synchronous steps
    between awaits, so no lock is needed.
    """

    def __init__(
        self,
        persistence: PersistenceAdapter,
        transport: ActionTransport,
        *,
        connectivity: ConnectivityMonitor | None = None,
        beacon: BeaconTransport | None = None,
        retry_policy: RetryPolicy | None = None,
        batch_size: int = 5,
        batch_delay: float = 0.1,
        request_timeout: float | None = 10.0,
        sync_interval: float = 30.0,
        default_max_retries: int = 3,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the queue and load persisted actions.

        Args:
            persistence: Durable store for the action list.
            transport: Retry-tracked delivery path.
            connectivity: Online/visibility/teardown signals (online by default).
            beacon: Fire-and-forget transport for the teardown flush.
            retry_policy: Failure accounting and backoff.
            batch_size: Maximum concurrent deliveries per batch.
            batch_delay: Seconds between batches.
            request_timeout: Per-delivery timeout (None disables it).
            sync_interval: Seconds between periodic cycles.
            default_max_retries: Retry budget for drafts that don't set one.
            clock: Time source for timestamps.
            sleep: Awaitable sleep for the inter-batch pause.
        """
        self._persistence = persistence
        self._transport = transport
        self._beacon = beacon
        self._connectivity = connectivity or ConnectivityMonitor()
        self._retry_policy = retry_policy or RetryPolicy(clock=clock)
        self._default_max_retries = default_max_retries
        self._clock = clock

        self._dispatcher = Dispatcher(
            transport,
            batch_size=batch_size,
            batch_delay=batch_delay,
            request_timeout=request_timeout,
            sleep=sleep,
        )
        self._scheduler = SyncScheduler(self._run_cycle, self._should_sync, sync_interval)

        self._changes: Subscribers[list[OfflineAction]] = Subscribers("queue change")
        self._errors: Subscribers[SyncError] = Subscribers("sync error")

        self._actions: list[OfflineAction] = persistence.load()
        self._last_sync_attempt: float | None = None
        self._closed = False

        # Per-cycle bookkeeping, reset at the start of every cycle
        self._cycle_errors: list[SyncError] = []
        self._cycle_retry_delay: float | None = None

        self._synced = 0
        self._failed_attempts = 0
        self._dead_lettered = 0

        self._connectivity_subscriptions: list[Unsubscribe] = [
            self._connectivity.on_reconnect(self._on_reconnect),
            self._connectivity.on_visible(self._on_visible),
            self._connectivity.on_teardown(self._on_teardown),
        ]

        logger.info(
            f"Offline queue ready with {len(self._actions)} pending actions "
            f"({self._persistence.location})"
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def is_online(self) -> bool:
        return self._connectivity.is_online

    @property
    def connectivity(self) -> ConnectivityMonitor:
        return self._connectivity

    @property
    def scheduler(self) -> SyncScheduler:
        return self._scheduler

    def __len__(self) -> int:
        return len(self._actions)

    def snapshot(self) -> list[OfflineAction]:
        """Return deep copies of the queued actions in insertion order."""
        return [copy.deepcopy(action) for action in self._actions]

    def get_status(self) -> QueueStatus:
        """Get current queue status."""
        return QueueStatus(
            is_online=self.is_online,
            is_syncing=self._scheduler.is_syncing,
            queue_length=len(self._actions),
            last_sync_attempt=self._last_sync_attempt,
        )

    def get_stats(self) -> dict[str, Any]:
        """Get queue statistics.

        Returns:
            Dictionary with current queue contents by priority and kind, and
            session totals of delivered, failed and dead-lettered actions.
        """
        by_priority: dict[str, int] = {}
        by_kind: dict[str, int] = {}

        for priority in ActionPriority:
            count = sum(1 for a in self._actions if a.priority == priority)
            if count > 0:
                by_priority[priority.value] = count

        for action in self._actions:
            by_kind[action.kind] = by_kind.get(action.kind, 0) + 1

        return {
            "total": len(self._actions),
            "by_priority": by_priority,
            "by_kind": by_kind,
            "synced": self._synced,
            "failed_attempts": self._failed_attempts,
            "dead_lettered": self._dead_lettered,
            "last_sync_attempt": self._last_sync_attempt,
        }

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def enqueue(self, draft: ActionDraft) -> str:
        """Queue a mutation and start delivering it if online.

        Returns:
            The id assigned to the new action.

        Raises:
            InvalidActionError: If the draft is malformed; nothing is queued.
        """
        action = OfflineAction.from_draft(
            draft, default_max_retries=self._default_max_retries, now=self._clock()
        )
        self._actions.append(action)
        logger.debug(
            f"Queued {action.kind} {action.method.value} {action.endpoint} "
            f"as {action.id} (priority={action.priority.value})"
        )

        self._persist()
        self._notify()

        if self.is_online:
            self._scheduler.request_sync()

        return action.id

    def remove(self, action_id: str) -> bool:
        """Remove an action by id.

        Returns:
            True if the action was queued and has been removed.
        """
        action = self._find(action_id)
        if action is None:
            return False

        self._actions.remove(action)
        logger.debug(f"Removed action {action_id}")
        self._persist()
        self._notify()
        return True

    def clear(self) -> None:
        """Drop every queued action."""
        count = len(self._actions)
        self._actions.clear()
        logger.info(f"Cleared {count} queued actions")
        self._persist()
        self._notify()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_change(self, listener: Callable[[list[OfflineAction]], None]) -> Unsubscribe:
        """Receive a fresh snapshot after every queue mutation."""
        return self._changes.subscribe(listener)

    def on_error(self, listener: Callable[[SyncError], None]) -> Unsubscribe:
        """Receive terminal failures and unexpected cycle errors.

        Each dead-lettered action is reported exactly once, as an
        ActionDeadLetteredError carrying the action and its last error.
        """
        return self._errors.subscribe(listener)

    # ------------------------------------------------------------------
    # Syncing
    # ------------------------------------------------------------------

    async def sync_now(self) -> list[SyncResult]:
        """Run a cycle immediately.

        Returns [] without touching storage or listeners when offline, when
        the queue is empty or when a cycle is already running.
        """
        return await self._scheduler.run_once()

    def _should_sync(self) -> bool:
        return not self._closed and self.is_online and bool(self._actions)

    async def _run_cycle(self) -> list[SyncResult]:
        self._last_sync_attempt = self._clock()
        self._cycle_errors = []
        self._cycle_retry_delay = None

        pending = list(self._actions)
        logger.info(f"Syncing {len(pending)} offline actions")

        results: list[SyncResult] = []
        try:
            results = await self._dispatcher.dispatch(pending, self._apply_result)
        except Exception as e:
            logger.exception(f"Sync cycle failed: {e}")
            self._cycle_errors.append(SyncCycleError(cause=e))
        finally:
            self._persist()
            self._notify()

            errors, self._cycle_errors = self._cycle_errors, []
            for error in errors:
                self._errors.emit(error)

            delay, self._cycle_retry_delay = self._cycle_retry_delay, None
            if delay is not None:
                self._scheduler.schedule_retry(delay)

        return results

    def _apply_result(self, action: OfflineAction, result: SyncResult) -> None:
        """Apply one settled delivery to the queue, keyed by action id."""
        current = self._find(result.action_id)
        if current is None:
            logger.debug(f"Action {result.action_id} left the queue mid-cycle, result ignored")
            return

        if result.success:
            self._actions.remove(current)
            self._synced += 1
            logger.debug(f"Synced action {current.id} ({current.kind})")
            return

        self._failed_attempts += 1
        decision = self._retry_policy.record_failure(current, result.error)
        if decision.dead_lettered:
            self._actions.remove(current)
            self._dead_lettered += 1
            self._cycle_errors.append(action_dead_lettered(current, result.error))
        elif decision.delay is not None:
            if self._cycle_retry_delay is None or decision.delay < self._cycle_retry_delay:
                self._cycle_retry_delay = decision.delay

    def flush_critical(self) -> int:
        """Best-effort delivery of high-priority actions over the beacon.

        Fire-and-forget: requests are handed to the beacon's worker pool and
        this returns without waiting on them. Nothing is removed, retried or
        counted; the actions stay queued for the normal path on the next run.

        Returns:
            Number of beacons handed off.
        """
        if self._beacon is None or not self._actions:
            return 0

        sent = 0
        for action in self._actions:
            if action.priority == ActionPriority.HIGH and self._beacon.fire(action):
                sent += 1

        logger.info(f"Flushed {sent} critical actions before teardown")
        return sent

    # ------------------------------------------------------------------
    # Connectivity triggers
    # ------------------------------------------------------------------

    def _on_reconnect(self) -> None:
        if self._actions:
            logger.info(f"Back online with {len(self._actions)} pending actions, syncing")
            self._scheduler.request_sync()

    def _on_visible(self) -> None:
        if self._actions:
            self._scheduler.request_sync()

    def _on_teardown(self) -> None:
        self.flush_critical()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the periodic timer and connectivity probe, then catch up."""
        self._scheduler.start()
        self._connectivity.start()
        if self._should_sync():
            self._scheduler.request_sync()

    async def close(self) -> None:
        """Stop timers, release transports and drop listeners. Idempotent."""
        if self._closed:
            return
        self._closed = True

        await self._scheduler.stop()
        await self._connectivity.stop()

        for unsubscribe in self._connectivity_subscriptions:
            unsubscribe()
        self._connectivity_subscriptions.clear()
        self._changes.clear()
        self._errors.clear()

        aclose = getattr(self._transport, "aclose", None)
        if aclose is not None:
            await aclose()
        if self._beacon is not None:
            self._beacon.close()

        logger.info(f"Offline queue closed with {len(self._actions)} pending actions")

    async def teardown(self) -> None:
        """Signal application teardown (flushing critical actions), then close."""
        self._connectivity.teardown()
        await self.close()

    def _find(self, action_id: str) -> OfflineAction | None:
        for action in self._actions:
            if action.id == action_id:
                return action
        return None

    def _persist(self) -> None:
        self._persistence.save(self._actions)

    def _notify(self) -> None:
        if len(self._changes):
            self._changes.emit(self.snapshot())


def create_persistence(
    config: SyncConfig, clock: Callable[[], float] = time.time
) -> PersistenceAdapter:
    """Build the persistence adapter selected by ``config.storage_backend``.

    Raises:
        ConfigurationError: If the queue path is unsafe.
    """
    retention = config.retention_hours * 3600

    if config.storage_backend == "memory":
        return MemoryPersistence(retention_seconds=retention, clock=clock)

    try:
        path = validate_path(config.queue_path, "queue path")
    except ValueError as e:
        raise ConfigurationError(str(e), config_key="sync.queue_path") from e

    if config.storage_backend == "sqlite":
        return SqlitePersistence(
            path,
            key=config.storage_key,
            retention_seconds=retention,
            clock=clock,
        )
    return JsonFilePersistence(path, retention_seconds=retention, clock=clock)


def create_action_queue(
    config: SyncConfig | None = None,
    *,
    persistence: PersistenceAdapter | None = None,
    transport: ActionTransport | None = None,
    connectivity: ConnectivityMonitor | None = None,
    beacon: BeaconTransport | None = None,
    online: bool = True,
    clock: Callable[[], float] = time.time,
) -> ActionQueue:
    """Build an ActionQueue wired from a SyncConfig.

    Any collaborator passed explicitly replaces the one the config would
    produce; the rest are built from ``config`` (defaults when None).
    """
    config = config or SyncConfig()

    if connectivity is None:
        connectivity = ConnectivityMonitor(
            online=online,
            probe_url=config.probe_url,
            probe_interval=config.probe_interval_seconds,
        )

    return ActionQueue(
        persistence or create_persistence(config, clock=clock),
        transport or HttpTransport(
            base_url=config.base_url, timeout=config.request_timeout_seconds
        ),
        connectivity=connectivity,
        beacon=beacon or BeaconTransport(
            base_url=config.base_url, timeout=config.beacon_timeout_seconds
        ),
        retry_policy=RetryPolicy(
            base_delay=config.retry_base_delay_seconds,
            max_delay=config.retry_max_delay_seconds,
            clock=clock,
        ),
        batch_size=config.batch_size,
        batch_delay=config.batch_delay_seconds,
        request_timeout=config.request_timeout_seconds,
        sync_interval=config.sync_interval_seconds,
        default_max_retries=config.default_max_retries,
        clock=clock,
    )
