"""Single-flight orchestration of sync cycles.

Cycles are started from three places: the periodic timer, event-driven
requests (enqueue, reconnect, visibility) and per-failure retry timers.
All of them funnel into ``run_once``, which refuses to start while a cycle
is already running.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from applytrack.sync.models import SyncResult
from applytrack.utils.async_utils import get_running_loop_or_none, spawn

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Run sync cycles one at a time on the current event loop.

    Example:
        >>> scheduler = SyncScheduler(queue.run_cycle, queue.should_sync, interval=30)
        >>> scheduler.start()
        >>> scheduler.request_sync()
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        run_cycle: Callable[[], Awaitable[list[SyncResult]]],
        should_sync: Callable[[], bool],
        interval: float = 30.0,
    ) -> None:
        """Initialize the scheduler.

        Args:
            run_cycle: Coroutine function performing one complete cycle.
            should_sync: Predicate checked before a cycle starts.
            interval: Seconds between periodic cycles.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        self._run_cycle = run_cycle
        self._should_sync = should_sync
        self._interval = interval

        self._syncing = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._stopped = False
        self._timer_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[list[SyncResult]]] = set()
        self._retry_handles: set[asyncio.TimerHandle] = set()

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def is_running(self) -> bool:
        """True while the periodic timer is active."""
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def interval(self) -> float:
        return self._interval

    async def run_once(self) -> list[SyncResult]:
        """Run one cycle now, or return [] if busy or there is nothing to do."""
        if self._syncing:
            logger.debug("Sync already in progress, skipping")
            return []
        if not self._should_sync():
            return []

        self._syncing = True
        self._idle.clear()
        try:
            return await self._run_cycle()
        finally:
            self._syncing = False
            self._idle.set()

    def request_sync(self) -> asyncio.Task[list[SyncResult]] | None:
        """Start a cycle in the background.

        No-op when called outside an event loop, after ``stop()`` or while a
        cycle is running.
        """
        if self._stopped or self._syncing:
            return None

        loop = get_running_loop_or_none()
        if loop is None:
            logger.debug("No running event loop, sync deferred to the next trigger")
            return None

        task = spawn(
            self.run_once(),
            name="offline-sync",
            msg="Triggered sync failed",
            logger_instance=logger,
            loop=loop,
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def schedule_retry(self, delay: float) -> None:
        """Request a cycle after ``delay`` seconds."""
        if self._stopped:
            return

        loop = get_running_loop_or_none()
        if loop is None:
            return

        handle: asyncio.TimerHandle | None = None

        def fire() -> None:
            if handle is not None:
                self._retry_handles.discard(handle)
            self.request_sync()

        handle = loop.call_later(delay, fire)
        self._retry_handles.add(handle)
        logger.debug(f"Retry sync scheduled in {delay:.1f}s")

    def start(self) -> None:
        """Start the periodic timer on the running event loop."""
        self._stopped = False
        if self.is_running:
            return

        self._timer_task = spawn(
            self._timer_loop(),
            name="offline-sync-timer",
            msg="Sync timer stopped",
            logger_instance=logger,
        )
        logger.info(f"Sync scheduler started (interval={self._interval}s)")

    async def join(self) -> None:
        """Wait until no cycle is running, however it was started."""
        while self._pending or self._syncing:
            if self._pending:
                await asyncio.gather(*list(self._pending), return_exceptions=True)
            else:
                await self._idle.wait()

    async def stop(self) -> None:
        """Stop the timer, cancel retry timers and let in-flight cycles finish."""
        self._stopped = True

        for handle in self._retry_handles:
            handle.cancel()
        self._retry_handles.clear()

        task, self._timer_task = self._timer_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self.join()
        logger.info("Sync scheduler stopped")

    async def _timer_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"Periodic sync failed: {e}")
