"""Ordered, batched delivery of queued actions.

Actions are sent highest priority first and, within a priority, oldest
first. Each batch is sent concurrently and fully settles before the next
one starts; a short pause separates consecutive batches.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator, Sequence
from typing import Any

from applytrack.errors import delivery_timeout
from applytrack.sync.models import OfflineAction, SyncResult
from applytrack.sync.transport import ActionTransport

logger = logging.getLogger(__name__)

ResultHandler = Callable[[OfflineAction, SyncResult], None]


class Dispatcher:
    """Deliver a snapshot of actions through a transport in ordered batches.

    The dispatcher never mutates actions or the queue; every outcome is
    handed to ``on_result`` once its batch has settled.
    """

    def __init__(
        self,
        transport: ActionTransport,
        batch_size: int = 5,
        batch_delay: float = 0.1,
        request_timeout: float | None = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            transport: Delivers a single action.
            batch_size: Maximum number of in-flight deliveries.
            batch_delay: Seconds to pause between batches.
            request_timeout: Per-delivery timeout in seconds (None disables it).
            sleep: Awaitable sleep used for the inter-batch pause.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if batch_delay < 0:
            raise ValueError("batch_delay must be non-negative")

        self._transport = transport
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._request_timeout = request_timeout
        self._sleep = sleep

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @staticmethod
    def order(actions: Sequence[OfflineAction]) -> list[OfflineAction]:
        """Sort by priority rank, then creation time (stable for ties)."""
        return sorted(actions, key=lambda a: (a.priority.rank, a.created_at))

    def batches(self, actions: Sequence[OfflineAction]) -> Iterator[list[OfflineAction]]:
        """Split already-ordered actions into consecutive batches."""
        for start in range(0, len(actions), self._batch_size):
            yield list(actions[start : start + self._batch_size])

    async def dispatch(
        self,
        actions: Sequence[OfflineAction],
        on_result: ResultHandler | None = None,
    ) -> list[SyncResult]:
        """Deliver ``actions`` and return one result per action, in dispatch order."""
        ordered = self.order(actions)
        if not ordered:
            return []

        results: list[SyncResult] = []
        batches = list(self.batches(ordered))

        for index, batch in enumerate(batches):
            logger.debug(f"Dispatching batch {index + 1}/{len(batches)} ({len(batch)} actions)")

            outcomes = await asyncio.gather(
                *(self._execute(action) for action in batch), return_exceptions=True
            )

            for action, outcome in zip(batch, outcomes, strict=True):
                if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                    # Cancellation, KeyboardInterrupt, SystemExit: not a delivery failure
                    raise outcome
                if isinstance(outcome, Exception):
                    result = SyncResult(success=False, action_id=action.id, error=outcome)
                else:
                    result = SyncResult(success=True, action_id=action.id, response=outcome)

                results.append(result)
                if on_result is not None:
                    on_result(action, result)

            if index < len(batches) - 1 and self._batch_delay > 0:
                await self._sleep(self._batch_delay)

        succeeded = sum(1 for r in results if r.success)
        failed = len(results) - succeeded
        logger.info(f"Dispatched {len(results)} actions: {succeeded} ok, {failed} failed")
        return results

    async def _execute(self, action: OfflineAction) -> Any:
        if self._request_timeout is None:
            return await self._transport.send(action)
        try:
            return await asyncio.wait_for(self._transport.send(action), self._request_timeout)
        except TimeoutError as e:
            raise delivery_timeout(action.id, self._request_timeout) from e
