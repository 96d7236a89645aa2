"""Retry policy for failed action deliveries.

Per-action lifecycle::

    Pending -> InFlight -> Success (removed)
                        -> Failed -> Pending        (retries remain)
                                  -> DeadLettered   (removed, reported)

The policy only decides; the queue applies the decision (removal,
reporting, scheduling the next attempt).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from applytrack.sync.models import OfflineAction
from applytrack.utils.backoff import BackoffConfig, exponential_delay

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryDecision:
    """What to do with an action after a failed attempt.

    Attributes:
        dead_lettered: True if the retry budget is exhausted.
        delay: Seconds to wait before the next attempt (None when dead-lettered).
    """

    dead_lettered: bool
    delay: float | None = None


class RetryPolicy:
    """Counts failures and computes capped exponential backoff.

    ``delay = min(base_delay * 2**retry_count, max_delay)`` where
    ``retry_count`` already includes the failure being recorded.

    Example:
        >>> policy = RetryPolicy(base_delay=1.0, max_delay=30.0)
        >>> [policy.delay_for(n) for n in range(1, 7)]
        [2.0, 4.0, 8.0, 16.0, 30.0, 30.0]
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backoff = BackoffConfig(base_delay=base_delay, max_delay=max_delay)
        self._clock = clock

    @property
    def backoff(self) -> BackoffConfig:
        return self._backoff

    def delay_for(self, retry_count: int) -> float:
        """Backoff before the attempt that follows ``retry_count`` failures."""
        return exponential_delay(retry_count, self._backoff)

    def record_failure(self, action: OfflineAction, error: Exception | None) -> RetryDecision:
        """Count a failed attempt on ``action`` and decide its fate.

        Mutates ``retry_count``, ``last_attempt_at`` and ``last_error``.
        """
        action.retry_count += 1
        action.last_attempt_at = self._clock()
        action.last_error = str(error) if error is not None else "unknown error"

        if action.retry_count >= action.max_retries:
            logger.error(
                f"Action {action.id} ({action.kind}) failed {action.retry_count} times, "
                f"giving up: {action.last_error}"
            )
            return RetryDecision(dead_lettered=True)

        delay = self.delay_for(action.retry_count)
        logger.warning(
            f"Action {action.id} ({action.kind}) failed "
            f"(attempt {action.retry_count}/{action.max_retries}), "
            f"retrying in {delay:.1f}s: {action.last_error}"
        )
        return RetryDecision(dead_lettered=False, delay=delay)
