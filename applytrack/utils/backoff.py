"""Backoff strategies for retry logic.

Provides the capped exponential delay used to space out redelivery of
failed offline actions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackoffConfig:
    """Configuration for backoff behavior.

    Attributes:
        base_delay: Delay for attempt zero (seconds).
        max_delay: Maximum delay cap (seconds).
        backoff_factor: Multiplier for exponential backoff.
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})"
            )
        if self.backoff_factor < 1:
            raise ValueError(f"backoff_factor must be >= 1, got {self.backoff_factor}")


def exponential_delay(attempt: int, config: BackoffConfig | None = None) -> float:
    """Return ``min(base_delay * factor**attempt, max_delay)``.

    Non-decreasing in ``attempt`` and never above ``max_delay``.

    Args:
        attempt: Number of failures recorded so far (0 or more).
        config: Backoff configuration. Defaults to 1s base, 30s cap, factor 2.

    Returns:
        Seconds to wait before the next attempt.
    """
    cfg = config or BackoffConfig()
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")

    if cfg.base_delay == 0:
        return 0.0
    # float pow overflows for very large attempt counts; the cap applies there
    try:
        raw = cfg.base_delay * (cfg.backoff_factor**attempt)
    except OverflowError:
        return cfg.max_delay
    return min(raw, cfg.max_delay)


def backoff_schedule(attempts: int, config: BackoffConfig | None = None) -> list[float]:
    """List the delays for attempts ``1..attempts`` (useful for logging and docs)."""
    return [exponential_delay(n, config) for n in range(1, attempts + 1)]
