"""Utility modules for applytrack."""

from applytrack.utils.async_utils import (
    get_running_loop_or_none,
    log_task_exception,
    spawn,
    task_callback,
)
from applytrack.utils.atomic_write import atomic_write_text
from applytrack.utils.backoff import BackoffConfig, backoff_schedule, exponential_delay
from applytrack.utils.logging import setup_logging

__all__ = [
    "BackoffConfig",
    "atomic_write_text",
    "backoff_schedule",
    "exponential_delay",
    "get_running_loop_or_none",
    "log_task_exception",
    "setup_logging",
    "spawn",
    "task_callback",
]
