"""Helpers for background asyncio tasks owned by the sync engine."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def log_task_exception(
    task: asyncio.Task[Any],
    msg: str = "Background task failed",
    logger_instance: logging.Logger | None = None,
) -> None:
    """Done-callback that logs a crashed task with its traceback.

    Cancellation is a normal shutdown path and is not logged.
    """
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        (logger_instance or logger).error(
            f"{msg} ({task.get_name()}): {exc}", exc_info=exc
        )


def task_callback(
    msg: str = "Background task failed", logger_instance: logging.Logger | None = None
) -> Callable[[asyncio.Task[Any]], None]:
    """Bind ``msg`` and a logger into a done-callback."""
    return functools.partial(log_task_exception, msg=msg, logger_instance=logger_instance)


def spawn(
    coro: Coroutine[Any, Any, T],
    *,
    name: str,
    msg: str,
    logger_instance: logging.Logger | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
) -> asyncio.Task[T]:
    """Start ``coro`` as a named task whose failure is logged, never lost.

    Example:
        task = spawn(self._probe_loop(), name="connectivity-probe",
                     msg="Connectivity probe failed", logger_instance=logger)
    """
    loop = loop or asyncio.get_running_loop()
    task = loop.create_task(coro, name=name)
    task.add_done_callback(task_callback(msg, logger_instance))
    return task


def get_running_loop_or_none() -> asyncio.AbstractEventLoop | None:
    """Return the running event loop, or None when called from sync code."""
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
