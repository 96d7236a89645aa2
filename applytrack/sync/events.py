"""Minimal publish-subscribe channel used for queue and error notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class Subscribers(Generic[T]):
    """Ordered set of listeners that each receive every emitted value.

    A listener that raises is logged and skipped; it never prevents the
    remaining listeners from running and never propagates to the emitter.

    Example:
        >>> changes: Subscribers[list[int]] = Subscribers("queue")
        >>> unsubscribe = changes.subscribe(print)
        >>> changes.emit([1, 2])
        [1, 2]
        >>> unsubscribe()
    """

    def __init__(self, name: str = "event") -> None:
        self._name = name
        self._listeners: list[Callable[[T], None]] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Callable[[T], None]) -> Unsubscribe:
        """Register a listener and return a function that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def emit(self, value: T) -> None:
        """Call every listener with ``value``."""
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                logger.exception(f"Error in {self._name} listener: {e}")

    def clear(self) -> None:
        """Drop all listeners."""
        self._listeners.clear()
