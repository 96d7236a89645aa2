"""Pytest configuration for applytrack tests.

Provides a recording fake transport, an in-memory store that counts
writes, a controllable clock and a factory for isolated queues.
"""

from __future__ import annotations

import os

# Rich falls back to an 80-column console when stdout is captured, which
# truncates table cells; give CLI tests a deterministic, wide console.
os.environ.setdefault("COLUMNS", "200")

from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
import pytest_asyncio

from applytrack.sync import ActionQueue, ConnectivityMonitor, MemoryPersistence, RetryPolicy
from tests.helpers import FakeClock, FakeTransport, SleepRecorder


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def store(clock: FakeClock) -> MemoryPersistence:
    return MemoryPersistence(clock=clock)


@pytest_asyncio.fixture
async def make_queue(
    clock: FakeClock,
    sleep_recorder: SleepRecorder,
    transport: FakeTransport,
    store: MemoryPersistence,
) -> AsyncIterator[Callable[..., ActionQueue]]:
    """Factory for isolated queues; every queue built is closed after the test."""
    created: list[ActionQueue] = []

    def factory(online: bool = False, **kwargs: Any) -> ActionQueue:
        kwargs.setdefault("connectivity", ConnectivityMonitor(online=online))
        kwargs.setdefault("retry_policy", RetryPolicy(clock=clock))
        kwargs.setdefault("sleep", sleep_recorder)
        kwargs.setdefault("clock", clock.tick)
        persistence = kwargs.pop("persistence", store)
        queue = ActionQueue(persistence, kwargs.pop("transport", transport), **kwargs)
        created.append(queue)
        return queue

    yield factory

    for queue in created:
        await queue.close()
