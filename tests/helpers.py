"""Shared test doubles for the sync engine."""

from __future__ import annotations

import asyncio
from typing import Any

from applytrack.errors import DeliveryError
from applytrack.sync import ActionDraft, OfflineAction

START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def tick(self) -> float:
        """Return the current time and move forward by one millisecond."""
        value = self.now
        self.now += 0.001
        return value


class SleepRecorder:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        await asyncio.sleep(0)


class FakeTransport:
    """Records deliveries and simulates failures, latency and concurrency.

    Attributes:
        calls: Action ids in the order their delivery started.
        kinds: Action kinds in the order their delivery started.
        rounds: Ids grouped by concurrent round (a new round starts when
            a delivery begins with nothing else in flight).
        max_in_flight: Highest number of simultaneous deliveries seen.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.kinds: list[str] = []
        self.rounds: list[list[str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.fail_all = False
        self.fail_kinds: set[str] = set()
        self.gate: asyncio.Event | None = None
        self.response: Any = {"ok": True}
        self.closed = False

    async def send(self, action: OfflineAction) -> Any:
        if self.in_flight == 0:
            self.rounds.append([])
        self.rounds[-1].append(action.id)
        self.calls.append(action.id)
        self.kinds.append(action.kind)

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.gate is not None:
                await self.gate.wait()
            if self.fail_all or action.kind in self.fail_kinds:
                raise DeliveryError(
                    "HTTP 503: Service Unavailable", action_id=action.id, status_code=503
                )
            return self.response
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


def make_draft(kind: str = "ADD_APPLICATION", **overrides: Any) -> ActionDraft:
    """Build a valid draft; keyword arguments override any field."""
    fields: dict[str, Any] = {
        "kind": kind,
        "payload": {"company": "Acme", "role": "Engineer"},
        "endpoint": "/api/applications",
        "method": "POST",
    }
    fields.update(overrides)
    return ActionDraft(**fields)

