"""Unit tests for the batched Dispatcher."""

import asyncio

import pytest

from applytrack.errors import DeliveryError, ErrorCode
from applytrack.sync.dispatcher import Dispatcher
from applytrack.sync.models import OfflineAction
from tests.helpers import FakeTransport, SleepRecorder, make_draft


def _actions(*specs: tuple[str, str], start: float = 100.0) -> list[OfflineAction]:
    """Build actions from (kind, priority) pairs with increasing timestamps."""
    return [
        OfflineAction.from_draft(make_draft(kind, priority=priority), now=start + i)
        for i, (kind, priority) in enumerate(specs)
    ]


class TestOrdering:
    """Tests for priority-then-FIFO ordering."""

    def test_priority_then_created_at(self):
        """High before medium before low, oldest first within a bucket."""
        actions = _actions(
            ("A", "low"), ("B", "high"), ("C", "medium"), ("D", "high"), ("E", "low")
        )
        ordered = Dispatcher.order(actions)
        assert [a.kind for a in ordered] == ["B", "D", "C", "A", "E"]

    def test_stable_for_equal_timestamps(self):
        """Ties keep enqueue order."""
        actions = [
            OfflineAction.from_draft(make_draft(kind, priority="medium"), now=1.0)
            for kind in ("first", "second", "third")
        ]
        assert [a.kind for a in Dispatcher.order(actions)] == ["first", "second", "third"]

    def test_batches_split_by_size(self, transport):
        """Ordered actions are cut into fixed-size batches."""
        dispatcher = Dispatcher(transport, batch_size=5)
        batches = list(dispatcher.batches(_actions(*[("X", "medium")] * 12)))
        assert [len(b) for b in batches] == [5, 5, 2]

    def test_rejects_zero_batch_size(self, transport):
        """Batch size must be positive."""
        with pytest.raises(ValueError):
            Dispatcher(transport, batch_size=0)


class TestDispatch:
    """Tests for Dispatcher.dispatch."""

    @pytest.mark.asyncio
    async def test_empty_returns_no_results(self, transport, sleep_recorder):
        """Nothing to send means no calls and no delay."""
        dispatcher = Dispatcher(transport, sleep=sleep_recorder)
        assert await dispatcher.dispatch([]) == []
        assert transport.calls == []
        assert sleep_recorder.calls == []

    @pytest.mark.asyncio
    async def test_sends_in_priority_order(self, transport, sleep_recorder):
        """Calls start in priority order."""
        actions = _actions(("A", "low"), ("B", "high"), ("C", "medium"))
        dispatcher = Dispatcher(transport, sleep=sleep_recorder)

        await dispatcher.dispatch(actions)

        assert transport.kinds == ["B", "C", "A"]

    @pytest.mark.asyncio
    async def test_bounded_concurrency(self, transport, sleep_recorder):
        """12 actions go out as rounds of 5, 5 and 2."""
        dispatcher = Dispatcher(transport, batch_size=5, batch_delay=0.1, sleep=sleep_recorder)

        results = await dispatcher.dispatch(_actions(*[("X", "medium")] * 12))

        assert len(results) == 12
        assert [len(r) for r in transport.rounds] == [5, 5, 2]
        assert transport.max_in_flight == 5

    @pytest.mark.asyncio
    async def test_delay_only_between_batches(self, transport, sleep_recorder):
        """The pause runs after every batch but the last."""
        dispatcher = Dispatcher(transport, batch_size=5, batch_delay=0.1, sleep=sleep_recorder)

        await dispatcher.dispatch(_actions(*[("X", "medium")] * 12))

        assert sleep_recorder.calls == [0.1, 0.1]

    @pytest.mark.asyncio
    async def test_results_in_dispatch_order(self, transport, sleep_recorder):
        """One result per action, in the order they were sent."""
        transport.fail_kinds = {"BAD"}
        actions = _actions(("OK", "low"), ("BAD", "high"))
        dispatcher = Dispatcher(transport, sleep=sleep_recorder)

        results = await dispatcher.dispatch(actions)

        assert [r.action_id for r in results] == [actions[1].id, actions[0].id]
        assert results[0].success is False
        assert isinstance(results[0].error, DeliveryError)
        assert results[1].success is True
        assert results[1].response == {"ok": True}

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self, transport, sleep_recorder):
        """Siblings of a failed action are still delivered."""
        transport.fail_kinds = {"BAD"}
        actions = _actions(("BAD", "medium"), ("OK1", "medium"), ("OK2", "medium"))

        results = await Dispatcher(transport, sleep=sleep_recorder).dispatch(actions)

        assert [r.success for r in results] == [False, True, True]

    @pytest.mark.asyncio
    async def test_on_result_called_after_batch_settles(self, transport, sleep_recorder):
        """Results are handed over only once the whole batch has finished."""
        seen_in_flight: list[int] = []
        dispatcher = Dispatcher(transport, batch_size=3, sleep=sleep_recorder)

        await dispatcher.dispatch(
            _actions(*[("X", "medium")] * 3),
            on_result=lambda action, result: seen_in_flight.append(transport.in_flight),
        )

        assert seen_in_flight == [0, 0, 0]

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_failure(self, sleep_recorder):
        """Any exception from the transport is captured as a failed result."""

        class BrokenTransport:
            async def send(self, action):
                raise RuntimeError("socket exploded")

        results = await Dispatcher(BrokenTransport(), sleep=sleep_recorder).dispatch(
            _actions(("X", "medium"))
        )

        assert results[0].success is False
        assert "socket exploded" in str(results[0].error)

    @pytest.mark.asyncio
    async def test_base_exception_propagates(self, sleep_recorder):
        """Non-Exception errors abort dispatch instead of becoming failures."""

        class Abort(BaseException):
            pass

        class AbortingTransport:
            async def send(self, action):
                raise Abort()

        seen = []
        dispatcher = Dispatcher(AbortingTransport(), sleep=sleep_recorder)

        with pytest.raises(Abort):
            await dispatcher.dispatch(
                _actions(("X", "medium")), on_result=lambda a, r: seen.append(r)
            )
        assert seen == []

    @pytest.mark.asyncio
    async def test_hung_request_times_out(self, sleep_recorder):
        """A request exceeding the timeout fails with a timeout error."""
        transport = FakeTransport()
        transport.gate = asyncio.Event()  # never set
        dispatcher = Dispatcher(transport, request_timeout=0.01, sleep=sleep_recorder)

        results = await dispatcher.dispatch(_actions(("X", "medium")))

        assert results[0].success is False
        assert isinstance(results[0].error, DeliveryError)
        assert results[0].error.code == ErrorCode.SYNC_TIMEOUT

    @pytest.mark.asyncio
    async def test_actions_are_not_mutated(self, transport, sleep_recorder):
        """Dispatch leaves retry accounting to the caller."""
        transport.fail_all = True
        actions = _actions(("X", "medium"))

        await Dispatcher(transport, sleep=sleep_recorder).dispatch(actions)

        assert actions[0].retry_count == 0
