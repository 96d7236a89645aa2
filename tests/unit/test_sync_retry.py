"""Unit tests for retry accounting and backoff.

Tests the capped exponential delay and the RetryPolicy decisions that
keep every queued action below its retry budget.
"""

import pytest

from applytrack.errors import DeliveryError
from applytrack.sync.models import OfflineAction
from applytrack.sync.retry import RetryPolicy
from applytrack.utils.backoff import BackoffConfig, backoff_schedule, exponential_delay
from tests.helpers import FakeClock, make_draft


class TestExponentialDelay:
    """Tests for exponential_delay."""

    def test_doubles_from_base(self):
        """Delay doubles with each attempt."""
        config = BackoffConfig(base_delay=1.0, max_delay=100.0)
        assert [exponential_delay(n, config) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        """Delay never exceeds the cap."""
        config = BackoffConfig(base_delay=1.0, max_delay=30.0)
        assert exponential_delay(5, config) == 30.0
        assert exponential_delay(50, config) == 30.0

    def test_huge_attempt_does_not_overflow(self):
        """Very large attempt counts still return the cap."""
        assert exponential_delay(10_000, BackoffConfig(max_delay=30.0)) == 30.0

    def test_zero_base_delay(self):
        """A zero base disables waiting."""
        assert exponential_delay(3, BackoffConfig(base_delay=0.0, max_delay=0.0)) == 0.0

    def test_negative_attempt_rejected(self):
        """Attempt counts start at zero."""
        with pytest.raises(ValueError):
            exponential_delay(-1)

    def test_schedule_is_monotonic_and_capped(self):
        """Delays before successive retries never decrease and stay under the cap."""
        config = BackoffConfig(base_delay=1.0, max_delay=30.0)
        schedule = backoff_schedule(12, config)

        assert schedule == sorted(schedule)
        assert max(schedule) == 30.0
        assert schedule[:4] == [2.0, 4.0, 8.0, 16.0]


class TestBackoffConfig:
    """Tests for BackoffConfig validation."""

    def test_rejects_negative_base(self):
        """Negative base delay is invalid."""
        with pytest.raises(ValueError, match="base_delay"):
            BackoffConfig(base_delay=-1.0)

    def test_rejects_cap_below_base(self):
        """The cap must be at least the base delay."""
        with pytest.raises(ValueError, match="max_delay"):
            BackoffConfig(base_delay=10.0, max_delay=5.0)

    def test_rejects_shrinking_factor(self):
        """Factors below one would shrink the delay."""
        with pytest.raises(ValueError, match="backoff_factor"):
            BackoffConfig(backoff_factor=0.5)


class TestRetryPolicy:
    """Tests for RetryPolicy.record_failure."""

    @pytest.fixture
    def policy(self, clock):
        return RetryPolicy(base_delay=1.0, max_delay=30.0, clock=clock)

    def test_failure_increments_and_records(self, policy, clock: FakeClock):
        """A failure counts an attempt and remembers the error."""
        action = OfflineAction.from_draft(make_draft(max_retries=3))

        decision = policy.record_failure(action, DeliveryError("HTTP 500"))

        assert action.retry_count == 1
        assert action.last_attempt_at == clock()
        assert action.last_error == "HTTP 500"
        assert decision.dead_lettered is False
        assert decision.delay == 2.0

    def test_dead_letters_when_budget_exhausted(self, policy):
        """The failure that reaches max_retries dead-letters the action."""
        action = OfflineAction.from_draft(make_draft(max_retries=2))

        first = policy.record_failure(action, DeliveryError("boom"))
        second = policy.record_failure(action, DeliveryError("boom"))

        assert first.dead_lettered is False
        assert second.dead_lettered is True
        assert second.delay is None
        assert action.retry_count == action.max_retries

    def test_single_attempt_budget(self, policy):
        """max_retries=1 dead-letters on the first failure."""
        action = OfflineAction.from_draft(make_draft(max_retries=1))
        assert policy.record_failure(action, None).dead_lettered is True
        assert action.last_error == "unknown error"

    def test_delays_grow_until_cap(self):
        """Successive retry delays are non-decreasing and capped."""
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0)
        action = OfflineAction.from_draft(make_draft(max_retries=20))

        delays = [policy.record_failure(action, None).delay for _ in range(10)]

        assert delays == sorted(delays)
        assert all(d <= 10.0 for d in delays)
        assert delays[-1] == 10.0

    def test_delay_for(self, policy):
        """delay_for follows the documented schedule."""
        assert [policy.delay_for(n) for n in range(1, 7)] == [2.0, 4.0, 8.0, 16.0, 30.0, 30.0]
