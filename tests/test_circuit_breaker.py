"""Tests for the circuit breaker state machine."""

import pytest

from litlink.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry, CircuitState
from litlink.config import BreakerConfig


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(name="test", failure_threshold=5, reset_timeout=30.0, clock=clock)


def _open(breaker):
    for _ in range(breaker.failure_threshold):
        breaker.record_failure()
    assert breaker.state == CircuitState.OPEN


class TestClosedState:
    def test_starts_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow_request()

    def test_opens_after_exactly_threshold_failures(self, breaker):
        for _ in range(4):
            breaker.record_failure()
            assert breaker.state == CircuitState.CLOSED
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert breaker.failure_count == 5

    def test_success_resets_consecutive_count(self, breaker):
        for _ in range(3):
            breaker.record_failure()
        breaker.record_success()
        assert breaker.failure_count == 0

        for _ in range(4):
            breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN


class TestOpenAndHalfOpen:
    def test_open_rejects_until_timeout(self, breaker, clock):
        _open(breaker)
        assert not breaker.allow_request()
        clock.advance(30.0)  # not strictly greater yet
        assert not breaker.allow_request()
        assert breaker.state == CircuitState.OPEN

    def test_first_check_after_timeout_is_the_only_trial(self, breaker, clock):
        _open(breaker)
        clock.advance(30.001)

        assert breaker.allow_request()
        assert breaker.state == CircuitState.HALF_OPEN
        assert not breaker.allow_request()

    def test_released_trial_admits_the_next_call(self, breaker, clock):
        _open(breaker)
        clock.advance(30.001)
        assert breaker.allow_request()

        breaker.release_trial()

        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request()
        assert not breaker.allow_request()

    def test_release_trial_is_a_no_op_when_closed(self, breaker):
        breaker.release_trial()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow_request()

    def test_failed_trial_reopens_with_new_timestamp(self, breaker, clock):
        _open(breaker)
        clock.advance(30.001)
        assert breaker.allow_request()

        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert breaker.last_failure_time == clock()
        assert not breaker.allow_request()

    def test_successful_trial_closes(self, breaker, clock):
        _open(breaker)
        clock.advance(30.001)
        assert breaker.allow_request()

        breaker.record_success()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.allow_request()

    def test_abandoned_trial_frees_its_slot(self, breaker, clock):
        _open(breaker)
        clock.advance(30.001)
        assert breaker.allow_request()
        # trial never reports back
        clock.advance(30.001)
        assert breaker.allow_request()
        assert breaker.state == CircuitState.HALF_OPEN

    def test_manual_reset(self, breaker):
        _open(breaker)
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.allow_request()

    def test_snapshot_has_no_side_effects(self, breaker, clock):
        _open(breaker)
        clock.advance(60)
        assert breaker.snapshot() == {"state": "open", "failures": 5}
        assert breaker.state == CircuitState.OPEN


class TestRegistry:
    def test_lazy_creation_with_defaults(self, clock):
        registry = CircuitBreakerRegistry(default=BreakerConfig(3, 10.0), clock=clock)
        cb = registry.get_or_create("crossref")
        assert cb.failure_threshold == 3
        assert cb.reset_timeout == 10.0
        assert registry.get_or_create("crossref") is cb

    def test_breakers_are_independent_per_api(self, clock):
        registry = CircuitBreakerRegistry(clock=clock)
        registry.register("flaky", failure_threshold=2)
        registry.record_failure("flaky")
        registry.record_failure("flaky")
        assert not registry.allow_request("flaky")
        assert registry.allow_request("pubmed")

    def test_snapshot_and_reset(self, clock):
        registry = CircuitBreakerRegistry(clock=clock)
        registry.register("flaky", failure_threshold=1)
        registry.record_failure("flaky")
        assert registry.snapshot() == {"flaky": {"state": "open", "failures": 1}}

        registry.reset("flaky")
        assert registry.snapshot() == {"flaky": {"state": "closed", "failures": 0}}
