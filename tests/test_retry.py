"""Tests for retry policy and backoff calculation."""

import asyncio
import random

import httpx
import pytest

from litlink.retry import (
    DEFAULT_RETRY_POLICY,
    Outcome,
    RetryPolicy,
    calculate_backoff,
    classify_response,
    is_retryable_exception,
)


class _FixedRandom:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


class TestRetryPolicy:
    def test_default_values(self):
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.base_delay == 1.0
        assert policy.max_delay == 10.0
        assert policy.retryable_status_codes == frozenset({408, 429, 500, 502, 503, 504})

    def test_is_immutable(self):
        with pytest.raises(AttributeError):
            DEFAULT_RETRY_POLICY.max_retries = 10

    def test_accepts_any_iterable_of_status_codes(self):
        policy = RetryPolicy(retryable_status_codes=[503])
        assert policy.retryable_status_codes == frozenset({503})
        assert policy.is_retryable_status(503)
        assert not policy.is_retryable_status(429)

    def test_rejects_negative_values(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay=-0.1)


class TestBackoff:
    @pytest.mark.parametrize("attempt", range(6))
    def test_bounds(self, attempt):
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0)
        floor = min(1.0 * 2 ** attempt, 10.0)
        rng = random.Random(attempt)
        for _ in range(200):
            delay = calculate_backoff(attempt, policy, rng)
            assert floor <= delay <= 10.0

    def test_no_jitter_gives_pure_exponential(self):
        policy = RetryPolicy(base_delay=0.5, max_delay=100.0)
        delays = [calculate_backoff(a, policy, _FixedRandom(0.0)) for a in range(4)]
        assert delays == [0.5, 1.0, 2.0, 4.0]

    def test_jitter_is_at_most_thirty_percent(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=100.0)
        assert calculate_backoff(2, policy, _FixedRandom(1.0)) == pytest.approx(4.0 * 1.3)

    def test_clamped_once_exponential_exceeds_cap(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0)
        assert calculate_backoff(4, policy, _FixedRandom(0.0)) == 10.0
        assert calculate_backoff(5, policy, _FixedRandom(0.5)) == 10.0

    def test_deterministic_with_seeded_source(self):
        policy = RetryPolicy()
        first = [calculate_backoff(a, policy, random.Random(42)) for a in range(4)]
        second = [calculate_backoff(a, policy, random.Random(42)) for a in range(4)]
        assert first == second


class TestClassification:
    @pytest.mark.parametrize("status,expected", [
        (200, Outcome.SUCCESS),
        (204, Outcome.SUCCESS),
        (429, Outcome.RETRYABLE_FAILURE),
        (503, Outcome.RETRYABLE_FAILURE),
        (404, Outcome.FATAL_FAILURE),
        (400, Outcome.FATAL_FAILURE),
    ])
    def test_classify_response(self, status, expected):
        assert classify_response(httpx.Response(status), DEFAULT_RETRY_POLICY) is expected

    def test_transport_errors_are_retryable(self):
        request = httpx.Request("GET", "https://example.test")
        assert is_retryable_exception(httpx.ConnectError("refused", request=request))
        assert is_retryable_exception(httpx.ReadTimeout("slow", request=request))
        assert is_retryable_exception(httpx.RemoteProtocolError("hang up", request=request))
        assert is_retryable_exception(asyncio.TimeoutError())
        assert not is_retryable_exception(httpx.UnsupportedProtocol("ftp", request=request))
        assert not is_retryable_exception(ValueError("nope"))
