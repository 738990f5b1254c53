"""Retry policy, backoff calculation and outcome classification.

The policy is an immutable value object; callers may pass their own per
call or rely on :data:`DEFAULT_RETRY_POLICY`.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import httpx

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})

# Transport failures worth another attempt: timeouts, resets, refused
# connections, DNS errors and dropped sockets.
RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    asyncio.TimeoutError,
)

JITTER_FRACTION = 0.3


class RandomSource(Protocol):
    def random(self) -> float: ...


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt (default: 3)
        base_delay: Delay before the first retry, in seconds (default: 1.0)
        max_delay: Upper bound for any single delay, in seconds (default: 10.0)
        retryable_status_codes: HTTP statuses that trigger a retry
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    retryable_status_codes: frozenset[int] = field(default=RETRYABLE_STATUS_CODES)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        # Accept any iterable of ints from callers
        object.__setattr__(self, "retryable_status_codes", frozenset(self.retryable_status_codes))

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in self.retryable_status_codes


DEFAULT_RETRY_POLICY = RetryPolicy()


def calculate_backoff(attempt: int, policy: RetryPolicy, rng: RandomSource = random) -> float:
    """Delay in seconds before retry number ``attempt + 1``.

    ``base_delay * 2**attempt`` plus 0-30% uniform jitter, capped at
    ``max_delay``.
    """
    exponential = policy.base_delay * (2 ** attempt)
    jitter = rng.random() * JITTER_FRACTION * exponential
    return min(exponential + jitter, policy.max_delay)


def is_retryable_exception(exc: BaseException) -> bool:
    return isinstance(exc, RETRYABLE_EXCEPTIONS)


class Outcome(Enum):
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    FATAL_FAILURE = "fatal_failure"


def classify_response(response: httpx.Response, policy: RetryPolicy) -> Outcome:
    """Classify a received response.

    FATAL_FAILURE here means "not worth retrying"; the orchestrator hands
    such responses back to the caller unchanged.
    """
    if response.is_success:
        return Outcome.SUCCESS
    if policy.is_retryable_status(response.status_code):
        return Outcome.RETRYABLE_FAILURE
    return Outcome.FATAL_FAILURE


@dataclass
class CallAttempt:
    """One try of an outbound call, kept for logging and introspection."""
    attempt_number: int
    started_at: float
    outcome: Outcome | None = None
    status_code: int | None = None
    error: str | None = None
    delay: float = 0.0
