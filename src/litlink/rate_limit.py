"""Token bucket rate limiters per API."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Mapping

from .config import DEFAULT_RATE_LIMITS, FALLBACK_RATE_LIMIT, RateLimitConfig

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class TokenBucket:
    """Token bucket rate limiter.

    Allows `rate` requests per second with a burst capacity of `burst`.
    Tokens are refilled lazily on each acquisition attempt.
    """
    rate: float
    burst: float
    clock: Clock = time.monotonic
    sleep: Sleep = asyncio.sleep
    _tokens: float = field(init=False, default=0.0)
    _last_refill: float = field(init=False, default=0.0)
    _lock: asyncio.Lock = field(init=False, default_factory=asyncio.Lock)

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError(f"rate must be positive, got {self.rate}")
        if self.burst < 1:
            raise ValueError(f"burst must be at least 1, got {self.burst}")
        self._tokens = float(self.burst)
        self._last_refill = self.clock()

    def _refill(self) -> None:
        now = self.clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.burst, self._tokens + elapsed * self.rate)
        self._last_refill = now

    async def acquire(self) -> float:
        """Wait until a token is available, then consume one.

        Returns the number of seconds spent waiting. The lock is held across
        the wait so queued callers are admitted in arrival order.
        """
        async with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return 0.0

            wait = (1.0 - self._tokens) / self.rate
            await self.sleep(wait)
            # The token that accrued during the wait is handed to this caller.
            self._tokens = 0.0
            self._last_refill = self.clock()
            return wait

    def available_tokens(self) -> float:
        """Tokens available right now, computed without touching state."""
        elapsed = max(0.0, self.clock() - self._last_refill)
        return min(self.burst, self._tokens + elapsed * self.rate)


class RateLimiterRegistry:
    """Registry of rate limiters, one per API."""

    def __init__(
        self,
        configs: Mapping[str, RateLimitConfig] | None = None,
        default: RateLimitConfig = FALLBACK_RATE_LIMIT,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._configs = dict(DEFAULT_RATE_LIMITS if configs is None else configs)
        self._default = default
        self._clock = clock
        self._sleep = sleep
        self._limiters: dict[str, TokenBucket] = {}

    def _build(self, config: RateLimitConfig) -> TokenBucket:
        return TokenBucket(rate=config.rate, burst=config.burst, clock=self._clock, sleep=self._sleep)

    def register(self, name: str, rate: float, burst: float) -> TokenBucket:
        """Install (or replace) the bucket for `name` with explicit limits."""
        self._configs[name] = RateLimitConfig(rate=rate, burst=burst)
        bucket = self._build(self._configs[name])
        self._limiters[name] = bucket
        return bucket

    def get_or_create(self, name: str) -> TokenBucket:
        bucket = self._limiters.get(name)
        if bucket is not None:
            return bucket
        config = self._configs.get(name, self._default)
        # setdefault keeps whichever bucket was inserted first
        return self._limiters.setdefault(name, self._build(config))

    async def acquire(self, name: str) -> float:
        waited = await self.get_or_create(name).acquire()
        if waited:
            logger.debug("Rate limit for %s: waited %.3fs for a token", name, waited)
        return waited

    def available_tokens(self, name: str) -> float:
        return self.get_or_create(name).available_tokens()

    def names(self) -> list[str]:
        return list(self._limiters)

    def snapshot(self) -> dict[str, int]:
        return {
            name: math.floor(bucket.available_tokens())
            for name, bucket in list(self._limiters.items())
        }
