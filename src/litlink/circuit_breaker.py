"""Circuit breaker for fault tolerance."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping

from .config import BreakerConfig

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if recovered


@dataclass
class CircuitBreaker:
    """Circuit breaker pattern implementation.

    Tracks consecutive failures for an API and stops admitting calls once
    `failure_threshold` is reached. After `reset_timeout` seconds the next
    admission check becomes a trial call; its outcome closes or re-opens
    the circuit. Only `half_open_max_calls` trials run at a time.
    """
    name: str
    failure_threshold: int = 5
    reset_timeout: float = 30.0  # seconds
    half_open_max_calls: int = 1
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(init=False, default=CircuitState.CLOSED)
    _failure_count: int = field(init=False, default=0)
    _last_failure_time: float = field(init=False, default=0.0)
    _half_open_calls: int = field(init=False, default=0)
    _trial_started: float = field(init=False, default=0.0)

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> float:
        return self._last_failure_time

    def allow_request(self) -> bool:
        """Admission check. May move OPEN -> HALF_OPEN and claim a trial slot."""
        if self._state == CircuitState.CLOSED:
            return True

        now = self.clock()
        if self._state == CircuitState.OPEN:
            if now - self._last_failure_time > self.reset_timeout:
                self._state = CircuitState.HALF_OPEN
                self._half_open_calls = 1
                self._trial_started = now
                logger.info("CircuitBreaker: %s circuit half-open, testing...", self.name)
                return True
            return False

        # HALF_OPEN: a trial that never reported back frees its slot
        if now - self._trial_started > self.reset_timeout:
            self._half_open_calls = 0
        if self._half_open_calls < self.half_open_max_calls:
            self._half_open_calls += 1
            self._trial_started = now
            return True
        return False

    def release_trial(self) -> None:
        """Hand back a half-open trial slot whose call ended without a verdict."""
        if self._state == CircuitState.HALF_OPEN and self._half_open_calls > 0:
            self._half_open_calls -= 1

    def record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info("CircuitBreaker: %s circuit closed", self.name)
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._half_open_calls = 0

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self.clock()

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self._half_open_calls = 0
            logger.warning("CircuitBreaker: %s trial call failed, circuit re-opened", self.name)
        elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "CircuitBreaker: %s circuit opened after %d failures",
                self.name, self._failure_count,
            )

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._half_open_calls = 0
        logger.info("CircuitBreaker: %s circuit manually reset", self.name)

    def snapshot(self) -> dict[str, Any]:
        return {"state": self._state.value, "failures": self._failure_count}


class CircuitBreakerRegistry:
    """Registry of circuit breakers, one per API."""

    def __init__(
        self,
        configs: Mapping[str, BreakerConfig] | None = None,
        default: BreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._configs = dict(configs or {})
        self._default = default or BreakerConfig()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def _build(self, name: str, config: BreakerConfig) -> CircuitBreaker:
        return CircuitBreaker(
            name=name,
            failure_threshold=config.failure_threshold,
            reset_timeout=config.reset_timeout,
            clock=self._clock,
        )

    def register(self, name: str, failure_threshold: int = 5,
                 reset_timeout: float = 30.0) -> CircuitBreaker:
        self._configs[name] = BreakerConfig(failure_threshold, reset_timeout)
        breaker = self._build(name, self._configs[name])
        self._breakers[name] = breaker
        return breaker

    def get_or_create(self, name: str) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is not None:
            return breaker
        config = self._configs.get(name, self._default)
        return self._breakers.setdefault(name, self._build(name, config))

    def allow_request(self, name: str) -> bool:
        return self.get_or_create(name).allow_request()

    def record_success(self, name: str) -> None:
        self.get_or_create(name).record_success()

    def record_failure(self, name: str) -> None:
        self.get_or_create(name).record_failure()

    def release_trial(self, name: str) -> None:
        self.get_or_create(name).release_trial()

    def reset(self, name: str) -> None:
        self.get_or_create(name).reset()

    def names(self) -> list[str]:
        return list(self._breakers)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {name: cb.snapshot() for name, cb in list(self._breakers.items())}
