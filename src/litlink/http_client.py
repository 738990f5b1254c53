"""Resilient HTTP client: rate limiting, circuit breaking and retries.

Every outbound call to a third-party API goes through
:meth:`ResilientHttpClient.fetch`, tagged with an API name. The client owns
one rate limiter registry and one circuit breaker registry; their entries
are created on first use of an API name and live as long as the client.

State is per process. Several instances of an application each enforce
their own limits, so a horizontally scaled deployment can exceed a shared
third-party quota.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable

import httpx

from .circuit_breaker import CircuitBreakerRegistry
from .config import Settings, get_settings
from .errors import (
    CircuitBreakerOpenError,
    NonRetryableHttpError,
    RequestCancelledError,
    RetriesExhaustedError,
    RetryableStatusError,
    RetryableTransportError,
)
from .rate_limit import RateLimiterRegistry
from .retry import (
    DEFAULT_RETRY_POLICY,
    RETRYABLE_EXCEPTIONS,
    CallAttempt,
    Outcome,
    RandomSource,
    RetryPolicy,
    calculate_backoff,
    classify_response,
)

logger = logging.getLogger(__name__)

BODY_EXCERPT_CHARS = 300
ATTEMPTS_EXTENSION = "litlink_attempts"


async def _run_cancellable(
    aw: Awaitable[Any],
    cancel_event: asyncio.Event,
    timeout: float | None = None,
) -> tuple[bool, Any]:
    """Await ``aw`` unless ``cancel_event`` fires first.

    Returns ``(True, result)`` when ``aw`` finished, ``(False, None)`` when
    the event fired. Raises ``asyncio.TimeoutError`` if neither happened
    within ``timeout``.
    """
    main = asyncio.ensure_future(aw)
    stop = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait(
            {main, stop}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for task in (main, stop):
            if not task.done():
                task.cancel()
        await asyncio.gather(main, stop, return_exceptions=True)

    if main in done:
        return True, main.result()
    if stop in done:
        return False, None
    raise asyncio.TimeoutError()


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


class ResilientHttpClient:
    """HTTP client with per-API rate limiting, circuit breaking and retries.

    Parameters:
        settings: Application settings; per-API limits and timeouts come from here.
        client: An ``httpx.AsyncClient`` to send through. One is created
            (and owned) when omitted.
        limiters / breakers: Registries to use instead of fresh ones.
        rng: Jitter source with a ``random()`` method.
        clock / sleep: Time functions, injectable for tests.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        limiters: RateLimiterRegistry | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        default_retry: RetryPolicy | None = None,
        rng: RandomSource = random,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": self.settings.user_agent},
        )
        self.limiters = limiters or RateLimiterRegistry(
            self.settings.rate_limits(), clock=clock, sleep=sleep
        )
        self.breakers = breakers or CircuitBreakerRegistry(
            default=self.settings.breaker_config(), clock=clock
        )
        self.default_retry = default_retry or DEFAULT_RETRY_POLICY
        self.default_timeout = self.settings.http_timeout
        self._rng = rng
        self._clock = clock
        self._sleep = sleep

    async def __aenter__(self) -> ResilientHttpClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Core call
    # ------------------------------------------------------------------

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        api_name: str = "default",
        retry: RetryPolicy | None = None,
        timeout: float | None = None,
        skip_rate_limit: bool = False,
        skip_circuit_breaker: bool = False,
        cancel_event: asyncio.Event | None = None,
        **request_kwargs: Any,
    ) -> httpx.Response:
        """Send one request with breaker admission, rate limiting and retries.

        ``timeout`` bounds each attempt, not the whole call: with the default
        policy a failing call can take several times ``timeout`` plus the
        backoff delays before it gives up.

        Returns the response for 2xx and for non-retryable statuses alike;
        a retryable status that survives every retry is also returned.
        Raises :class:`CircuitBreakerOpenError` without sending anything when
        the breaker rejects the call, :class:`RetryableTransportError` when
        network failures exhaust the retries, and
        :class:`RequestCancelledError` when ``cancel_event`` fires.
        """
        policy = retry or self.default_retry
        timeout = self.default_timeout if timeout is None else timeout

        if not skip_circuit_breaker and not self.breakers.allow_request(api_name):
            logger.warning("%s: circuit breaker open, rejecting %s %s", api_name, method, url)
            raise CircuitBreakerOpenError(api_name)

        if not skip_rate_limit:
            await self.limiters.acquire(api_name)

        attempts: list[CallAttempt] = []
        try:
            for attempt in range(policy.max_retries + 1):
                if cancel_event is not None and cancel_event.is_set():
                    raise RequestCancelledError(api_name, url)

                record = CallAttempt(attempt_number=attempt, started_at=self._clock())
                attempts.append(record)
                logger.debug("%s %s %s - attempt %d/%d", api_name, method, url,
                             attempt + 1, policy.max_retries + 1)

                try:
                    response = await self._send(
                        method, url, timeout, cancel_event, api_name, request_kwargs
                    )
                except RETRYABLE_EXCEPTIONS as exc:
                    record.outcome = Outcome.RETRYABLE_FAILURE
                    record.error = _describe(exc)
                    if attempt < policy.max_retries:
                        record.delay = calculate_backoff(attempt, policy, self._rng)
                        logger.info(
                            "%s error - retry %d/%d in %dms: %s",
                            api_name, attempt + 1, policy.max_retries,
                            round(record.delay * 1000), record.error,
                        )
                        await self._pause(record.delay, cancel_event, api_name, url)
                        continue
                    if not skip_circuit_breaker:
                        self.breakers.record_failure(api_name)
                    logger.warning("%s: giving up on %s after %d attempts: %s",
                                   api_name, url, len(attempts), record.error)
                    raise RetryableTransportError(api_name, url, len(attempts)) from exc
                except httpx.HTTPError as exc:
                    record.outcome = Outcome.FATAL_FAILURE
                    record.error = _describe(exc)
                    if not skip_circuit_breaker:
                        self.breakers.record_failure(api_name)
                    logger.error("%s: non-retryable error for %s: %s", api_name, url, record.error)
                    raise

                record.status_code = response.status_code
                record.outcome = classify_response(response, policy)
                response.extensions[ATTEMPTS_EXTENSION] = attempts

                if record.outcome is Outcome.SUCCESS:
                    if not skip_circuit_breaker:
                        self.breakers.record_success(api_name)
                    return response

                if record.outcome is Outcome.RETRYABLE_FAILURE:
                    if attempt < policy.max_retries:
                        record.delay = calculate_backoff(attempt, policy, self._rng)
                        logger.info(
                            "%s %d - retry %d/%d in %dms",
                            api_name, response.status_code, attempt + 1,
                            policy.max_retries, round(record.delay * 1000),
                        )
                        await response.aclose()
                        await self._pause(record.delay, cancel_event, api_name, url)
                        continue
                    if not skip_circuit_breaker:
                        self.breakers.record_failure(api_name)
                    logger.warning("%s: %s still returning %d after %d attempts",
                                   api_name, url, response.status_code, len(attempts))
                    return response

                # Non-retryable status: the caller decides what it means, and
                # any half-open trial slot is handed back.
                logger.debug("%s: %s returned %d", api_name, url, response.status_code)
                if not skip_circuit_breaker:
                    self.breakers.release_trial(api_name)
                return response

            raise RetriesExhaustedError(api_name, url)
        except RequestCancelledError:
            if not skip_circuit_breaker:
                self.breakers.release_trial(api_name)
            raise

    async def _send(
        self,
        method: str,
        url: str,
        timeout: float,
        cancel_event: asyncio.Event | None,
        api_name: str,
        request_kwargs: dict[str, Any],
    ) -> httpx.Response:
        request = self._client.request(method, url, timeout=timeout, **request_kwargs)
        if cancel_event is None:
            return await asyncio.wait_for(request, timeout)
        finished, response = await _run_cancellable(request, cancel_event, timeout)
        if not finished:
            raise RequestCancelledError(api_name, url)
        return response

    async def _pause(
        self,
        delay: float,
        cancel_event: asyncio.Event | None,
        api_name: str,
        url: str,
    ) -> None:
        if cancel_event is None:
            await self._sleep(delay)
            return
        finished, _ = await _run_cancellable(self._sleep(delay), cancel_event)
        if not finished:
            raise RequestCancelledError(api_name, url)

    # ------------------------------------------------------------------
    # Strict helpers
    # ------------------------------------------------------------------

    async def fetch_checked(self, url: str, **kwargs: Any) -> httpx.Response:
        """Like :meth:`fetch`, but any non-2xx response raises."""
        response = await self.fetch(url, **kwargs)
        if response.is_success:
            return response

        excerpt = (await self._read_body(response))[:BODY_EXCERPT_CHARS]
        policy = kwargs.get("retry") or self.default_retry
        if policy.is_retryable_status(response.status_code):
            raise RetryableStatusError(response.status_code, url, excerpt)
        raise NonRetryableHttpError(response.status_code, url, excerpt)

    async def fetch_json(self, url: str, **kwargs: Any) -> Any:
        """Fetch ``url`` and decode a JSON body, raising on non-2xx."""
        response = await self.fetch_checked(url, **kwargs)
        return response.json()

    async def fetch_text(self, url: str, **kwargs: Any) -> str:
        """Fetch ``url`` and return its decoded body, raising on non-2xx."""
        response = await self.fetch_checked(url, **kwargs)
        return response.text

    @staticmethod
    async def _read_body(response: httpx.Response) -> str:
        try:
            await response.aread()
            return response.text
        except (httpx.HTTPError, httpx.StreamError):
            return ""

    # ------------------------------------------------------------------
    # Stats and administration
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        """Snapshot of every limiter and breaker the client has created."""
        return {
            "rate_limiters": self.limiters.snapshot(),
            "circuit_breakers": self.breakers.snapshot(),
        }

    def reset_circuit_breaker(self, api_name: str) -> None:
        """Force the breaker for ``api_name`` closed with zero failures."""
        self.breakers.reset(api_name)
