"""Exceptions raised by the resilient HTTP layer."""

from __future__ import annotations


class LitlinkError(Exception):
    """Base class for every error raised by litlink."""


class CircuitBreakerOpenError(LitlinkError):
    """The breaker for an API is open; no request was sent.

    Callers should treat this as "service degraded, try later" and must not
    retry immediately.
    """

    def __init__(self, api_name: str) -> None:
        super().__init__(f"Circuit breaker open for {api_name}")
        self.api_name = api_name


class RetryableTransportError(LitlinkError):
    """Network-level failure that survived every retry attempt."""

    def __init__(self, api_name: str, url: str, attempts: int) -> None:
        super().__init__(f"{api_name}: transport failure for {url} after {attempts} attempt(s)")
        self.api_name = api_name
        self.url = url
        self.attempts = attempts


class HttpStatusError(LitlinkError):
    """A non-2xx response surfaced by the strict fetch helpers."""

    def __init__(self, status_code: int, url: str, body_excerpt: str = "") -> None:
        super().__init__(f"HTTP {status_code} for {url}: {body_excerpt}")
        self.status_code = status_code
        self.url = url
        self.body_excerpt = body_excerpt


class RetryableStatusError(HttpStatusError):
    """Final response still carried a retryable status after all retries."""


class NonRetryableHttpError(HttpStatusError):
    """Final response carried a status that is never retried (e.g. 400, 404)."""


class RetriesExhaustedError(LitlinkError):
    """The retry loop ended without a classified outcome."""

    def __init__(self, api_name: str, url: str) -> None:
        super().__init__(f"All retries exhausted for {url} ({api_name})")
        self.api_name = api_name
        self.url = url


class RequestCancelledError(LitlinkError):
    """The caller's cancel event fired while the call was in progress."""

    def __init__(self, api_name: str, url: str) -> None:
        super().__init__(f"Request to {url} ({api_name}) cancelled")
        self.api_name = api_name
        self.url = url
