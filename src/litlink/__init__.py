"""litlink: resilient outbound HTTP for scholarly APIs."""

from .circuit_breaker import CircuitBreaker, CircuitBreakerRegistry, CircuitState
from .errors import (
    CircuitBreakerOpenError,
    HttpStatusError,
    LitlinkError,
    NonRetryableHttpError,
    RequestCancelledError,
    RetriesExhaustedError,
    RetryableStatusError,
    RetryableTransportError,
)
from .http_client import ResilientHttpClient
from .rate_limit import RateLimiterRegistry, TokenBucket
from .retry import RetryPolicy, calculate_backoff

__version__ = "0.1.0"

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitBreakerRegistry",
    "CircuitState",
    "HttpStatusError",
    "LitlinkError",
    "NonRetryableHttpError",
    "RateLimiterRegistry",
    "RequestCancelledError",
    "ResilientHttpClient",
    "RetriesExhaustedError",
    "RetryPolicy",
    "RetryableStatusError",
    "RetryableTransportError",
    "TokenBucket",
    "calculate_backoff",
]
