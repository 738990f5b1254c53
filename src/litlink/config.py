"""Settings management for litlink."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")


@dataclass(frozen=True)
class RateLimitConfig:
    """Token bucket parameters for a single API."""
    rate: float   # tokens per second
    burst: float  # bucket capacity


@dataclass(frozen=True)
class BreakerConfig:
    """Circuit breaker parameters for a single API."""
    failure_threshold: int = 5
    reset_timeout: float = 30.0  # seconds


FALLBACK_RATE_LIMIT = RateLimitConfig(rate=5.0, burst=10)

DEFAULT_RATE_LIMITS: dict[str, RateLimitConfig] = {
    "pubmed": RateLimitConfig(rate=3.0, burst=10),  # 10/s with an NCBI key
    "crossref": RateLimitConfig(rate=50.0, burst=50),
    "doaj": RateLimitConfig(rate=10.0, burst=20),
    "openrouter": RateLimitConfig(rate=10.0, burst=20),
    "unpaywall": RateLimitConfig(rate=10.0, burst=10),
}

PUBMED_KEYED_RATE = 10.0


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass
class Settings:
    """Global application settings."""

    # Paths
    project_root: Path = field(default_factory=lambda: _PROJECT_ROOT)
    cache_dir: Path = field(default_factory=lambda: _PROJECT_ROOT / os.getenv("LITLINK_CACHE_DIR", "cache"))
    logs_dir: Path = field(default_factory=lambda: _PROJECT_ROOT / "logs")

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LITLINK_LOG_LEVEL", "INFO"))

    # Credentials and contact details for polite API use
    ncbi_api_key: str | None = field(
        default_factory=lambda: os.getenv("NCBI_API_KEY") or os.getenv("PUBMED_API_KEY") or None
    )
    crossref_mailto: str | None = field(default_factory=lambda: os.getenv("CROSSREF_MAILTO") or None)
    wiley_tdm_token: str | None = field(default_factory=lambda: os.getenv("WILEY_TDM_TOKEN") or None)
    openrouter_api_key: str | None = field(default_factory=lambda: os.getenv("OPENROUTER_API_KEY") or None)
    openrouter_model: str = field(
        default_factory=lambda: os.getenv("OPENROUTER_MODEL", "google/gemini-2.0-flash-001")
    )

    # HTTP behaviour
    http_timeout: float = field(default_factory=lambda: _env_float("LITLINK_HTTP_TIMEOUT", 30.0))
    breaker_threshold: int = field(
        default_factory=lambda: int(_env_float("LITLINK_BREAKER_THRESHOLD", 5))
    )
    breaker_reset_timeout: float = field(
        default_factory=lambda: _env_float("LITLINK_BREAKER_RESET_SECONDS", 30.0)
    )

    @property
    def user_agent(self) -> str:
        contact = self.crossref_mailto or "support@litlink.dev"
        return f"litlink/0.1 (mailto:{contact})"

    @property
    def unpaywall_email(self) -> str:
        return self.crossref_mailto or "litlink@example.com"

    def rate_limits(self) -> dict[str, RateLimitConfig]:
        """Per-API token bucket table with environment overrides applied."""
        limits = dict(DEFAULT_RATE_LIMITS)
        if self.ncbi_api_key:
            limits["pubmed"] = RateLimitConfig(rate=PUBMED_KEYED_RATE, burst=limits["pubmed"].burst)
        return limits

    def breaker_config(self) -> BreakerConfig:
        return BreakerConfig(
            failure_threshold=self.breaker_threshold,
            reset_timeout=self.breaker_reset_timeout,
        )

    def ensure_dirs(self) -> None:
        for d in [self.cache_dir, self.logs_dir]:
            d.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    """Get the global settings instance."""
    return Settings()
