"""Shared fixtures: a controllable clock and a client wired to a mock transport."""

import asyncio
import random

import httpx
import pytest

from litlink.config import Settings
from litlink.http_client import ResilientHttpClient


class FakeClock:
    """Monotonic clock that only moves when told to (or when slept on)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        cache_dir=tmp_path / "cache",
        logs_dir=tmp_path / "logs",
        ncbi_api_key=None,
        crossref_mailto="tests@example.com",
        wiley_tdm_token=None,
        openrouter_api_key=None,
    )


@pytest.fixture
def make_client(clock, settings):
    """Build a ResilientHttpClient whose requests are answered by ``handler``."""

    def _make(handler, **kwargs) -> ResilientHttpClient:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("sleep", clock.sleep)
        kwargs.setdefault("rng", random.Random(1234))
        kwargs.setdefault("settings", settings)
        transport = httpx.MockTransport(handler)
        return ResilientHttpClient(client=httpx.AsyncClient(transport=transport), **kwargs)

    return _make
