"""Base adapter interface for the scholarly API integrations."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..http_client import ResilientHttpClient
from ..models import Paper

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    """Result from a search operation."""
    papers: list[Paper] = field(default_factory=list)
    total_results: int = 0
    query: str = ""
    api_source: str = ""
    raw_response: Any = None


class BaseSource(ABC):
    """Base class for API adapters.

    Every request goes through the shared :class:`ResilientHttpClient`,
    tagged with :attr:`api_name`, so the adapter never talks to the network
    outside the rate limiter and circuit breaker for its API.
    """

    def __init__(self, http: ResilientHttpClient) -> None:
        self.http = http
        self.settings = http.settings
        self.logger = logging.getLogger(f"litlink.sources.{self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    def api_name(self) -> str:
        """Rate limiter / breaker key. Defaults to the adapter name."""
        return self.name

    def _empty(self, query: str) -> SearchResult:
        return SearchResult(papers=[], total_results=0, query=query, api_source=self.name)

    def _make_paper(self, **kwargs: Any) -> Paper:
        """Helper to create a Paper with source_api set."""
        return Paper(source_api=self.name, **kwargs)
