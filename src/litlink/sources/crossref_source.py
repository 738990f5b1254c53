"""Crossref API adapter: DOI lookups, search and metadata enrichment."""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import quote

import httpx

from ..cache import MetadataCache
from ..errors import LitlinkError, NonRetryableHttpError
from ..http_client import ResilientHttpClient
from ..models import ArticleReference, EnrichedArticleData, Paper
from .base import BaseSource, SearchResult

logger = logging.getLogger(__name__)

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")

MAX_REFERENCES = 50


def strip_jats(text: str) -> str:
    """Remove HTML/JATS tags and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", _HTML_TAG_RE.sub("", text)).strip()


def extract_year(item: dict[str, Any]) -> int | None:
    """Extract publication year from date-parts, trying multiple fields."""
    for key in ("published-print", "published-online", "published", "issued"):
        try:
            date_parts = item[key]["date-parts"][0]
            if date_parts and date_parts[0]:
                return int(date_parts[0])
        except (KeyError, IndexError, TypeError, ValueError):
            continue
    return None


class CrossrefSource(BaseSource):
    """Adapter for the Crossref REST API."""

    BASE_URL = "https://api.crossref.org"

    def __init__(self, http: ResilientHttpClient, cache: MetadataCache | None = None) -> None:
        super().__init__(http)
        self.cache = cache

    @property
    def name(self) -> str:
        return "crossref"

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": self.settings.user_agent, "Accept": "application/json"}

    # ------------------------------------------------------------------
    # DOI lookups
    # ------------------------------------------------------------------

    async def fetch_work(self, doi: str) -> dict[str, Any] | None:
        """Return the raw Crossref work for ``doi``; ``None`` if Crossref has no record.

        Transport failures, an open breaker and unexpected statuses raise
        :class:`LitlinkError` subclasses.
        """
        doi = doi.strip()
        if self.cache is not None:
            hit, cached = self.cache.lookup(self.api_name, doi.lower())
            if hit:
                return cached

        url = f"{self.BASE_URL}/works/{quote(doi, safe='')}"
        try:
            data = await self.http.fetch_json(url, api_name=self.api_name, headers=self._headers())
        except NonRetryableHttpError as e:
            if e.status_code == 404:
                if self.cache is not None:
                    self.cache.set_missing(self.api_name, doi.lower())
                return None
            raise

        work = data.get("message")
        if self.cache is not None and work:
            self.cache.set(self.api_name, doi.lower(), work)
        return work

    async def get_work(self, doi: str) -> dict[str, Any] | None:
        """Like :meth:`fetch_work`, but failures are logged and yield ``None``."""
        try:
            return await self.fetch_work(doi)
        except (LitlinkError, httpx.HTTPError) as e:
            self.logger.warning("Crossref lookup failed for doi=%r: %s", doi, e)
            return None
        except ValueError:
            self.logger.exception("Crossref returned invalid JSON for doi=%r", doi)
            return None

    async def get_by_doi(self, doi: str) -> Paper | None:
        work = await self.get_work(doi)
        return self.parse_item(work) if work else None

    async def enrich_by_doi(self, doi: str) -> EnrichedArticleData | None:
        work = await self.get_work(doi)
        return self.extract_enriched_data(work) if work else None

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        max_results: int = 20,
        offset: int = 0,
        filters: list[str] | None = None,
        year_start: int | None = None,
        year_end: int | None = None,
    ) -> SearchResult:
        """Search Crossref works. ``filters`` are raw ``name:value`` strings."""
        filter_parts = list(filters or [])
        if year_start is not None:
            filter_parts.append(f"from-pub-date:{year_start}")
        if year_end is not None:
            filter_parts.append(f"until-pub-date:{year_end}")

        params: dict[str, Any] = {"query": query, "rows": min(max_results, 1000)}
        if offset:
            params["offset"] = offset
        if filter_parts:
            params["filter"] = ",".join(filter_parts)

        try:
            data = await self.http.fetch_json(
                f"{self.BASE_URL}/works",
                api_name=self.api_name,
                params=params,
                headers=self._headers(),
            )
        except (LitlinkError, httpx.HTTPError, ValueError):
            self.logger.exception("Crossref search failed for query=%r", query)
            return self._empty(query)

        message = data.get("message", {})
        papers: list[Paper] = []
        for item in message.get("items", []):
            try:
                papers.append(self.parse_item(item))
            except (KeyError, TypeError, ValueError):
                self.logger.debug("Skipping unparseable Crossref item: %s", item.get("DOI", "?"))

        return SearchResult(
            papers=papers,
            total_results=message.get("total-results", 0),
            query=query,
            api_source=self.name,
            raw_response=data,
        )

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_item(self, item: dict[str, Any]) -> Paper:
        """Convert a single Crossref work item into a :class:`Paper`."""
        title_list = item.get("title") or []
        if isinstance(title_list, str):
            title = title_list
        else:
            title = title_list[0] if title_list else "Untitled"

        abstract_raw = item.get("abstract", "")
        abstract = strip_jats(abstract_raw) if abstract_raw else None

        authors: list[str] = []
        for author in item.get("author", []):
            full = f"{author.get('given', '')} {author.get('family', '')}".strip()
            if full:
                authors.append(full)

        container = item.get("container-title") or [None]
        doi = item.get("DOI")

        return self._make_paper(
            title=title,
            abstract=abstract or None,
            year=extract_year(item),
            doi=doi,
            url=item.get("URL") or (f"https://doi.org/{doi}" if doi else None),
            authors=authors,
            venue=container[0],
            citation_count=item.get("is-referenced-by-count"),
            raw_metadata=item,
        )

    @staticmethod
    def extract_enriched_data(work: dict[str, Any]) -> EnrichedArticleData:
        """Pull publisher, pagination, licensing and reference data from a work."""
        data = EnrichedArticleData(
            publisher=work.get("publisher"),
            volume=work.get("volume"),
            issue=work.get("issue"),
            pages=work.get("page"),
            cited_by_count=work.get("is-referenced-by-count") or None,
            references_count=work.get("references-count") or None,
            subjects=list(work.get("subject") or []),
        )

        issn = work.get("ISSN") or []
        if issn:
            data.issn = issn[0]

        for lic in work.get("license") or []:
            if "creativecommons" in (lic.get("URL") or "") or lic.get("content-version") == "vor":
                data.license = lic.get("URL")
                break

        for link in work.get("link") or []:
            if "pdf" in (link.get("content-type") or ""):
                data.pdf_url = link.get("URL")
            elif link.get("intended-application") == "text-mining":
                data.full_text_url = link.get("URL")

        data.references = [
            ArticleReference(
                doi=ref.get("DOI"),
                title=ref.get("article-title"),
                author=ref.get("author"),
                year=ref.get("year"),
                journal=ref.get("journal-title"),
            )
            for ref in (work.get("reference") or [])[:MAX_REFERENCES]
        ]
        return data
