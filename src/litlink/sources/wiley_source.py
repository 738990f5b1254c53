"""Wiley adapter: search through Crossref, full text through the TDM API."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..errors import LitlinkError
from ..http_client import ResilientHttpClient
from ..models import Paper, PdfSource
from .base import BaseSource, SearchResult
from .crossref_source import CrossrefSource

logger = logging.getLogger(__name__)

WILEY_CROSSREF_MEMBER = "311"
WILEY_DOI_PREFIX = "10.1002/"
TDM_URL = "https://api.wiley.com/onlinelibrary/tdm/v1/articles/{doi}"


class WileySource(BaseSource):
    """Wiley journals.

    Searches are Crossref queries restricted to Wiley's member id and are
    throttled under the ``crossref`` API name. PDF checks hit the Wiley TDM
    API under ``wiley`` and need a client token.
    """

    def __init__(self, http: ResilientHttpClient, tdm_token: str | None = None) -> None:
        super().__init__(http)
        self.tdm_token = tdm_token if tdm_token is not None else self.settings.wiley_tdm_token
        self._crossref = CrossrefSource(http)

    @property
    def name(self) -> str:
        return "wiley"

    async def search(
        self,
        query: str,
        max_results: int = 100,
        offset: int = 0,
        year_start: int | None = None,
        year_end: int | None = None,
    ) -> SearchResult:
        result = await self._crossref.search(
            query,
            max_results=max_results,
            offset=offset,
            filters=[f"member:{WILEY_CROSSREF_MEMBER}"],
            year_start=year_start,
            year_end=year_end,
        )
        papers = [paper.model_copy(update={"source_api": self.name}) for paper in result.papers]
        return SearchResult(
            papers=papers,
            total_results=result.total_results,
            query=query,
            api_source=self.name,
            raw_response=result.raw_response,
        )

    def tdm_headers(self) -> dict[str, str]:
        return {"Wiley-TDM-Client-Token": self.tdm_token or "", "Accept": "application/pdf"}

    async def get_pdf_source(self, doi: str) -> PdfSource | None:
        """TDM download URL for ``doi`` if Wiley confirms access, else ``None``."""
        if not self.tdm_token or not doi.startswith(WILEY_DOI_PREFIX):
            return None

        url = TDM_URL.format(doi=quote(doi, safe=""))
        try:
            response = await self.http.fetch(
                url, method="HEAD", api_name=self.api_name, headers=self.tdm_headers()
            )
        except (LitlinkError, httpx.HTTPError) as e:
            self.logger.warning("Wiley TDM check failed for doi=%r: %s", doi, e)
            return None

        if response.is_success:
            return PdfSource(source="wiley", url=url, is_pdf=True)
        self.logger.debug("Wiley TDM returned %d for %s", response.status_code, doi)
        return None

    async def fetch_all(self, query: str, max_results: int = 500, page_size: int = 100,
                        **filters: Any) -> list[Paper]:
        """Page through Wiley search results up to ``max_results``."""
        papers: list[Paper] = []
        while len(papers) < max_results:
            page = await self.search(
                query, max_results=min(page_size, max_results - len(papers)),
                offset=len(papers), **filters,
            )
            if not page.papers:
                break
            papers.extend(page.papers)
            if len(papers) >= page.total_results:
                break
        return papers
