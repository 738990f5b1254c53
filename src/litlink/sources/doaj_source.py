"""DOAJ (Directory of Open Access Journals) article search adapter."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..errors import LitlinkError
from ..models import Paper
from .base import BaseSource, SearchResult

logger = logging.getLogger(__name__)


class DoajSource(BaseSource):
    """Search adapter for the DOAJ v3 API. All DOAJ content is open access."""

    BASE_URL = "https://doaj.org/api/search/articles"

    @property
    def name(self) -> str:
        return "doaj"

    async def search(
        self,
        query: str,
        max_results: int = 50,
        page: int = 1,
        year_start: int | None = None,
        year_end: int | None = None,
    ) -> SearchResult:
        terms = [f"({query})"]
        if year_start is not None or year_end is not None:
            lo = year_start if year_start is not None else "*"
            hi = year_end if year_end is not None else "*"
            terms.append(f"bibjson.year:[{lo} TO {hi}]")
        url = f"{self.BASE_URL}/{quote(' AND '.join(terms), safe='')}"

        try:
            data = await self.http.fetch_json(
                url,
                api_name=self.api_name,
                params={"page": page, "pageSize": min(max_results, 100)},
                headers={"Accept": "application/json"},
            )
        except (LitlinkError, httpx.HTTPError, ValueError):
            self.logger.exception("DOAJ search failed for query=%r", query)
            return self._empty(query)

        papers: list[Paper] = []
        for result in data.get("results", []):
            try:
                papers.append(self._parse_result(result))
            except (KeyError, TypeError, ValueError):
                self.logger.debug("Skipping unparseable DOAJ record: %s", result.get("id", "?"))

        return SearchResult(
            papers=papers,
            total_results=data.get("total", 0),
            query=query,
            api_source=self.name,
            raw_response=data,
        )

    def _parse_result(self, result: dict[str, Any]) -> Paper:
        bib = result.get("bibjson", {})

        doi: str | None = None
        for identifier in bib.get("identifier", []):
            if (identifier.get("type") or "").lower() == "doi" and identifier.get("id"):
                doi = identifier["id"].replace("https://doi.org/", "").lower()
                break

        url: str | None = None
        for link in bib.get("link", []):
            if link.get("type") == "fulltext" and link.get("url"):
                url = link["url"]
                break
        if url is None:
            url = f"https://doi.org/{doi}" if doi else f"https://doaj.org/article/{result.get('id')}"

        year_raw = bib.get("year")
        year = int(year_raw) if year_raw and str(year_raw).isdigit() else None

        return self._make_paper(
            title=bib.get("title") or "(no title)",
            abstract=bib.get("abstract") or None,
            year=year,
            doi=doi,
            url=url,
            authors=[a["name"] for a in bib.get("author", []) if a.get("name")],
            venue=(bib.get("journal") or {}).get("title"),
            raw_metadata={"doaj_id": result.get("id")},
        )
