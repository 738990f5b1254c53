"""PubMed/NCBI E-utilities adapter for litlink.

Requests go through the shared resilient client; the returned XML is parsed
with Biopython's ``Bio.Entrez.read``.
"""

from __future__ import annotations

import io
import logging
import re
from typing import Any

import httpx
from Bio import Entrez

from ..errors import LitlinkError
from ..http_client import ResilientHttpClient
from ..models import Paper
from .base import BaseSource, SearchResult

logger = logging.getLogger(__name__)

EUTILS_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
EFETCH_BATCH_SIZE = 200

_WHITESPACE_RE = re.compile(r"\s+")


def _clean(value: Any) -> str:
    return _WHITESPACE_RE.sub(" ", str(value or "")).strip()


class PubMedSource(BaseSource):
    """Adapter for the PubMed E-utilities (esearch + efetch).

    Search uses the history server: esearch stores the result set and
    efetch pages through it in batches.
    """

    def __init__(self, http: ResilientHttpClient, api_key: str | None = None) -> None:
        super().__init__(http)
        self.api_key = api_key if api_key is not None else self.settings.ncbi_api_key

    @property
    def name(self) -> str:
        return "pubmed"

    def _params(self, **params: Any) -> dict[str, Any]:
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    # ------------------------------------------------------------------
    # E-utilities calls (raise LitlinkError on failure)
    # ------------------------------------------------------------------

    async def esearch(
        self,
        term: str,
        retmax: int = 0,
        min_date: str | None = None,
        max_date: str | None = None,
    ) -> tuple[str, str, int]:
        """Run esearch with history enabled. Returns (webenv, query_key, count)."""
        params = self._params(db="pubmed", term=term, retmode="json", usehistory="y", retmax=retmax)
        if min_date:
            params["mindate"] = min_date
        if max_date:
            params["maxdate"] = max_date
        if min_date or max_date:
            params["datetype"] = "pdat"

        data = await self.http.fetch_json(
            f"{EUTILS_URL}/esearch.fcgi", api_name=self.api_name, params=params
        )
        result = data.get("esearchresult", {})
        webenv = result.get("webenv")
        query_key = result.get("querykey")
        if not webenv or not query_key:
            raise ValueError("PubMed esearch did not return webenv/querykey")
        return webenv, query_key, int(result.get("count", 0))

    async def efetch_batch(self, webenv: str, query_key: str, retstart: int, retmax: int) -> list[Paper]:
        params = self._params(
            db="pubmed", query_key=query_key, WebEnv=webenv,
            retstart=retstart, retmax=retmax, retmode="xml",
        )
        response = await self.http.fetch_checked(
            f"{EUTILS_URL}/efetch.fcgi", api_name=self.api_name, params=params
        )
        return self.parse_articles(response.content)

    async def fetch_by_pmids(self, pmids: list[str]) -> list[Paper]:
        """Fetch full records for explicit PMIDs, batching long lists."""
        papers: list[Paper] = []
        for start in range(0, len(pmids), EFETCH_BATCH_SIZE):
            chunk = pmids[start:start + EFETCH_BATCH_SIZE]
            params = self._params(db="pubmed", id=",".join(chunk), retmode="xml")
            response = await self.http.fetch_checked(
                f"{EUTILS_URL}/efetch.fcgi", api_name=self.api_name, params=params
            )
            papers.extend(self.parse_articles(response.content))
        return papers

    # ------------------------------------------------------------------
    # Degrading entry points
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        max_results: int = 100,
        year_start: int | None = None,
        year_end: int | None = None,
    ) -> SearchResult:
        """Search PubMed for articles matching *query*.

        Parameters
        ----------
        query:
            The search query string (PubMed search syntax is supported).
        max_results:
            Maximum number of results to return (capped at 10 000).
        year_start / year_end:
            Publication-date window, inclusive.
        """
        max_results = min(max_results, 10_000)
        try:
            webenv, query_key, count = await self.esearch(
                query,
                min_date=f"{year_start}/01/01" if year_start is not None else None,
                max_date=f"{year_end}/12/31" if year_end is not None else None,
            )
            papers: list[Paper] = []
            target = min(count, max_results)
            while len(papers) < target:
                batch = await self.efetch_batch(
                    webenv, query_key, retstart=len(papers),
                    retmax=min(EFETCH_BATCH_SIZE, target - len(papers)),
                )
                if not batch:
                    break
                papers.extend(batch)
        except (LitlinkError, httpx.HTTPError, ValueError):
            self.logger.exception("PubMed search failed for query: %s", query)
            return self._empty(query)

        return SearchResult(papers=papers, total_results=count, query=query, api_source=self.name)

    async def get_by_pmid(self, pmid: str) -> Paper | None:
        try:
            papers = await self.fetch_by_pmids([pmid])
        except (LitlinkError, httpx.HTTPError, ValueError) as e:
            self.logger.warning("PubMed fetch failed for pmid=%s: %s", pmid, e)
            return None
        return papers[0] if papers else None

    # ------------------------------------------------------------------
    # Article parsing
    # ------------------------------------------------------------------

    def parse_articles(self, xml_data: bytes) -> list[Paper]:
        """Parse an efetch ``PubmedArticleSet`` document into papers."""
        records = Entrez.read(io.BytesIO(xml_data))
        papers: list[Paper] = []
        for article in records.get("PubmedArticle", []):
            try:
                paper = self._parse_article(article)
            except (KeyError, TypeError, ValueError):
                self.logger.debug("Failed to parse a PubMed article record", exc_info=True)
                continue
            if paper is not None:
                papers.append(paper)
        return papers

    def _parse_article(self, article: dict[str, Any]) -> Paper | None:
        """Convert a single PubmedArticle dict into a :class:`Paper`."""
        medline = article.get("MedlineCitation", {})
        article_data = medline.get("Article", {})
        pubmed_data = article.get("PubmedData", {})

        pmid = _clean(medline.get("PMID"))
        if not pmid or not article_data:
            return None

        # Abstract -----------------------------------------------------
        abstract_texts = article_data.get("Abstract", {}).get("AbstractText", [])
        abstract = " ".join(_clean(part) for part in abstract_texts if _clean(part))

        # Year: journal issue date, else the electronic article date ----
        year: int | None = None
        journal = article_data.get("Journal", {})
        year_text = _clean(journal.get("JournalIssue", {}).get("PubDate", {}).get("Year"))
        if not year_text:
            for article_date in article_data.get("ArticleDate", []):
                year_text = _clean(article_date.get("Year"))
                if year_text:
                    break
        if year_text.isdigit():
            year = int(year_text)

        return self._make_paper(
            title=_clean(article_data.get("ArticleTitle")),
            abstract=abstract or None,
            year=year,
            doi=self._extract_doi(article_data, pubmed_data),
            pmid=pmid,
            url=f"https://pubmed.ncbi.nlm.nih.gov/{pmid}/",
            authors=self._extract_authors(article_data),
            venue=_clean(journal.get("Title")) or None,
        )

    @staticmethod
    def _extract_doi(article_data: dict[str, Any], pubmed_data: dict[str, Any]) -> str | None:
        """Try several locations for a DOI string."""
        for eloc in article_data.get("ELocationID", []):
            if getattr(eloc, "attributes", {}).get("EIdType") == "doi" and str(eloc).strip():
                return str(eloc).strip()
        for aid in pubmed_data.get("ArticleIdList", []):
            if getattr(aid, "attributes", {}).get("IdType") == "doi" and str(aid).strip():
                return str(aid).strip()
        return None

    @staticmethod
    def _extract_authors(article_data: dict[str, Any]) -> list[str]:
        authors: list[str] = []
        for author in article_data.get("AuthorList", []):
            last = _clean(author.get("LastName"))
            initials = _clean(author.get("Initials"))
            forename = _clean(author.get("ForeName"))

            if last and initials:
                authors.append(f"{last} {initials}")
            elif last and forename:
                authors.append(f"{forename} {last}")
            elif last:
                authors.append(last)
            else:
                collective = _clean(author.get("CollectiveName"))
                if collective:
                    authors.append(collective)
        return authors
