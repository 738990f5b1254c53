"""Full-text discovery across PMC, Unpaywall and Wiley TDM."""

from __future__ import annotations

import asyncio
import logging

import httpx

from ..errors import LitlinkError
from ..http_client import ResilientHttpClient
from ..models import PdfSource
from ..sources.pmc_source import PmcSource
from ..sources.unpaywall_source import UnpaywallSource
from ..sources.wiley_source import WileySource

logger = logging.getLogger(__name__)


def pick_best(candidates: list[PdfSource | None]) -> PdfSource | None:
    """Priority: PMC > Unpaywall PDF > Wiley > Unpaywall landing page."""
    found = [c for c in candidates if c is not None]
    for matches in (
        lambda c: c.source == "pmc",
        lambda c: c.source == "unpaywall" and c.is_pdf,
        lambda c: c.source == "wiley",
        lambda c: c.source == "unpaywall",
    ):
        for candidate in found:
            if matches(candidate):
                return candidate
    return None


class PdfFinder:
    """Find and download the best available full text for an article.

    Parameters:
        http: Shared resilient client.
        wiley_token: Wiley TDM client token; Wiley is skipped without one.
    """

    def __init__(self, http: ResilientHttpClient, wiley_token: str | None = None) -> None:
        self.http = http
        self.unpaywall = UnpaywallSource(http)
        self.pmc = PmcSource(http)
        self.wiley = WileySource(http, tdm_token=wiley_token)

    async def find(self, doi: str | None = None, pmid: str | None = None) -> PdfSource | None:
        lookups = []
        if doi:
            lookups.append(self.unpaywall.get_pdf_source(doi))
            if self.wiley.tdm_token:
                lookups.append(self.wiley.get_pdf_source(doi))
        if pmid:
            lookups.append(self.pmc.get_pdf_source(pmid))
        if not lookups:
            return None

        candidates = await asyncio.gather(*lookups)
        best = pick_best(list(candidates))
        logger.debug("PDF lookup doi=%s pmid=%s -> %s", doi, pmid, best.source if best else None)
        return best

    async def download(self, source: PdfSource) -> tuple[bytes, str] | None:
        """Fetch the document behind ``source``. Returns (content, content_type)."""
        headers = self.wiley.tdm_headers() if source.source == "wiley" else {}
        try:
            response = await self.http.fetch(source.url, api_name=source.source, headers=headers)
        except (LitlinkError, httpx.HTTPError) as e:
            logger.warning("PDF download from %s failed: %s", source.source, e)
            return None

        if not response.is_success:
            logger.warning("PDF download failed: HTTP %d for %s", response.status_code, source.url)
            return None
        return response.content, response.headers.get("content-type", "application/pdf")
