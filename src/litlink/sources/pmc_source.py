"""PubMed Central adapter: PMID -> PMCID -> PDF URL."""

from __future__ import annotations

import logging

import httpx

from ..errors import LitlinkError
from ..models import PdfSource
from .base import BaseSource

logger = logging.getLogger(__name__)

IDCONV_URL = "https://www.ncbi.nlm.nih.gov/pmc/utils/idconv/v1.0/"
PMC_ARTICLE_URL = "https://www.ncbi.nlm.nih.gov/pmc/articles/{pmcid}/pdf/"


class PmcSource(BaseSource):

    @property
    def name(self) -> str:
        return "pmc"

    async def get_pmcid(self, pmid: str) -> str | None:
        data = await self.http.fetch_json(
            IDCONV_URL, api_name=self.api_name, params={"ids": pmid, "format": "json"}
        )
        records = data.get("records") or []
        return records[0].get("pmcid") if records else None

    async def get_pdf_source(self, pmid: str) -> PdfSource | None:
        try:
            pmcid = await self.get_pmcid(pmid)
        except (LitlinkError, httpx.HTTPError, ValueError) as e:
            self.logger.warning("PMC id conversion failed for pmid=%s: %s", pmid, e)
            return None
        if not pmcid:
            return None
        return PdfSource(source="pmc", url=PMC_ARTICLE_URL.format(pmcid=pmcid), is_pdf=True)
