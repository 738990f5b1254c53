"""Unpaywall OA location API adapter for litlink."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..errors import LitlinkError, NonRetryableHttpError
from ..models import PdfSource
from .base import BaseSource

logger = logging.getLogger(__name__)


class UnpaywallSource(BaseSource):
    """Adapter for the Unpaywall REST API.

    Unpaywall is DOI-based only -- it does not support free-text search.
    """

    BASE_URL = "https://api.unpaywall.org/v2"

    @property
    def name(self) -> str:
        return "unpaywall"

    async def fetch_record(self, doi: str) -> dict[str, Any] | None:
        """Raw Unpaywall record for ``doi``; ``None`` when the DOI is unknown."""
        url = f"{self.BASE_URL}/{quote(doi.strip(), safe='')}"
        try:
            return await self.http.fetch_json(
                url, api_name=self.api_name, params={"email": self.settings.unpaywall_email}
            )
        except NonRetryableHttpError as e:
            if e.status_code == 404:
                self.logger.info("DOI not found in Unpaywall: %s", doi)
                return None
            raise

    async def get_pdf_source(self, doi: str) -> PdfSource | None:
        """Best open-access location for ``doi``.

        Prefers a direct PDF link; falls back to the landing page of the
        best OA location, flagged ``is_pdf=False``.
        """
        try:
            data = await self.fetch_record(doi)
        except (LitlinkError, httpx.HTTPError) as e:
            self.logger.warning("Unpaywall lookup failed for doi=%r: %s", doi, e)
            return None
        except ValueError:
            self.logger.exception("Unpaywall returned invalid JSON for doi=%r", doi)
            return None

        best_oa = (data or {}).get("best_oa_location") or {}
        if best_oa.get("url_for_pdf"):
            return PdfSource(source="unpaywall", url=best_oa["url_for_pdf"], is_pdf=True)
        if best_oa.get("url"):
            return PdfSource(source="unpaywall", url=best_oa["url"], is_pdf=False)
        return None
