"""Batch DOI enrichment via Crossref."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

import httpx

from ..errors import CircuitBreakerOpenError, LitlinkError
from ..models import EnrichedArticleData
from ..sources.crossref_source import CrossrefSource

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentReport:
    enriched: dict[str, EnrichedArticleData] = field(default_factory=dict)
    not_found: list[str] = field(default_factory=list)
    failed: int = 0
    skipped_breaker_open: int = 0

    @property
    def total(self) -> int:
        return len(self.enriched) + len(self.not_found) + self.failed + self.skipped_breaker_open


class DoiEnricher:
    """Enrich many DOIs with Crossref metadata without letting one failure sink the batch.

    Parameters:
        crossref: Crossref adapter bound to the shared client.
        concurrency: Lookups in flight at once; the Crossref rate limiter
            still decides when each one is sent.
    """

    def __init__(self, crossref: CrossrefSource, concurrency: int = 4) -> None:
        self.crossref = crossref
        self.concurrency = max(1, concurrency)

    async def enrich_many(
        self,
        dois: list[str],
        progress_callback: Callable[[int, int, str], None] | None = None,
    ) -> EnrichmentReport:
        unique = list(dict.fromkeys(d.strip() for d in dois if d and d.strip()))
        report = EnrichmentReport()
        total = len(unique)
        if total == 0:
            return report

        logger.info("Enriching %d DOIs via Crossref...", total)
        semaphore = asyncio.Semaphore(self.concurrency)
        done = 0

        async def _one(doi: str) -> None:
            nonlocal done
            async with semaphore:
                try:
                    work = await self.crossref.fetch_work(doi)
                except CircuitBreakerOpenError:
                    report.skipped_breaker_open += 1
                except (LitlinkError, httpx.HTTPError, ValueError) as e:
                    logger.debug("Crossref enrichment failed for DOI %s: %s", doi, e)
                    report.failed += 1
                else:
                    if work:
                        report.enriched[doi] = self.crossref.extract_enriched_data(work)
                    else:
                        report.not_found.append(doi)
            done += 1
            if progress_callback:
                progress_callback(done, total, f"Enriched {len(report.enriched)}/{done}")

        await asyncio.gather(*(_one(doi) for doi in unique))

        logger.info(
            "DOI enrichment complete: %d enriched, %d not found, %d failed, %d skipped (breaker open)",
            len(report.enriched), len(report.not_found), report.failed, report.skipped_breaker_open,
        )
        return report
