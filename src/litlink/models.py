"""Pydantic models shared by the integration adapters."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class Paper(BaseModel):
    """Unified article record from any API source."""
    title: str
    abstract: str | None = None
    year: int | None = None
    doi: str | None = None
    pmid: str | None = None
    url: str | None = None
    pdf_url: str | None = None
    authors: list[str] = Field(default_factory=list)
    venue: str | None = None
    source_api: str = ""
    citation_count: int | None = None
    raw_metadata: dict[str, Any] = Field(default_factory=dict)


class ArticleReference(BaseModel):
    doi: str | None = None
    title: str | None = None
    author: str | None = None
    year: str | None = None
    journal: str | None = None


class EnrichedArticleData(BaseModel):
    """Bibliographic extras pulled from a Crossref work."""
    publisher: str | None = None
    volume: str | None = None
    issue: str | None = None
    pages: str | None = None
    issn: str | None = None
    cited_by_count: int | None = None
    references_count: int | None = None
    license: str | None = None
    full_text_url: str | None = None
    pdf_url: str | None = None
    subjects: list[str] = Field(default_factory=list)
    references: list[ArticleReference] = Field(default_factory=list)


class PdfSource(BaseModel):
    """Where a full text can be fetched from."""
    source: Literal["unpaywall", "pmc", "wiley"]
    url: str
    is_pdf: bool = True
