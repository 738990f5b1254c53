"""Typer CLI entry point for litlink."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import get_settings
from .http_client import ResilientHttpClient
from .logging_setup import setup_logging

app = typer.Typer(
    name="litlink",
    help="litlink: resilient lookups against Crossref, PubMed, Unpaywall, DOAJ and Wiley",
    rich_markup_mode="rich",
)

console = Console()

SEARCH_SOURCES = ("crossref", "pubmed", "doaj", "wiley")


def _setup_logging(verbose: bool = False) -> None:
    settings = get_settings()
    settings.ensure_dirs()
    setup_logging("DEBUG" if verbose else settings.log_level, settings.logs_dir / "litlink.log")


def _print_http_stats(http: ResilientHttpClient) -> None:
    stats = http.stats()
    table = Table(title="HTTP Client State")
    table.add_column("API", style="cyan")
    table.add_column("Tokens", style="green")
    table.add_column("Breaker", style="magenta")
    table.add_column("Failures", style="red")

    names = sorted(set(stats["rate_limiters"]) | set(stats["circuit_breakers"]))
    for name in names:
        breaker = stats["circuit_breakers"].get(name, {})
        tokens = stats["rate_limiters"].get(name)
        table.add_row(
            name,
            "-" if tokens is None else str(tokens),
            breaker.get("state", "-"),
            str(breaker.get("failures", "-")),
        )
    console.print(table)


def _run(work: Callable[[ResilientHttpClient], Awaitable[Any]], show_stats: bool) -> Any:
    async def _main() -> Any:
        async with ResilientHttpClient() as http:
            try:
                return await work(http)
            finally:
                if show_stats:
                    _print_http_stats(http)

    return asyncio.run(_main())


@app.command()
def lookup(
    doi: str = typer.Argument(..., help="DOI to look up on Crossref"),
    use_cache: bool = typer.Option(True, "--cache/--no-cache", help="Use the on-disk metadata cache"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    show_stats: bool = typer.Option(False, "--stats", help="Print rate limiter and breaker state"),
):
    """Show Crossref enrichment data for a DOI."""
    _setup_logging(verbose)
    from .cache import MetadataCache
    from .sources.crossref_source import CrossrefSource

    async def _work(http: ResilientHttpClient):
        cache = MetadataCache(http.settings.cache_dir) if use_cache else None
        try:
            return await CrossrefSource(http, cache=cache).enrich_by_doi(doi)
        finally:
            if cache is not None:
                cache.close()

    data = _run(_work, show_stats)
    if data is None:
        console.print(f"[yellow]No Crossref data for {doi}[/yellow]")
        raise typer.Exit(code=1)

    table = Table(title=f"Crossref: {doi}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for field_name, value in data.model_dump(exclude={"references"}).items():
        if value not in (None, []):
            table.add_row(field_name, ", ".join(value) if isinstance(value, list) else str(value))
    table.add_row("references", str(len(data.references)))
    console.print(table)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    source: str = typer.Option("crossref", "--source", "-s", help="crossref, pubmed, doaj or wiley"),
    max_results: int = typer.Option(20, "--max", "-m", help="Maximum results"),
    year_start: Optional[int] = typer.Option(None, "--from", help="Earliest publication year"),
    year_end: Optional[int] = typer.Option(None, "--to", help="Latest publication year"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    show_stats: bool = typer.Option(False, "--stats"),
):
    """Search one source and list the results."""
    if source not in SEARCH_SOURCES:
        console.print(f"[red]Unknown source: {source}. Use one of {', '.join(SEARCH_SOURCES)}.[/red]")
        raise typer.Exit(code=2)
    _setup_logging(verbose)

    async def _work(http: ResilientHttpClient):
        if source == "pubmed":
            from .sources.pubmed_source import PubMedSource
            adapter = PubMedSource(http)
        elif source == "doaj":
            from .sources.doaj_source import DoajSource
            adapter = DoajSource(http)
        elif source == "wiley":
            from .sources.wiley_source import WileySource
            adapter = WileySource(http)
        else:
            from .sources.crossref_source import CrossrefSource
            adapter = CrossrefSource(http)
        return await adapter.search(query, max_results=max_results,
                                    year_start=year_start, year_end=year_end)

    result = _run(_work, show_stats)

    table = Table(title=f"{source}: {result.total_results:,} total for '{query}'")
    table.add_column("Year", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("DOI")
    for paper in result.papers:
        table.add_row(str(paper.year or ""), paper.title[:100], paper.doi or "")
    console.print(table)


@app.command(name="find-pdf")
def find_pdf(
    doi: Optional[str] = typer.Option(None, "--doi", help="Article DOI"),
    pmid: Optional[str] = typer.Option(None, "--pmid", help="PubMed id"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    show_stats: bool = typer.Option(False, "--stats"),
):
    """Find the best full-text location for an article."""
    if not doi and not pmid:
        console.print("[red]Give --doi and/or --pmid.[/red]")
        raise typer.Exit(code=2)
    _setup_logging(verbose)
    from .collectors.pdf_finder import PdfFinder

    source = _run(lambda http: PdfFinder(http).find(doi=doi, pmid=pmid), show_stats)
    if source is None:
        console.print("[yellow]No full text found.[/yellow]")
        raise typer.Exit(code=1)
    kind = "PDF" if source.is_pdf else "landing page"
    console.print(f"[green]{source.source}[/green] ({kind}): {source.url}")


@app.command()
def enrich(
    dois: list[str] = typer.Argument(..., help="DOIs to enrich"),
    concurrency: int = typer.Option(4, "--concurrency", "-c", help="Concurrent lookups"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    show_stats: bool = typer.Option(False, "--stats"),
):
    """Enrich a batch of DOIs with Crossref metadata."""
    _setup_logging(verbose)
    from .enrichment.doi_enricher import DoiEnricher
    from .sources.crossref_source import CrossrefSource

    report = _run(
        lambda http: DoiEnricher(CrossrefSource(http), concurrency=concurrency).enrich_many(dois),
        show_stats,
    )

    table = Table(title="DOI Enrichment")
    table.add_column("Outcome", style="cyan")
    table.add_column("Count", style="green")
    table.add_row("Enriched", str(len(report.enriched)))
    table.add_row("Not found", str(len(report.not_found)))
    table.add_row("Failed", str(report.failed))
    table.add_row("Skipped (breaker open)", str(report.skipped_breaker_open))
    console.print(table)


@app.command()
def cache(
    clear: bool = typer.Option(False, "--clear", help="Delete cached entries"),
    api: Optional[str] = typer.Option(None, "--api", help="Only clear this API's entries"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Show or clear the on-disk metadata cache."""
    _setup_logging(verbose)
    from .cache import MetadataCache

    with MetadataCache(get_settings().cache_dir) as store:
        if clear:
            removed = store.clear(api)
            console.print(f"[green]Removed {removed:,} cached entries.[/green]")
        s = store.stats()

    table = Table(title="Metadata Cache")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Entries", f"{s['size']:,}")
    table.add_row("Hits", f"{s['hits']:,}")
    table.add_row("Misses", f"{s['misses']:,}")
    table.add_row("Disk usage (bytes)", f"{s['volume']:,}")
    table.add_row("Directory", s["directory"])
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
