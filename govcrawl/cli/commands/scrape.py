"""Scrape command for extracting one page into a document."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from govcrawl.cache import RedisCacheStore, create_cache_store
from govcrawl.core.config import Settings
from govcrawl.politeness.governor import PolitenessGovernor
from govcrawl.rendering.playwright_renderer import PlaywrightRenderer
from govcrawl.services.fetcher import FetchExecutor
from govcrawl.services.models import ScrapeOptions, ScrapeResult

console = Console()

PREVIEW_CHARS = 2000


def scrape_command(
    url: str = typer.Argument(..., help="URL or path (relative to BASE_URL) to scrape"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Bypass the document cache"),
    retries: int = typer.Option(3, "-r", "--retries", help="Retries after the first attempt"),
    paginate: int = typer.Option(
        1, "--paginate", help="Follow next-page links up to this many pages"
    ),
    output: Path | None = typer.Option(None, "-o", "--output", help="Write document as JSON"),
) -> None:
    """Scrape a page and print or save the extracted document."""
    if retries < 0:
        raise typer.BadParameter("retries must not be negative", param_hint="--retries")

    settings = Settings()
    options = ScrapeOptions(
        use_cache=not no_cache,
        max_retries=retries,
        follow_pagination=paginate > 1,
        max_pages=max(paginate, 1),
    )
    result = asyncio.run(_run_scrape(settings, url, options))

    if not result.success or result.document is None:
        console.print(f"[red]Failed: {result.error}[/red] (retries: {result.retry_count})")
        raise typer.Exit(code=1)

    document = result.document
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(document.model_dump_json(indent=2), encoding="utf-8")
        console.print(f"Wrote document to {output}")
    else:
        preview = document.content[:PREVIEW_CHARS]
        console.print(Panel(preview or "(no content)", title=document.title))

    source = "cache" if result.from_cache else f"{result.retry_count} retries"
    console.print(
        f"Scraped {result.url} ({document.page_count} page(s), "
        f"{result.execution_time_ms} ms, {source})"
    )


async def _run_scrape(settings: Settings, url: str, options: ScrapeOptions) -> ScrapeResult:
    cache = create_cache_store(settings)
    try:
        async with PolitenessGovernor.from_settings(settings) as governor:
            executor = FetchExecutor.from_settings(
                settings,
                renderer_factory=lambda: PlaywrightRenderer(headless=settings.headless),
                cache=cache,
                governor=governor,
            )
            return await executor.scrape_page(url, options)
    finally:
        if isinstance(cache, RedisCacheStore):
            await cache.aclose()
