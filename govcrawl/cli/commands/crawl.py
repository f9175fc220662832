"""Crawl command for breadth-first site mapping.

This module provides a CLI command that maps a site from a seed URL with the
FrontierCrawler, honoring robots.txt and the politeness governor, and prints
the navigation nodes or writes them to a JSON file.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from govcrawl.core.config import Settings
from govcrawl.core.urls import validate_url
from govcrawl.politeness.governor import PolitenessGovernor
from govcrawl.rendering.playwright_renderer import PlaywrightRenderer
from govcrawl.services.crawler import FrontierCrawler
from govcrawl.services.models import CrawlOptions, CrawlStats, CrawlStatus, NavigationNode

console = Console()


def crawl_command(
    url: str | None = typer.Argument(None, help="Seed URL (defaults to BASE_URL)"),
    depth: int = typer.Option(3, "-d", "--depth", help="Max crawl depth"),
    max_pages: int = typer.Option(100, "-n", "--max-pages", help="Max pages to crawl"),
    external: bool = typer.Option(False, "--external", help="Follow external links"),
    ignore_robots: bool = typer.Option(
        False, "--ignore-robots", help="Do not consult robots.txt"
    ),
    delay: float = typer.Option(1.0, "--delay", help="Extra delay between pages (seconds)"),
    output: Path | None = typer.Option(None, "-o", "--output", help="Write nodes as JSON"),
) -> None:
    """Map a site breadth-first and report the discovered pages.

    Args:
        url: Seed URL; the crawl stays on its site unless --external is set.
        depth: Deepest level whose links are followed (0 = seed only).
        max_pages: Stop after this many successfully crawled pages.
        external: Follow links to other sites.
        ignore_robots: Skip robots.txt checks.
        delay: Pause between pages in seconds.
        output: Optional JSON output file.
    """
    settings = Settings()
    seed = url or settings.base_url
    if not validate_url(seed):
        console.print(f"[red]Invalid URL: {seed}[/red]")
        raise typer.Exit(code=1)

    options = CrawlOptions(
        max_depth=depth,
        max_pages=max_pages,
        follow_external_links=external,
        respect_robots_txt=not ignore_robots,
        crawl_delay=delay,
    )
    nodes, stats = asyncio.run(_run_crawl(settings, seed, options))

    if output is None:
        _print_nodes(nodes)
    else:
        payload = [node.to_dict() for node in nodes]
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        console.print(f"Wrote {len(nodes)} nodes to {output}")

    console.print(
        f"Crawl complete: {stats.pages_crawled} crawled, {stats.pages_failed} failed, "
        f"{stats.pages_skipped} skipped"
    )
    if stats.pages_crawled == 0:
        raise typer.Exit(code=1)


async def _run_crawl(
    settings: Settings, seed: str, options: CrawlOptions
) -> tuple[list[NavigationNode], CrawlStats]:
    async with PolitenessGovernor.from_settings(settings) as governor:
        crawler = FrontierCrawler.from_settings(
            settings,
            renderer=PlaywrightRenderer(headless=settings.headless),
            governor=governor,
            base_url=seed,
        )
        await crawler.initialize()

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as progress:
            task = progress.add_task("Crawling...", total=None)
            async for node in crawler.iter_crawl(options):
                progress.update(
                    task,
                    description=f"[cyan]Level {node.level}[/cyan] | "
                    f"[green]{len(crawler.get_nodes())} visited[/green] | "
                    f"{node.url[:60]}",
                )

        return crawler.get_nodes(), crawler.get_stats()


def _print_nodes(nodes: list[NavigationNode]) -> None:
    table = Table(title="Navigation map")
    table.add_column("Level", justify="right")
    table.add_column("Status")
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("URL")
    for node in nodes:
        status = node.crawl_status.value
        if node.crawl_status == CrawlStatus.FAILED:
            status = f"[red]{status}[/red]"
        table.add_row(str(node.level), status, node.page_type.value, node.title, node.url)
    console.print(table)
