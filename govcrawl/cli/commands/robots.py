"""Robots command for inspecting a site's crawl policy."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from govcrawl.core.config import Settings
from govcrawl.core.urls import validate_url
from govcrawl.politeness.governor import PolitenessGovernor

console = Console()


def robots_command(
    url: str = typer.Argument(..., help="URL to check"),
    user_agent: str | None = typer.Option(
        None, "-u", "--user-agent", help="Agent to evaluate (defaults to USER_AGENT)"
    ),
) -> None:
    """Show whether url may be crawled, its crawl delay and declared sitemaps."""
    if not validate_url(url):
        console.print(f"[red]Invalid URL: {url}[/red]")
        raise typer.Exit(code=1)

    settings = Settings()
    agent = user_agent or settings.user_agent
    allowed, crawl_delay, sitemaps = asyncio.run(_check(settings, url, agent))

    table = Table(title=f"robots.txt for {url}", show_header=False)
    table.add_row("User agent", agent)
    table.add_row("Allowed", "[green]yes[/green]" if allowed else "[red]no[/red]")
    table.add_row("Crawl delay", f"{crawl_delay:g}s")
    table.add_row("Sitemaps", "\n".join(sitemaps) if sitemaps else "-")
    console.print(table)


async def _check(settings: Settings, url: str, agent: str) -> tuple[bool, float, list[str]]:
    async with PolitenessGovernor.from_settings(settings, user_agent=agent) as governor:
        allowed = await governor.is_url_allowed(url)
        crawl_delay = await governor.get_crawl_delay(url)
        sitemaps = await governor.get_sitemaps(url)
    return allowed, crawl_delay, sitemaps
