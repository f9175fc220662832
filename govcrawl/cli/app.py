"""Typer application entry point for the govcrawl CLI."""

import typer

from govcrawl.cli.commands import crawl as crawl_command
from govcrawl.cli.commands import robots as robots_command
from govcrawl.cli.commands import scrape as scrape_command
from govcrawl.core.config import Settings
from govcrawl.core.logger import configure_logging

app = typer.Typer(no_args_is_help=True, name="govcrawl")


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None, "--log-level", help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ...)"
    ),
) -> None:
    """Polite crawler and scraper for the KRDS government portal."""
    settings = Settings()
    try:
        configure_logging(log_level or settings.log_level, settings.log_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc


app.command(name="crawl", help="Map a site breadth-first from a seed URL")(
    crawl_command.crawl_command
)
app.command(name="scrape", help="Scrape one page into a structured document")(
    scrape_command.scrape_command
)
app.command(name="robots", help="Show robots.txt policy for a URL")(
    robots_command.robots_command
)


if __name__ == "__main__":
    app()
