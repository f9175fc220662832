"""Tests for the scrape command."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from govcrawl.cli.app import app
from govcrawl.cli.commands import scrape as scrape_module
from tests.fakes import FakeRenderer, html_page

runner = CliRunner()

GUIDE_URL = "https://x.kr/guide"
SITE = {
    GUIDE_URL: html_page("Guide", body="<div class='content'><p>디자인 가이드 본문</p></div>"),
}


@pytest.fixture
def fake_renderers(monkeypatch: pytest.MonkeyPatch) -> list[FakeRenderer]:
    """Replace PlaywrightRenderer in the scrape command."""
    created: list[FakeRenderer] = []

    def factory(headless: bool = True) -> FakeRenderer:
        renderer = FakeRenderer(SITE)
        created.append(renderer)
        return renderer

    monkeypatch.setattr(scrape_module, "PlaywrightRenderer", factory)
    return created


def test_scrape_help() -> None:
    result = runner.invoke(app, ["scrape", "--help"])
    assert result.exit_code == 0
    assert "scrape" in result.output


def test_scrape_prints_preview(fake_renderers: list[FakeRenderer]) -> None:
    result = runner.invoke(app, ["scrape", GUIDE_URL])

    assert result.exit_code == 0, result.output
    assert "디자인 가이드 본문" in result.output
    assert f"Scraped {GUIDE_URL}" in result.output


def test_scrape_writes_json(fake_renderers: list[FakeRenderer], tmp_path: Path) -> None:
    output = tmp_path / "doc.json"

    result = runner.invoke(app, ["scrape", GUIDE_URL, "-o", str(output)])

    assert result.exit_code == 0, result.output
    document = json.loads(output.read_text(encoding="utf-8"))
    assert document["url"] == GUIDE_URL
    assert document["page_count"] == 1


def test_scrape_failure_exits_nonzero(fake_renderers: list[FakeRenderer]) -> None:
    result = runner.invoke(app, ["scrape", "https://x.kr/missing", "--retries", "0"])

    assert result.exit_code == 1
    assert "HTTP 404" in result.output


def test_negative_retries_rejected() -> None:
    result = runner.invoke(app, ["scrape", GUIDE_URL, "--retries", "-1"])
    assert result.exit_code != 0
