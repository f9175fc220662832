"""Shared pytest fixtures for unit tests."""

import httpx
import pytest

from govcrawl.politeness.governor import PolitenessGovernor
from tests.fakes import FakeClock


@pytest.fixture
def fake_clock() -> FakeClock:
    """Clock starting at a non-zero time, advanced manually or by its sleep."""
    return FakeClock(start=1000.0)


@pytest.fixture
def robots_requests() -> list[str]:
    """URLs requested through the fast_governor's robots.txt client."""
    return []


@pytest.fixture
async def fast_governor(robots_requests: list[str]):
    """Governor with no effective spacing, for crawler and fetcher tests.

    robots.txt requests never leave the process: every origin answers 404.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        robots_requests.append(str(request.url))
        return httpx.Response(404)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    governor = PolitenessGovernor(
        requests_per_second=1000.0,
        burst_limit=1000,
        cooldown_seconds=0.0,
        default_crawl_delay=0.0,
        http_client=client,
    )
    yield governor
    await governor.aclose()
    await client.aclose()


@pytest.fixture(autouse=True)
def isolated_settings_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep Settings away from a developer's .env and log into tmp_path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "govcrawl.log"))
