"""Tests for the fetch executor."""

import httpx
import pytest
import respx

from govcrawl.cache import MemoryCacheStore
from govcrawl.core.config import Settings
from govcrawl.core.errors import ExtractionError, NavigationTimeoutError
from govcrawl.politeness.governor import PolitenessGovernor
from govcrawl.resilience.retry import RetryPolicy
from govcrawl.services.fetcher import FETCHER_BLOCKED_RESOURCES, FetchExecutor
from govcrawl.services.models import ScrapeOptions, WaitStrategy
from tests.fakes import FakeClock, FakeRenderer, html_page

BASE = "https://x.kr"
PAGE = "https://x.kr/guide"

ARTICLE = html_page(
    "Guide",
    body=(
        "<h1>서비스 가이드</h1>"
        "<div class='content'><p>디지털 정부 서비스 가이드</p>"
        "<img src='/a.png'><a href='/f/manual.pdf'>manual.pdf</a></div>"
    ),
)


def _timeout() -> NavigationTimeoutError:
    return NavigationTimeoutError("TimeoutError: Navigation timeout of 30000 ms exceeded")


class RendererFactory:
    """Hands out one prepared renderer per attempt, repeating the last one."""

    def __init__(self, *renderers: FakeRenderer) -> None:
        self.renderers = list(renderers)
        self.created: list[FakeRenderer] = []

    def __call__(self) -> FakeRenderer:
        index = min(len(self.created), len(self.renderers) - 1)
        renderer = self.renderers[index]
        self.created.append(renderer)
        return renderer


def _executor(factory: RendererFactory, clock: FakeClock, **kwargs) -> FetchExecutor:
    return FetchExecutor(factory, base_url=BASE, sleep=clock.sleep, **kwargs)


class TestScrapePage:
    @pytest.mark.asyncio
    async def test_successful_scrape(self, fake_clock: FakeClock) -> None:
        renderer = FakeRenderer({PAGE: ARTICLE})
        executor = _executor(RendererFactory(renderer), fake_clock)

        result = await executor.scrape_page("/guide")

        assert result.success is True
        assert result.url == PAGE
        assert result.retry_count == 0
        assert result.from_cache is False
        assert result.document is not None
        assert result.document.title == "서비스 가이드"
        assert len(result.document.images) == 1
        assert len(result.document.attachments) == 1
        assert renderer.closed is True

    @pytest.mark.asyncio
    async def test_renderer_configuration(self, fake_clock: FakeClock) -> None:
        renderer = FakeRenderer({PAGE: ARTICLE})
        executor = _executor(RendererFactory(renderer), fake_clock)

        options = ScrapeOptions(wait_strategy=WaitStrategy.LOAD, timeout=5)
        await executor.scrape_page(PAGE, options)

        assert renderer.init_args["blocked_resource_types"] == FETCHER_BLOCKED_RESOURCES
        assert renderer.goto_args == [{"url": PAGE, "wait_until": "load", "timeout": 5}]

    @pytest.mark.asyncio
    async def test_transient_failures_exhaust_retries(self, fake_clock: FakeClock) -> None:
        factory = RendererFactory(FakeRenderer({PAGE: ARTICLE}, failures={PAGE: _timeout()}))
        executor = _executor(factory, fake_clock)

        result = await executor.scrape_page(PAGE, ScrapeOptions(max_retries=3))

        assert result.success is False
        assert result.retry_count == 3
        assert len(factory.created) == 4
        assert "Navigation timeout" in result.error
        assert fake_clock.sleeps == [1.0, 2.0, 4.0]
        assert executor.get_stats().total_retries == 3

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, fake_clock: FakeClock) -> None:
        factory = RendererFactory(
            FakeRenderer({PAGE: ARTICLE}, failures={PAGE: _timeout()}),
            FakeRenderer({PAGE: ARTICLE}),
        )
        executor = _executor(factory, fake_clock)

        result = await executor.scrape_page(PAGE)

        assert result.success is True
        assert result.retry_count == 1
        assert fake_clock.sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, fake_clock: FakeClock) -> None:
        factory = RendererFactory(FakeRenderer({}))
        executor = _executor(factory, fake_clock)

        result = await executor.scrape_page("https://x.kr/missing", ScrapeOptions(max_retries=3))

        assert result.success is False
        assert result.error == "HTTP 404"
        assert result.retry_count == 0
        assert len(factory.created) == 1
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self, fake_clock: FakeClock) -> None:
        factory = RendererFactory(FakeRenderer({PAGE: ARTICLE}, statuses={PAGE: 503}))
        executor = _executor(factory, fake_clock)

        result = await executor.scrape_page(PAGE, ScrapeOptions(max_retries=1))

        assert result.success is False
        assert result.retry_count == 1
        assert len(factory.created) == 2

    @pytest.mark.asyncio
    async def test_retry_disabled(self, fake_clock: FakeClock) -> None:
        factory = RendererFactory(FakeRenderer({PAGE: ARTICLE}, failures={PAGE: _timeout()}))
        executor = _executor(factory, fake_clock)

        result = await executor.scrape_page(PAGE, ScrapeOptions(retry_on_failure=False))

        assert result.success is False
        assert len(factory.created) == 1

    @pytest.mark.asyncio
    async def test_extraction_errors_are_not_retried(self, fake_clock: FakeClock) -> None:
        failing = FakeRenderer({PAGE: ARTICLE}, failures={PAGE: ExtractionError("no body")})
        factory = RendererFactory(failing)
        executor = _executor(factory, fake_clock)

        result = await executor.scrape_page(PAGE)

        assert result.success is False
        assert result.error == "no body"
        assert len(factory.created) == 1

    @pytest.mark.asyncio
    async def test_invalid_url(self, fake_clock: FakeClock) -> None:
        factory = RendererFactory(FakeRenderer({}))
        executor = _executor(factory, fake_clock)

        result = await executor.scrape_page("ftp://x.kr/file")

        assert result.success is False
        assert result.error == "Invalid URL"
        assert factory.created == []

    @pytest.mark.asyncio
    async def test_custom_retry_policy(self, fake_clock: FakeClock) -> None:
        factory = RendererFactory(FakeRenderer({PAGE: ARTICLE}, failures={PAGE: _timeout()}))
        policy = RetryPolicy(base_delay=0.5, backoff_multiplier=3.0, max_delay=1.0)
        executor = _executor(factory, fake_clock, retry_policy=policy)

        await executor.scrape_page(PAGE, ScrapeOptions(max_retries=3))

        assert fake_clock.sleeps == [0.5, 1.0, 1.0]


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, fake_clock: FakeClock) -> None:
        factory = RendererFactory(FakeRenderer({PAGE: ARTICLE}))
        executor = _executor(factory, fake_clock, cache=MemoryCacheStore())

        first = await executor.scrape_page(PAGE)
        second = await executor.scrape_page(PAGE)

        assert first.from_cache is False
        assert second.from_cache is True
        assert second.document.model_dump() == first.document.model_dump()
        assert len(factory.created) == 1

        stats = executor.get_stats()
        assert (stats.total_requests, stats.successful, stats.cache_hits) == (2, 2, 1)

    @pytest.mark.asyncio
    async def test_options_change_cache_key(self, fake_clock: FakeClock) -> None:
        factory = RendererFactory(FakeRenderer({PAGE: ARTICLE}))
        executor = _executor(factory, fake_clock, cache=MemoryCacheStore())

        await executor.scrape_page(PAGE)
        result = await executor.scrape_page(PAGE, ScrapeOptions(include_images=False))

        assert result.from_cache is False
        assert result.document.images == []
        assert len(factory.created) == 2

    @pytest.mark.asyncio
    async def test_use_cache_false_bypasses_store(self, fake_clock: FakeClock) -> None:
        cache = MemoryCacheStore()
        factory = RendererFactory(FakeRenderer({PAGE: ARTICLE}))
        executor = _executor(factory, fake_clock, cache=cache)

        await executor.scrape_page(PAGE, ScrapeOptions(use_cache=False))
        await executor.scrape_page(PAGE, ScrapeOptions(use_cache=False))

        assert len(factory.created) == 2
        assert cache.stats().size == 0

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, fake_clock: FakeClock) -> None:
        cache = MemoryCacheStore()
        factory = RendererFactory(FakeRenderer({}))
        executor = _executor(factory, fake_clock, cache=cache)

        await executor.scrape_page(PAGE)

        assert cache.stats().size == 0

    @pytest.mark.asyncio
    async def test_invalid_cached_value_is_ignored(self, fake_clock: FakeClock) -> None:
        cache = MemoryCacheStore()
        factory = RendererFactory(FakeRenderer({PAGE: ARTICLE}))
        executor = _executor(factory, fake_clock, cache=cache)

        await executor.scrape_page(PAGE)
        for key in list(cache._entries):
            await cache.set(key, {"unexpected": True})
        result = await executor.scrape_page(PAGE)

        assert result.success is True
        assert result.from_cache is False


LIST_URL = "https://x.kr/notice?page=1"


def _list_page(number: int) -> str:
    return html_page(
        f"Notices {number}",
        body=(
            f"<div class='content'><p>공지 {number}</p>"
            f"<table><tr><td>row {number}</td></tr></table></div>"
            f"<div class='pagination'><a href='?page={number + 1}'>다음</a></div>"
        ),
    )


LIST_PAGES = {f"https://x.kr/notice?page={n}": _list_page(n) for n in range(1, 4)}


class TestPagination:
    @pytest.mark.asyncio
    async def test_follows_next_links_up_to_max_pages(self, fake_clock: FakeClock) -> None:
        renderer = FakeRenderer(LIST_PAGES)
        executor = _executor(RendererFactory(renderer), fake_clock)

        result = await executor.scrape_page(
            LIST_URL, ScrapeOptions(follow_pagination=True, max_pages=2)
        )

        document = result.document
        assert document.page_count == 2
        assert document.content == "공지 1 row 1\n\n공지 2 row 2"
        assert document.tables == [[["row 1"]], [["row 2"]]]
        assert renderer.visited == [LIST_URL, "https://x.kr/notice?page=2"]

    @pytest.mark.asyncio
    async def test_stops_when_next_page_fails(self, fake_clock: FakeClock) -> None:
        renderer = FakeRenderer(LIST_PAGES)
        executor = _executor(RendererFactory(renderer), fake_clock)

        result = await executor.scrape_page(
            LIST_URL, ScrapeOptions(follow_pagination=True, max_pages=10)
        )

        # page=4 is not served
        assert result.success is True
        assert result.document.page_count == 3
        assert renderer.visited[-1] == "https://x.kr/notice?page=4"

    @pytest.mark.asyncio
    async def test_pagination_disabled(self, fake_clock: FakeClock) -> None:
        renderer = FakeRenderer(LIST_PAGES)
        executor = _executor(RendererFactory(renderer), fake_clock)

        result = await executor.scrape_page(LIST_URL, ScrapeOptions(max_pages=5))

        assert result.document.page_count == 1
        assert renderer.visited == [LIST_URL]

    @respx.mock
    @pytest.mark.asyncio
    async def test_robots_disallow_stops_pagination(self, fake_clock: FakeClock) -> None:
        respx.get("https://x.kr/robots.txt").mock(
            return_value=httpx.Response(200, text="User-agent: *\nDisallow: /notice?page=3\n")
        )
        renderer = FakeRenderer(LIST_PAGES)
        async with PolitenessGovernor(
            requests_per_second=1000, burst_limit=1000, default_crawl_delay=0
        ) as governor:
            executor = _executor(RendererFactory(renderer), fake_clock, governor=governor)
            result = await executor.scrape_page(
                LIST_URL, ScrapeOptions(follow_pagination=True, max_pages=3)
            )

        assert result.document.page_count == 2
        assert "https://x.kr/notice?page=3" not in renderer.visited


class TestScrapePages:
    @respx.mock
    @pytest.mark.asyncio
    async def test_sequential_scrape_records_requests(self, fake_clock: FakeClock) -> None:
        respx.get("https://x.kr/robots.txt").mock(return_value=httpx.Response(404))
        pages = {PAGE: ARTICLE, "https://x.kr/about": html_page("About")}
        factory = RendererFactory(FakeRenderer(pages))
        async with PolitenessGovernor(
            requests_per_second=1000, burst_limit=1000, default_crawl_delay=0
        ) as governor:
            executor = _executor(factory, fake_clock, governor=governor)
            results = await executor.scrape_pages(["/guide", "/about", "/missing"])
            stats = await governor.get_stats()

        assert [result.url for result in results] == [
            PAGE,
            "https://x.kr/about",
            "https://x.kr/missing",
        ]
        assert [result.success for result in results] == [True, True, False]
        assert stats.total_requests == 2

    @pytest.mark.asyncio
    async def test_without_governor(self, fake_clock: FakeClock) -> None:
        factory = RendererFactory(FakeRenderer({PAGE: ARTICLE}))
        executor = _executor(factory, fake_clock)

        results = await executor.scrape_pages([PAGE])

        assert results[0].success is True


def test_from_settings() -> None:
    settings = Settings(base_url="https://example.go.kr", retry_base_delay=2.0, page_cache_ttl=60)
    executor = FetchExecutor.from_settings(settings, RendererFactory(FakeRenderer({})))

    assert executor.base_url == "https://example.go.kr"
    assert executor._retry_policy.get_delay(1) == 2.0
    assert executor._cache_ttl == 60
