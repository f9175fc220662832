"""Fetch executor for single-page document retrieval.

This module provides the FetchExecutor, which renders one page, extracts a
ScrapedDocument and caches it. Transient failures are retried with
exponential backoff; every outcome, including failure, is returned as a
ScrapeResult rather than raised.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pydantic import ValidationError

from govcrawl.core.config import (
    DEFAULT_ACCEPT_LANGUAGE,
    DEFAULT_BASE_URL,
    DEFAULT_BROWSER_USER_AGENT,
    Settings,
)
from govcrawl.core.errors import FetchError, HttpError, RendererNotInitializedError
from govcrawl.core.interfaces import CacheStore, PageRenderer
from govcrawl.core.urls import generate_cache_key, normalize_url, validate_url
from govcrawl.politeness.governor import PolitenessGovernor
from govcrawl.rendering.analyzer import MAX_KEYWORDS, PageAnalyzer
from govcrawl.rendering.language import LanguageDetector
from govcrawl.resilience.retry import RetryPolicy
from govcrawl.services.models import ScrapedDocument, ScrapeOptions, ScrapeResult

logger = logging.getLogger(__name__)

FETCHER_IDENTIFIER = "scraper"
FETCHER_BLOCKED_RESOURCES = ("font", "media")
PAGE_CACHE_PREFIX = "page"


@dataclass(frozen=True)
class FetchStats:
    """Counters across all scrape_page calls of one executor."""

    total_requests: int
    successful: int
    failed: int
    cache_hits: int
    total_retries: int


class FetchExecutor:
    """Render-and-extract executor with caching and retries.

    Each attempt opens a fresh renderer from ``renderer_factory`` and closes it
    afterwards, so a failed attempt never leaks browser state into the next.

    Example:
        >>> executor = FetchExecutor(lambda: PlaywrightRenderer(), cache=MemoryCacheStore())
        >>> result = await executor.scrape_page("/guide/intro")
        >>> print(result.success, result.retry_count)
    """

    def __init__(
        self,
        renderer_factory: Callable[[], PageRenderer],
        cache: CacheStore | None = None,
        governor: PolitenessGovernor | None = None,
        retry_policy: RetryPolicy | None = None,
        base_url: str = DEFAULT_BASE_URL,
        browser_user_agent: str = DEFAULT_BROWSER_USER_AGENT,
        accept_language: str = DEFAULT_ACCEPT_LANGUAGE,
        cache_ttl: float = 1800.0,
        identifier: str = FETCHER_IDENTIFIER,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        """Initialize the fetch executor.

        Args:
            renderer_factory: Returns a new, uninitialized renderer per attempt
            cache: Cache store for scraped documents (None disables caching)
            governor: Politeness governor for scrape_pages and pagination
            retry_policy: Backoff and classification policy
            base_url: Base for resolving relative URLs
            browser_user_agent: User-Agent the renderer presents
            accept_language: Accept-Language header the renderer sends
            cache_ttl: Seconds a scraped document stays cached
            identifier: Rate-limit identifier used with the governor
            sleep: Awaitable sleep used between retries
            clock: Timer for execution_time_ms
        """
        self.base_url = base_url
        self._renderer_factory = renderer_factory
        self._cache = cache
        self._governor = governor
        self._retry_policy = retry_policy or RetryPolicy()
        self._browser_user_agent = browser_user_agent
        self._accept_language = accept_language
        self._cache_ttl = cache_ttl
        self._identifier = identifier
        self._sleep = sleep
        self._clock = clock
        self._language_detector = LanguageDetector()

        self._total_requests = 0
        self._successful = 0
        self._failed = 0
        self._cache_hits = 0
        self._total_retries = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        renderer_factory: Callable[[], PageRenderer],
        cache: CacheStore | None = None,
        governor: PolitenessGovernor | None = None,
    ) -> FetchExecutor:
        return cls(
            renderer_factory=renderer_factory,
            cache=cache,
            governor=governor,
            retry_policy=RetryPolicy.from_settings(settings),
            base_url=settings.base_url,
            browser_user_agent=settings.browser_user_agent,
            accept_language=settings.accept_language,
            cache_ttl=settings.page_cache_ttl,
        )

    async def scrape_page(
        self, url: str, options: ScrapeOptions | None = None
    ) -> ScrapeResult:
        """Scrape one page into a ScrapedDocument.

        Args:
            url: Absolute URL, or a path relative to base_url
            options: Scrape options (defaults to ScrapeOptions())

        Returns:
            ScrapeResult; failures are reported with success=False and the
            number of retries spent, never raised
        """
        started = self._clock()
        options = options or ScrapeOptions()
        target = normalize_url(url, self.base_url)
        self._total_requests += 1

        if not validate_url(target):
            self._failed += 1
            return ScrapeResult(url=target, success=False, error="Invalid URL")

        cache_key = generate_cache_key(PAGE_CACHE_PREFIX, target, options.cache_fields())
        if options.use_cache and self._cache is not None:
            cached = await self._cached_document(cache_key)
            if cached is not None:
                self._cache_hits += 1
                self._successful += 1
                logger.debug("Returning cached document", extra={"url": target})
                return ScrapeResult(
                    url=target,
                    success=True,
                    document=cached,
                    execution_time_ms=self._elapsed_ms(started),
                    from_cache=True,
                )

        policy = self._retry_policy.with_max_retries(
            options.max_retries if options.retry_on_failure else 0
        )

        attempt = 0
        while True:
            attempt += 1
            try:
                document = await self._attempt(target, options)
            except RendererNotInitializedError:
                raise
            except Exception as exc:  # noqa: BLE001
                retry_count = attempt - 1
                if attempt >= policy.max_attempts or not policy.is_retryable(exc):
                    self._failed += 1
                    self._total_retries += retry_count
                    logger.error(
                        "Scrape failed: %s: %s",
                        type(exc).__name__,
                        exc,
                        extra={"url": target, "attempts": attempt},
                    )
                    return ScrapeResult(
                        url=target,
                        success=False,
                        error=str(exc) or type(exc).__name__,
                        execution_time_ms=self._elapsed_ms(started),
                        retry_count=retry_count,
                    )

                delay = policy.get_delay(attempt)
                logger.warning(
                    "Scrape attempt %d failed, retrying in %.1fs: %s",
                    attempt,
                    delay,
                    exc,
                    extra={"url": target},
                )
                await self._sleep(delay)
                continue

            if options.use_cache and self._cache is not None:
                await self._cache.set(
                    cache_key, document.model_dump(mode="json"), ttl=self._cache_ttl
                )

            retry_count = attempt - 1
            self._successful += 1
            self._total_retries += retry_count
            logger.info(
                "Page scraped",
                extra={"url": target, "retry_count": retry_count, "pages": document.page_count},
            )
            return ScrapeResult(
                url=target,
                success=True,
                document=document,
                execution_time_ms=self._elapsed_ms(started),
                retry_count=retry_count,
            )

    async def scrape_pages(
        self, urls: list[str], options: ScrapeOptions | None = None
    ) -> list[ScrapeResult]:
        """Scrape urls one after another, spaced by the politeness governor.

        Args:
            urls: URLs to scrape
            options: Options applied to every URL

        Returns:
            One ScrapeResult per URL, in input order
        """
        results: list[ScrapeResult] = []
        for url in urls:
            target = normalize_url(url, self.base_url)
            if self._governor is not None:
                await self._governor.wait_for_next_request(self._identifier, target)

            result = await self.scrape_page(target, options)
            if result.success and not result.from_cache and self._governor is not None:
                await self._governor.record_request(self._identifier)
            results.append(result)
        return results

    def get_stats(self) -> FetchStats:
        return FetchStats(
            total_requests=self._total_requests,
            successful=self._successful,
            failed=self._failed,
            cache_hits=self._cache_hits,
            total_retries=self._total_retries,
        )

    async def _cached_document(self, cache_key: str) -> ScrapedDocument | None:
        entry = await self._cache.get(cache_key)
        if entry is None:
            return None
        try:
            return ScrapedDocument.model_validate(entry.value)
        except ValidationError as exc:
            logger.warning("Ignoring invalid cached document: %s", exc, extra={"key": cache_key})
            return None

    async def _attempt(self, url: str, options: ScrapeOptions) -> ScrapedDocument:
        renderer = self._renderer_factory()
        try:
            await renderer.initialize(
                headers={"Accept-Language": self._accept_language},
                user_agent=self._browser_user_agent,
                blocked_resource_types=FETCHER_BLOCKED_RESOURCES,
            )
            analyzer = await self._load(renderer, url, options)
            document = analyzer.extract_document(options)
            if options.follow_pagination and options.max_pages > 1:
                document = await self._follow_pagination(renderer, analyzer, document, options)
            return document
        finally:
            await renderer.close()

    async def _load(
        self, renderer: PageRenderer, url: str, options: ScrapeOptions
    ) -> PageAnalyzer:
        response = await renderer.goto(
            url, wait_until=options.wait_strategy.value, timeout=options.timeout
        )
        if not response.ok:
            raise HttpError(response.status, url=url)
        html = await renderer.content()
        return PageAnalyzer(html, url, self._language_detector)

    async def _follow_pagination(
        self,
        renderer: PageRenderer,
        analyzer: PageAnalyzer,
        document: ScrapedDocument,
        options: ScrapeOptions,
    ) -> ScrapedDocument:
        seen = {analyzer.url}
        pages = [document]
        next_url = analyzer.next_page_url()

        while next_url and next_url not in seen and len(pages) < options.max_pages:
            seen.add(next_url)
            if self._governor is not None:
                if not await self._governor.is_url_allowed(next_url):
                    logger.info("Pagination stopped by robots.txt: %s", next_url)
                    break
                await self._governor.wait_for_next_request(self._identifier, next_url)

            try:
                analyzer = await self._load(renderer, next_url, options)
            except FetchError as exc:
                logger.warning("Pagination stopped at %s: %s", next_url, exc)
                break
            if self._governor is not None:
                await self._governor.record_request(self._identifier)
            pages.append(analyzer.extract_document(options))
            next_url = analyzer.next_page_url()

        return _merge_pages(pages)

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)


def _merge_pages(pages: list[ScrapedDocument]) -> ScrapedDocument:
    """Combine paginated documents into the first page's document."""
    first = pages[0]
    if len(pages) == 1:
        return first

    images = [image for page in pages for image in page.images]
    attachments = [attachment for page in pages for attachment in page.attachments]
    keywords = list(dict.fromkeys(k for page in pages for k in page.metadata.keywords))
    return first.model_copy(
        update={
            "content": "\n\n".join(page.content for page in pages if page.content),
            "images": [
                image.model_copy(update={"id": f"img-{index}"})
                for index, image in enumerate(images)
            ],
            "attachments": [
                attachment.model_copy(update={"id": f"att-{index}"})
                for index, attachment in enumerate(attachments)
            ],
            "tables": [table for page in pages for table in page.tables],
            "metadata": first.metadata.model_copy(update={"keywords": keywords[:MAX_KEYWORDS]}),
            "page_count": len(pages),
        }
    )
