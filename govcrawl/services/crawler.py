"""Frontier crawler for breadth-first site discovery.

This module provides the FrontierCrawler, which walks a site level by level
from a seed URL and records one NavigationNode per visited page. A single
crawl is sequential: one renderer, one page at a time, every navigation
gated through the shared PolitenessGovernor.

The traversal is exposed as an async generator (``iter_crawl``) yielding one
node per visited page; ``crawl`` drains it into a list. An optional
``asyncio.Event`` is checked before every dequeue to stop a crawl early.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import replace
from datetime import datetime, timezone

from bs4 import BeautifulSoup

from govcrawl.core.config import (
    DEFAULT_ACCEPT_LANGUAGE,
    DEFAULT_BASE_URL,
    DEFAULT_BROWSER_USER_AGENT,
    Settings,
)
from govcrawl.core.errors import ExtractionError, HttpError, RendererNotInitializedError
from govcrawl.core.interfaces import PageRenderer
from govcrawl.core.urls import (
    generate_node_id,
    is_same_site,
    normalize_url,
    validate_url,
)
from govcrawl.politeness.governor import PolitenessGovernor
from govcrawl.rendering.analyzer import PageAnalyzer
from govcrawl.rendering.language import LanguageDetector
from govcrawl.services.models import (
    ASSET_PATTERN,
    CrawlOptions,
    CrawlStats,
    CrawlStatus,
    FrontierEntry,
    NavigationNode,
    PageMetadata,
    PageType,
)

logger = logging.getLogger(__name__)

CRAWLER_IDENTIFIER = "crawler"
CRAWLER_BLOCKED_RESOURCES = ("image", "media", "font")
LOCATION_SCRIPT = "() => window.location.href"
FAILED_TITLE = "Failed to load"


class FrontierCrawler:
    """Breadth-first crawler producing a navigation map of one site.

    Attributes:
        base_url: Crawl seed and domain scope

    Example:
        >>> crawler = FrontierCrawler(PlaywrightRenderer(), governor)
        >>> await crawler.initialize()
        >>> nodes = await crawler.crawl(CrawlOptions(max_depth=2, max_pages=50))
        >>> print(crawler.get_stats().pages_crawled)
    """

    def __init__(
        self,
        renderer: PageRenderer,
        governor: PolitenessGovernor,
        base_url: str = DEFAULT_BASE_URL,
        browser_user_agent: str = DEFAULT_BROWSER_USER_AGENT,
        accept_language: str = DEFAULT_ACCEPT_LANGUAGE,
        identifier: str = CRAWLER_IDENTIFIER,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the crawler.

        Args:
            renderer: Page renderer owned by this crawler for one crawl
            governor: Shared politeness governor
            base_url: Seed URL; links outside its site are out of scope
            browser_user_agent: User-Agent the renderer presents
            accept_language: Accept-Language header the renderer sends
            identifier: Rate-limit identifier used with the governor
            sleep: Awaitable sleep for the per-page crawl delay
        """
        if not validate_url(base_url):
            raise ValueError(f"Invalid base URL: {base_url}")

        self.base_url = normalize_url(base_url)
        self._renderer = renderer
        self._governor = governor
        self._browser_user_agent = browser_user_agent
        self._accept_language = accept_language
        self._identifier = identifier
        self._sleep = sleep
        self._language_detector = LanguageDetector()
        self._initialized = False

        self._nodes: dict[str, NavigationNode] = {}
        self._nodes_by_id: dict[str, NavigationNode] = {}
        self._visited: set[str] = set()
        self._skipped: set[str] = set()
        self._seen_links: set[str] = set()
        self._queue: deque[FrontierEntry] = deque()
        self._queued: set[str] = set()
        self._stats = CrawlStats()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        renderer: PageRenderer,
        governor: PolitenessGovernor,
        base_url: str | None = None,
    ) -> FrontierCrawler:
        return cls(
            renderer=renderer,
            governor=governor,
            base_url=base_url or settings.base_url,
            browser_user_agent=settings.browser_user_agent,
            accept_language=settings.accept_language,
        )

    async def initialize(self) -> None:
        """Open the renderer with browser headers and heavy resources blocked."""
        await self._renderer.initialize(
            headers={"Accept-Language": self._accept_language},
            user_agent=self._browser_user_agent,
            blocked_resource_types=CRAWLER_BLOCKED_RESOURCES,
        )
        self._initialized = True
        logger.info("Navigation crawler initialized", extra={"base_url": self.base_url})

    async def crawl(
        self,
        options: CrawlOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[NavigationNode]:
        """Crawl the site breadth-first from base_url.

        Args:
            options: Crawl limits and filters (defaults to CrawlOptions())
            cancel_event: When set, the crawl stops before the next dequeue

        Returns:
            Recorded nodes (success and failed) in visit order

        Raises:
            RendererNotInitializedError: If initialize() was not called
        """
        return [node async for node in self.iter_crawl(options, cancel_event)]

    async def iter_crawl(
        self,
        options: CrawlOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[NavigationNode]:
        """Yield one NavigationNode per visited page, in BFS order.

        The renderer is closed when the generator finishes, fails or is
        closed early by the caller.

        Raises:
            RendererNotInitializedError: If initialize() was not called
        """
        if not self._initialized:
            raise RendererNotInitializedError("Crawler not initialized. Call initialize() first.")

        options = options or CrawlOptions()
        self._reset()
        self._enqueue(FrontierEntry(url=self.base_url, level=0))

        logger.info(
            "Starting navigation crawl",
            extra={
                "base_url": self.base_url,
                "max_depth": options.max_depth,
                "max_pages": options.max_pages,
            },
        )

        try:
            while self._queue and self._stats.pages_crawled < options.max_pages:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(
                        "Crawl cancelled",
                        extra={"pending": len(self._queue), "crawled": self._stats.pages_crawled},
                    )
                    break

                entry = self._queue.popleft()
                self._queued.discard(entry.url)

                if entry.url in self._visited:
                    continue

                reason = await self._skip_reason(entry.url, options)
                if reason is not None:
                    self._skipped.add(entry.url)
                    self._stats.pages_skipped += 1
                    logger.debug("Skipping URL (%s): %s", reason, entry.url)
                    continue

                self._visited.add(entry.url)
                node = await self._visit(entry, options)
                yield node

                if options.crawl_delay > 0 and self._queue:
                    await self._sleep(options.crawl_delay)
        finally:
            end_time = datetime.now(timezone.utc)
            self._stats.end_time = end_time
            self._stats.duration = (end_time - self._stats.start_time).total_seconds()
            await self._renderer.close()
            self._initialized = False
            logger.info(
                "Navigation crawl completed",
                extra={
                    "pages_crawled": self._stats.pages_crawled,
                    "pages_failed": self._stats.pages_failed,
                    "pages_skipped": self._stats.pages_skipped,
                    "duration": self._stats.duration,
                },
            )

    def discover_links(
        self,
        page_url: str,
        html: str | BeautifulSoup,
        options: CrawlOptions | None = None,
    ) -> list[str]:
        """Extract, normalize, scope-filter and de-duplicate the page's links.

        Args:
            page_url: Final URL of the page (relative links resolve against it)
            html: Rendered HTML or its parsed tree
            options: Crawl options; external links survive only with
                follow_external_links

        Returns:
            Unique normalized URLs in page order
        """
        options = options or CrawlOptions()
        raw_links = PageAnalyzer(html, page_url).links()
        self._stats.total_links += len(raw_links)

        links: list[str] = []
        seen: set[str] = set()
        for link in raw_links:
            normalized = normalize_url(link, page_url)
            if not validate_url(normalized) or normalized in seen:
                continue
            if not options.follow_external_links and not is_same_site(normalized, self.base_url):
                continue
            seen.add(normalized)
            links.append(normalized)

        self._seen_links.update(links)
        self._stats.unique_urls = len(self._seen_links)
        logger.debug(
            "Discovered links",
            extra={"page_url": page_url, "total_links": len(raw_links), "unique": len(links)},
        )
        return links

    def determine_page_type(self, soup: BeautifulSoup, location: str) -> PageType:
        """Classify the page at location from its DOM."""
        return PageAnalyzer(soup, location).page_type(location)

    def extract_metadata(self, soup: BeautifulSoup, url: str | None = None) -> PageMetadata:
        """Collect breadcrumb, presence flags, page date and language."""
        return PageAnalyzer(soup, url or self.base_url, self._language_detector).metadata()

    def get_nodes(self) -> list[NavigationNode]:
        """Return recorded nodes in visit order."""
        return list(self._nodes.values())

    def get_navigation_tree(self) -> list[NavigationNode]:
        """Return root nodes; descendants are reachable through ``children`` ids."""
        return [
            node
            for node in self._nodes.values()
            if node.parent_id is None or node.parent_id not in self._nodes_by_id
        ]

    def find_pages(
        self,
        page_type: PageType | None = None,
        category: str | None = None,
        has_images: bool | None = None,
        has_attachments: bool | None = None,
        min_content_length: int | None = None,
    ) -> list[NavigationNode]:
        """Filter recorded nodes. Criteria left as None are ignored."""
        matches = []
        for node in self._nodes.values():
            metadata = node.metadata
            if page_type is not None and node.page_type != page_type:
                continue
            if category is not None and metadata.category != category:
                continue
            if has_images is not None and metadata.has_images != has_images:
                continue
            if has_attachments is not None and metadata.has_attachments != has_attachments:
                continue
            content_length = metadata.content_length or 0
            if min_content_length is not None and content_length < min_content_length:
                continue
            matches.append(node)
        return matches

    @property
    def pending_urls(self) -> list[str]:
        """URLs still waiting in the frontier."""
        return [entry.url for entry in self._queue]

    def get_stats(self) -> CrawlStats:
        return replace(self._stats)

    def _reset(self) -> None:
        self._nodes = {}
        self._nodes_by_id = {}
        self._visited = set()
        self._skipped = set()
        self._seen_links = set()
        self._queue = deque()
        self._queued = set()
        self._stats = CrawlStats()

    def _enqueue(self, entry: FrontierEntry) -> None:
        if entry.url in self._visited or entry.url in self._queued or entry.url in self._skipped:
            return
        self._queue.append(entry)
        self._queued.add(entry.url)
        self._stats.pages_discovered += 1
        self._stats.crawl_depth = max(self._stats.crawl_depth, entry.level)

    async def _skip_reason(self, url: str, options: CrawlOptions) -> str | None:
        if not options.follow_external_links and not is_same_site(url, self.base_url):
            return "external"
        if any(pattern.search(url) for pattern in options.skip_patterns):
            return "skip pattern"
        if options.include_patterns and not any(
            pattern.search(url) for pattern in options.include_patterns
        ):
            return "not included"
        if not options.include_assets and ASSET_PATTERN.search(url):
            return "asset"
        if options.respect_robots_txt and not await self._governor.is_url_allowed(url):
            return "robots.txt"
        return None

    async def _visit(self, entry: FrontierEntry, options: CrawlOptions) -> NavigationNode:
        await self._governor.wait_for_next_request(self._identifier, entry.url)

        try:
            response = await self._renderer.goto(
                entry.url, wait_until="networkidle", timeout=options.timeout
            )
            if not response.ok:
                raise HttpError(response.status, url=entry.url)
            html = await self._renderer.content()
            location = await self._renderer.evaluate(LOCATION_SCRIPT) or entry.url
        except RendererNotInitializedError:
            raise
        except Exception as exc:  # noqa: BLE001
            return self._record_failure(entry, exc)

        await self._governor.record_request(self._identifier)

        try:
            analyzer = PageAnalyzer(html, location, self._language_detector)
            title = analyzer.title()
            korean_title = analyzer.korean_title()
            node = NavigationNode(
                id=generate_node_id(entry.url),
                url=entry.url,
                title=title,
                title_korean=korean_title if korean_title != title else None,
                level=entry.level,
                parent_id=entry.parent_id,
                page_type=self.determine_page_type(analyzer.soup, location),
                metadata=analyzer.metadata(),
                last_crawled=datetime.now(timezone.utc),
                crawl_status=CrawlStatus.SUCCESS,
            )
            links: list[str] = []
            if entry.level < options.max_depth:
                links = self.discover_links(location, analyzer.soup, options)
        except Exception as exc:  # noqa: BLE001
            error = ExtractionError(f"{type(exc).__name__}: {exc}", url=entry.url)
            return self._record_failure(entry, error)

        self._record(node)
        self._stats.pages_crawled += 1
        for link in links:
            self._enqueue(FrontierEntry(url=link, level=entry.level + 1, parent_id=node.id))

        logger.debug(
            "Page crawled",
            extra={"url": entry.url, "level": entry.level, "page_type": node.page_type.value},
        )
        return node

    def _record_failure(self, entry: FrontierEntry, exc: Exception) -> NavigationNode:
        logger.warning(
            "Failed to crawl page: %s: %s",
            type(exc).__name__,
            exc,
            extra={"url": entry.url, "level": entry.level},
        )
        node = NavigationNode(
            id=generate_node_id(entry.url),
            url=entry.url,
            title=FAILED_TITLE,
            level=entry.level,
            parent_id=entry.parent_id,
            page_type=PageType.UNKNOWN,
            metadata=PageMetadata(),
            crawl_status=CrawlStatus.FAILED,
            error=str(exc) or type(exc).__name__,
        )
        self._record(node)
        self._stats.pages_failed += 1
        return node

    def _record(self, node: NavigationNode) -> None:
        self._nodes[node.url] = node
        self._nodes_by_id[node.id] = node
        parent = self._nodes_by_id.get(node.parent_id) if node.parent_id else None
        if parent is not None:
            parent.children.append(node.id)
