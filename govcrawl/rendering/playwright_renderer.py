"""Headless Chromium page renderer backed by Playwright.

One ``PlaywrightRenderer`` owns one Playwright driver, browser, context and
page. The crawler keeps a single renderer for a whole crawl; the fetch
executor creates one per attempt through a factory.

Example:
    >>> renderer = PlaywrightRenderer(headless=True)
    >>> await renderer.initialize({"Accept-Language": "ko-KR"}, "Mozilla/5.0 ...", ("image",))
    >>> response = await renderer.goto("https://v04.krds.go.kr/")
    >>> html = await renderer.content()
    >>> await renderer.close()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout
from playwright.async_api import async_playwright

from govcrawl.core.errors import (
    ExtractionError,
    NavigationTimeoutError,
    NetworkError,
    RendererNotInitializedError,
)
from govcrawl.core.interfaces import NavigationResponse

logger = logging.getLogger(__name__)

BROWSER_ARGS = (
    "--disable-gpu",
    "--no-sandbox",
    "--disable-dev-shm-usage",
)
DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}


class PlaywrightRenderer:
    """PageRenderer implementation using ``playwright.async_api``.

    Args:
        headless: Launch Chromium without a window
        viewport: Page viewport size
    """

    def __init__(
        self,
        headless: bool = True,
        viewport: Mapping[str, int] | None = None,
    ) -> None:
        self.headless = headless
        self.viewport = dict(viewport or DEFAULT_VIEWPORT)
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._blocked: frozenset[str] = frozenset()

    @property
    def is_initialized(self) -> bool:
        return self._page is not None

    async def initialize(
        self,
        headers: Mapping[str, str],
        user_agent: str,
        blocked_resource_types: Iterable[str] = (),
    ) -> None:
        """Launch the browser and open a page with headers and resource blocking."""
        if self._page is not None:
            return

        self._blocked = frozenset(blocked_resource_types)
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless, args=list(BROWSER_ARGS)
        )
        self._context = await self._browser.new_context(
            user_agent=user_agent,
            viewport=self.viewport,
            extra_http_headers=dict(headers),
            locale="ko-KR",
        )
        if self._blocked:
            await self._context.route("**/*", self._route_handler)
        self._page = await self._context.new_page()

        logger.debug(
            "Playwright renderer initialized",
            extra={"headless": self.headless, "blocked": sorted(self._blocked)},
        )

    async def goto(
        self, url: str, wait_until: str = "networkidle", timeout: float = 30.0
    ) -> NavigationResponse:
        """Navigate to url and report the main document status.

        Raises:
            NavigationTimeoutError: If navigation exceeds timeout seconds
            NetworkError: If Playwright reports any other navigation failure
            RendererNotInitializedError: If initialize() was not called
        """
        page = self._require_page()
        try:
            response = await page.goto(url, wait_until=wait_until, timeout=timeout * 1000)
        except PlaywrightTimeout as e:
            raise NavigationTimeoutError(f"TimeoutError: {e}", url=url) from e
        except PlaywrightError as e:
            raise NetworkError(f"NetworkError: {e}", url=url) from e

        if response is None:
            # Same-document navigations (hash changes) have no response
            return NavigationResponse(ok=True, status=0, url=page.url)
        return NavigationResponse(ok=response.ok, status=response.status, url=page.url)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        page = self._require_page()
        try:
            return await page.evaluate(expression, arg)
        except PlaywrightError as e:
            raise ExtractionError(f"Page evaluation failed: {e}", url=page.url) from e

    async def content(self) -> str:
        page = self._require_page()
        try:
            return await page.content()
        except PlaywrightError as e:
            raise ExtractionError(f"Reading page content failed: {e}", url=page.url) from e

    async def close(self) -> None:
        """Close page, context, browser and driver. Safe to call more than once."""
        for resource in (self._page, self._context, self._browser):
            if resource is None:
                continue
            try:
                await resource.close()
            except PlaywrightError as e:
                logger.debug("Ignoring error while closing renderer: %s", e)
        if self._playwright is not None:
            await self._playwright.stop()

        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

    async def _route_handler(self, route: Route) -> None:
        if route.request.resource_type in self._blocked:
            await route.abort()
            return
        await route.continue_()

    def _require_page(self) -> Page:
        if self._page is None:
            raise RendererNotInitializedError("Renderer not initialized. Call initialize() first.")
        return self._page
