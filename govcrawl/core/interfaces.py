"""Core protocol definitions for govcrawl collaborators.

This module provides the protocols for the two black-box collaborators the crawl
engine consumes: the page renderer (a headless browser) and the cache store.
Implementations live in ``govcrawl.rendering`` and ``govcrawl.cache``; tests
substitute lightweight fakes.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class NavigationResponse:
    """Outcome of a renderer navigation.

    Attributes:
        ok: Whether the main document responded with a 2xx status
        status: HTTP status of the main document (0 if none)
        url: Final URL after redirects
    """

    ok: bool
    status: int
    url: str


@dataclass(frozen=True)
class CacheEntry:
    """Cached value with its absolute expiry (epoch seconds)."""

    value: Any
    expires_at: float
    created_at: float = 0.0


class PageRenderer(Protocol):
    """Protocol for a headless page renderer.

    One renderer owns one page. Callers serialize navigation on it; the crawler
    holds a single renderer for a whole crawl, the fetch executor opens one per
    attempt.

    Methods required:
    - initialize: Open the page with headers, user agent and resource blocking
    - goto: Navigate and report the main document status
    - evaluate: Run a script in the page and return its result
    - content: Return the rendered HTML
    - close: Release the page and any browser it owns
    """

    async def initialize(
        self,
        headers: Mapping[str, str],
        user_agent: str,
        blocked_resource_types: Iterable[str] = (),
    ) -> None:
        """Open the page.

        Args:
            headers: Extra HTTP headers for every request
            user_agent: User-Agent string for the page
            blocked_resource_types: Resource types to abort (image, media, font)
        """
        ...

    async def goto(
        self, url: str, wait_until: str = "networkidle", timeout: float = 30.0
    ) -> NavigationResponse:
        """Navigate to url.

        Raises:
            NavigationTimeoutError: If navigation exceeds timeout
            NetworkError: If the navigation fails at the network level
        """
        ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate a script in the page context."""
        ...

    async def content(self) -> str:
        """Return the rendered document HTML."""
        ...

    async def close(self) -> None:
        """Release the page."""
        ...


class CacheStore(Protocol):
    """Protocol for a TTL cache shared across crawl sessions.

    Implementations must be safe to call from concurrent tasks.
    """

    async def get(self, key: str) -> CacheEntry | None:
        """Return the entry for key, or None if missing or expired."""
        ...

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store value under key for ttl seconds."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove key. Returns True if it existed."""
        ...

    async def clear(self) -> None:
        """Remove every entry."""
        ...
