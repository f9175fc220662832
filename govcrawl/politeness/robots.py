"""robots.txt parsing, pattern matching and per-origin caching.

The parser keeps one rule set per ``User-agent`` group and selects the most
specific group at query time, falling back to ``*``. Only ``User-agent``,
``Allow``, ``Disallow``, ``Crawl-delay`` and ``Sitemap`` are recognized.

Pattern semantics (``robots_pattern_matches``):
    - patterns match from the start of the path (prefix match)
    - ``*`` matches any sequence of characters, including none
    - a trailing ``$`` anchors the pattern at the end of the path
    - every other character is literal
    - an empty pattern matches nothing

Example:
    >>> directive = parse_robots_txt("User-agent: *\\nDisallow: /private/\\n")
    >>> directive.rules_for("govcrawl").disallow
    ['/private/']
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import lru_cache

import httpx

from govcrawl.core.errors import RobotsFetchError

logger = logging.getLogger(__name__)

WILDCARD_AGENT = "*"


@dataclass
class RobotsRules:
    """Rules of one user-agent group."""

    allow: list[str] = field(default_factory=list)
    disallow: list[str] = field(default_factory=list)
    crawl_delay: float | None = None


@dataclass
class RobotsDirective:
    """Parsed robots.txt for one origin.

    Attributes:
        user_agent: User agent the directive was fetched with
        groups: Rules keyed by lower-cased user-agent token
        sitemaps: Sitemap URLs (global, not per group)
    """

    user_agent: str = WILDCARD_AGENT
    groups: dict[str, RobotsRules] = field(default_factory=dict)
    sitemaps: list[str] = field(default_factory=list)

    def rules_for(self, user_agent: str) -> RobotsRules:
        """Select the rules that apply to user_agent.

        The group whose token is the longest case-insensitive substring of
        user_agent wins; otherwise the ``*`` group; otherwise no rules.
        """
        agent = user_agent.lower()
        best_token: str | None = None
        for token in self.groups:
            if token == WILDCARD_AGENT or token not in agent:
                continue
            if best_token is None or len(token) > len(best_token):
                best_token = token

        if best_token is not None:
            return self.groups[best_token]
        return self.groups.get(WILDCARD_AGENT, RobotsRules())


def parse_robots_txt(content: str, user_agent: str = WILDCARD_AGENT) -> RobotsDirective:
    """Parse robots.txt content into per-agent groups.

    Consecutive ``User-agent`` lines form one group; the first rule line after
    them closes the agent list, so a later ``User-agent`` line starts a new group.
    Rules that appear before any ``User-agent`` line apply to ``*``.

    Args:
        content: Raw robots.txt text
        user_agent: User agent the file was fetched for

    Returns:
        RobotsDirective with grouped rules and sitemaps
    """
    directive = RobotsDirective(user_agent=user_agent)
    current_agents: list[str] = []
    collecting_agents = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        key, value = line.split(":", 1)
        key = key.strip().lower()
        value = value.strip()

        if key == "user-agent":
            if not collecting_agents:
                current_agents = []
                collecting_agents = True
            token = value.lower() or WILDCARD_AGENT
            current_agents.append(token)
            directive.groups.setdefault(token, RobotsRules())
            continue

        if key == "sitemap":
            if value:
                directive.sitemaps.append(value)
            continue

        if key not in {"allow", "disallow", "crawl-delay"}:
            continue

        collecting_agents = False
        agents = current_agents or [WILDCARD_AGENT]
        for agent in agents:
            rules = directive.groups.setdefault(agent, RobotsRules())
            if key == "allow":
                rules.allow.append(value)
            elif key == "disallow":
                rules.disallow.append(value)
            else:
                try:
                    rules.crawl_delay = float(value)
                except ValueError:
                    logger.debug("Ignoring invalid Crawl-delay value: %r", value)

    return directive


@lru_cache(maxsize=512)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    anchored = pattern.endswith("$")
    body = pattern[:-1] if anchored else pattern
    regex = ".*".join(re.escape(part) for part in body.split("*"))
    return re.compile(regex + ("$" if anchored else ""))


def robots_pattern_matches(path: str, pattern: str) -> bool:
    """Check whether a robots.txt pattern matches path.

    Args:
        path: URL path, optionally with "?query"
        pattern: Allow/Disallow value

    Returns:
        True if pattern matches path from its start

    Examples:
        >>> robots_pattern_matches("/private/a", "/private/")
        True
        >>> robots_pattern_matches("/docs/file.pdf", "/*.pdf$")
        True
        >>> robots_pattern_matches("/docs/file.pdf?x=1", "/*.pdf$")
        False
        >>> robots_pattern_matches("/anything", "")
        False
    """
    if not pattern:
        return False
    return _compile_pattern(pattern).match(path) is not None


def is_path_allowed(rules: RobotsRules, path: str) -> bool:
    """Decide path against rules: any Allow match wins, then any Disallow match denies.

    Allow overrides Disallow regardless of which pattern is more specific.
    """
    for pattern in rules.allow:
        if robots_pattern_matches(path, pattern):
            return True
    for pattern in rules.disallow:
        if robots_pattern_matches(path, pattern):
            return False
    return True


@dataclass
class _CachedRobots:
    directive: RobotsDirective
    expires_at: float


class RobotsCache:
    """Fetches robots.txt per origin and caches the parsed result with a TTL.

    A per-origin lock guarantees a single in-flight fetch per origin, so
    concurrent callers inside the TTL cause exactly one network request.
    Missing files (4xx) cache as an empty directive. Network errors, timeouts
    and 5xx responses are logged, not cached, and reported as None so callers
    fail open.

    Args:
        user_agent: User-Agent header for robots.txt requests
        ttl: Seconds a parsed file stays valid
        timeout: Request timeout in seconds
        client: Optional shared httpx.AsyncClient (caller keeps ownership)
        clock: Time source returning seconds
    """

    def __init__(
        self,
        user_agent: str,
        ttl: float = 86400.0,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.user_agent = user_agent
        self.ttl = ttl
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent},
            follow_redirects=True,
        )
        self._owns_client = client is None
        self._timeout = timeout
        self._clock = clock
        self._entries: dict[str, _CachedRobots] = {}
        self._origin_locks: dict[str, asyncio.Lock] = {}
        self._lock = asyncio.Lock()

    @property
    def size(self) -> int:
        """Number of cached origins (expired entries included until swept)."""
        return len(self._entries)

    async def get(self, origin: str) -> RobotsDirective | None:
        """Return the directive for origin, fetching it when missing or expired.

        Args:
            origin: scheme://host[:port]

        Returns:
            Parsed directive, or None when robots.txt could not be fetched
        """
        cached = self._fresh_entry(origin)
        if cached is not None:
            return cached

        origin_lock = await self._origin_lock(origin)
        async with origin_lock:
            # Another task may have filled the cache while we waited
            cached = self._fresh_entry(origin)
            if cached is not None:
                return cached

            try:
                directive = await self._fetch(origin)
            except RobotsFetchError as exc:
                logger.warning(
                    "Failed to fetch robots.txt, allowing by default: %s",
                    exc,
                    extra={"origin": origin},
                )
                return None

            async with self._lock:
                self._entries[origin] = _CachedRobots(
                    directive=directive, expires_at=self._clock() + self.ttl
                )
            return directive

    async def sweep(self) -> int:
        """Evict expired entries. Returns the number evicted."""
        now = self._clock()
        async with self._lock:
            expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
            for key in expired:
                del self._entries[key]
                lock = self._origin_locks.get(key)
                if lock is not None and not lock.locked():
                    del self._origin_locks[key]
        return len(expired)

    async def aclose(self) -> None:
        """Close the HTTP client if this cache created it."""
        if self._owns_client:
            await self._client.aclose()

    def _fresh_entry(self, origin: str) -> RobotsDirective | None:
        entry = self._entries.get(origin)
        if entry is not None and self._clock() < entry.expires_at:
            return entry.directive
        return None

    async def _origin_lock(self, origin: str) -> asyncio.Lock:
        async with self._lock:
            lock = self._origin_locks.get(origin)
            if lock is None:
                lock = asyncio.Lock()
                self._origin_locks[origin] = lock
            return lock

    async def _fetch(self, origin: str) -> RobotsDirective:
        robots_url = f"{origin}/robots.txt"
        logger.debug("Fetching robots.txt: %s", robots_url)
        try:
            response = await self._client.get(
                robots_url,
                headers={"User-Agent": self.user_agent},
                timeout=self._timeout,
            )
        except (httpx.TimeoutException, httpx.RequestError) as exc:
            raise RobotsFetchError(f"{robots_url}: {type(exc).__name__}: {exc}") from exc

        if response.status_code >= 500:
            raise RobotsFetchError(f"{robots_url}: HTTP {response.status_code}")
        if response.status_code >= 400:
            logger.debug(
                "robots.txt not available (HTTP %s), treating as allow-all",
                response.status_code,
            )
            return RobotsDirective(user_agent=self.user_agent)

        return parse_robots_txt(response.text, user_agent=self.user_agent)
