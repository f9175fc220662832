"""Politeness governor: per-identifier rate limiting plus robots.txt compliance.

The governor is a long-lived collaborator shared by every crawl session and
fetch executor in the process. Request timings live in a ``TimingStore``
guarded by an ``asyncio.Lock``; robots.txt directives live in a ``RobotsCache``
with its own locking. Waiting is a plain ``asyncio.sleep`` taken outside any
lock, so one identifier waiting never blocks another.

Rate limiting per identifier:
    - minimum spacing of ``1 / requests_per_second`` seconds between requests
    - at most ``burst_limit`` recorded requests inside a one-second window;
      seeing an exhausted window puts the identifier into cooldown for
      ``cooldown_seconds``
    - ``record_request`` clears any active cooldown

Example:
    >>> governor = PolitenessGovernor(requests_per_second=2)
    >>> await governor.wait_for_next_request("crawler", "https://v04.krds.go.kr/")
    >>> if await governor.is_url_allowed("https://v04.krds.go.kr/guide"):
    ...     await governor.record_request("crawler")
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace

import httpx

from govcrawl.core.config import DEFAULT_USER_AGENT, Settings
from govcrawl.core.urls import origin_of, path_with_query
from govcrawl.politeness.robots import RobotsCache, RobotsDirective, is_path_allowed

logger = logging.getLogger(__name__)

BURST_WINDOW_SECONDS = 1.0
TIMING_MAX_AGE_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class RequestTiming:
    """Request bookkeeping for one identifier.

    Attributes:
        last_request: Clock time of the last recorded request (0 = never)
        request_count: Total recorded requests
        cooldown_until: Clock time the cooldown ends, if any
        window_start: Start of the current burst window
        window_count: Requests recorded inside the current burst window
    """

    last_request: float = 0.0
    request_count: int = 0
    cooldown_until: float | None = None
    window_start: float = 0.0
    window_count: int = 0


@dataclass(frozen=True)
class GovernorStats:
    """Snapshot of governor state."""

    active_identifiers: int
    robots_cache_size: int
    total_requests: int


class TimingStore:
    """Lock-guarded map of identifier -> RequestTiming.

    All reads and writes go through ``update`` or the small accessors, so
    concurrent sessions sharing one governor never interleave a
    read-modify-write.
    """

    def __init__(self) -> None:
        self._timings: dict[str, RequestTiming] = {}
        self._lock = asyncio.Lock()

    async def get(self, identifier: str) -> RequestTiming | None:
        async with self._lock:
            return self._timings.get(identifier)

    async def update(
        self,
        identifier: str,
        func: Callable[[RequestTiming], RequestTiming],
    ) -> RequestTiming:
        """Atomically replace the timing for identifier with func(current)."""
        async with self._lock:
            current = self._timings.get(identifier, RequestTiming())
            updated = func(current)
            self._timings[identifier] = updated
            return updated

    async def delete(self, identifier: str) -> None:
        async with self._lock:
            self._timings.pop(identifier, None)

    async def sweep(self, older_than: float) -> int:
        """Drop timings whose last request is older than the given clock time."""
        async with self._lock:
            stale = [
                key
                for key, timing in self._timings.items()
                if timing.last_request < older_than
            ]
            for key in stale:
                del self._timings[key]
            return len(stale)

    async def snapshot(self) -> dict[str, RequestTiming]:
        async with self._lock:
            return dict(self._timings)


class PolitenessGovernor:
    """Rate limiter with robots.txt compliance.

    Args:
        requests_per_second: Sustained rate per identifier
        burst_limit: Requests per one-second window before cooldown
        cooldown_seconds: Cooldown duration after exhausting the burst budget
        default_crawl_delay: Crawl delay when robots.txt declares none
        user_agent: Default user agent for robots.txt queries
        robots_cache_ttl: Seconds robots.txt stays cached
        robots_timeout: Timeout for robots.txt fetches
        http_client: Optional httpx client for robots.txt fetches
        clock: Monotonic time source in seconds
        sleep: Awaitable sleep used by wait_for_next_request
    """

    def __init__(
        self,
        requests_per_second: float = 1.0,
        burst_limit: int = 3,
        cooldown_seconds: float = 5.0,
        default_crawl_delay: float = 1.0,
        user_agent: str = DEFAULT_USER_AGENT,
        robots_cache_ttl: float = 86400.0,
        robots_timeout: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        if burst_limit <= 0:
            raise ValueError("burst_limit must be positive")

        self.requests_per_second = requests_per_second
        self.burst_limit = burst_limit
        self.cooldown_seconds = cooldown_seconds
        self.default_crawl_delay = default_crawl_delay
        self.user_agent = user_agent
        self._clock = clock
        self._sleep = sleep
        self._timings = TimingStore()
        self._robots = RobotsCache(
            user_agent=user_agent,
            ttl=robots_cache_ttl,
            timeout=robots_timeout,
            client=http_client,
            clock=clock,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> PolitenessGovernor:
        """Build a governor from Settings; kwargs override."""
        params = {
            "requests_per_second": settings.requests_per_second,
            "burst_limit": settings.burst_limit,
            "cooldown_seconds": settings.cooldown_seconds,
            "default_crawl_delay": settings.default_crawl_delay,
            "user_agent": settings.user_agent,
            "robots_cache_ttl": settings.robots_cache_ttl,
            "robots_timeout": settings.robots_timeout,
        }
        params.update(kwargs)
        return cls(**params)

    @property
    def min_interval(self) -> float:
        """Minimum spacing between requests for one identifier, in seconds."""
        return 1.0 / self.requests_per_second

    async def check_limit(self, identifier: str = "default") -> bool:
        """Check whether identifier may issue a request now.

        Returns False while in cooldown, when the minimum spacing has not
        elapsed since the last request, or when the burst window is exhausted
        (which also starts a cooldown).

        Args:
            identifier: Logical requester such as "crawler" or "fetcher"

        Returns:
            True if the request is allowed
        """
        now = self._clock()
        timing = await self._timings.get(identifier)
        if timing is None:
            return True

        if timing.cooldown_until is not None and now < timing.cooldown_until:
            logger.debug(
                "Request blocked: still in cooldown period",
                extra={"identifier": identifier, "cooldown_until": timing.cooldown_until},
            )
            return False

        if timing.last_request:
            elapsed = now - timing.last_request
            if elapsed < self.min_interval:
                logger.debug(
                    "Request blocked: minimum delay not met",
                    extra={"identifier": identifier, "elapsed": elapsed},
                )
                return False

        if self._remaining(timing, now) <= 0:
            await self._set_cooldown(identifier)
            return False

        return True

    async def record_request(self, identifier: str = "default") -> None:
        """Record a request: consume burst budget, update timing, clear cooldown."""
        now = self._clock()

        def _record(timing: RequestTiming) -> RequestTiming:
            if now - timing.window_start >= BURST_WINDOW_SECONDS:
                window_start, window_count = now, 1
            else:
                window_start, window_count = timing.window_start, timing.window_count + 1
            return RequestTiming(
                last_request=now,
                request_count=timing.request_count + 1,
                cooldown_until=None,
                window_start=window_start,
                window_count=window_count,
            )

        timing = await self._timings.update(identifier, _record)
        logger.debug(
            "Request recorded",
            extra={"identifier": identifier, "request_count": timing.request_count},
        )

    async def get_remaining_requests(self, identifier: str = "default") -> int:
        """Return the burst budget left in the current window."""
        timing = await self._timings.get(identifier)
        if timing is None:
            return self.burst_limit
        return self._remaining(timing, self._clock())

    async def reset_limit(self, identifier: str = "default") -> None:
        """Forget all timing state for identifier."""
        await self._timings.delete(identifier)
        logger.info("Rate limit reset for %s", identifier)

    async def wait_for_next_request(
        self, identifier: str = "default", url: str | None = None
    ) -> None:
        """Sleep until identifier may issue its next request.

        The required spacing is the larger of the configured minimum interval
        and the robots.txt crawl delay for url. The first request for an
        identifier never waits.

        Args:
            identifier: Logical requester
            url: Target URL whose robots.txt crawl delay applies
        """
        timing = await self._timings.get(identifier)
        if timing is None or not timing.last_request:
            return

        required = self.min_interval
        if url:
            required = max(required, await self.get_crawl_delay(url))

        wait_time = required - (self._clock() - timing.last_request)
        if wait_time > 0:
            logger.debug(
                "Waiting %.3fs before next request",
                wait_time,
                extra={"identifier": identifier, "required_delay": required},
            )
            await self._sleep(wait_time)

    async def is_url_allowed(self, url: str, user_agent: str | None = None) -> bool:
        """Check url against its origin's robots.txt.

        Allow patterns override Disallow patterns. Anything that prevents
        reading robots.txt (missing file, network error, bad URL) allows.

        Args:
            url: Absolute URL
            user_agent: Agent to select rules for (defaults to governor agent)

        Returns:
            True if crawling url is allowed
        """
        agent = user_agent or self.user_agent
        directive = await self._directive_for(url)
        if directive is None:
            return True

        allowed = is_path_allowed(directive.rules_for(agent), path_with_query(url))
        if not allowed:
            logger.debug("URL disallowed by robots.txt: %s", url, extra={"user_agent": agent})
        return allowed

    async def get_crawl_delay(self, url: str, user_agent: str | None = None) -> float:
        """Return the robots.txt crawl delay for url in seconds, or the default."""
        directive = await self._directive_for(url)
        if directive is None:
            return self.default_crawl_delay

        crawl_delay = directive.rules_for(user_agent or self.user_agent).crawl_delay
        return crawl_delay if crawl_delay is not None else self.default_crawl_delay

    async def get_sitemaps(self, url: str) -> list[str]:
        """Return Sitemap URLs declared in url's robots.txt."""
        directive = await self._directive_for(url)
        return list(directive.sitemaps) if directive is not None else []

    async def cleanup(self) -> None:
        """Evict expired robots.txt entries and timings idle for over 24 hours."""
        robots_evicted = await self._robots.sweep()
        timings_evicted = await self._timings.sweep(self._clock() - TIMING_MAX_AGE_SECONDS)
        logger.debug(
            "Rate limiter cleanup completed",
            extra={
                "robots_evicted": robots_evicted,
                "timings_evicted": timings_evicted,
                "robots_cache_size": self._robots.size,
            },
        )

    async def get_stats(self) -> GovernorStats:
        """Return counts of tracked identifiers, cached origins and requests."""
        timings = await self._timings.snapshot()
        return GovernorStats(
            active_identifiers=len(timings),
            robots_cache_size=self._robots.size,
            total_requests=sum(timing.request_count for timing in timings.values()),
        )

    async def aclose(self) -> None:
        """Release the robots.txt HTTP client."""
        await self._robots.aclose()

    async def __aenter__(self) -> PolitenessGovernor:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def _directive_for(self, url: str) -> RobotsDirective | None:
        try:
            origin = origin_of(url)
        except ValueError:
            logger.warning("Cannot resolve origin for robots.txt check: %s", url)
            return None
        return await self._robots.get(origin)

    def _remaining(self, timing: RequestTiming, now: float) -> int:
        if now - timing.window_start >= BURST_WINDOW_SECONDS:
            return self.burst_limit
        return max(self.burst_limit - timing.window_count, 0)

    async def _set_cooldown(self, identifier: str) -> None:
        cooldown_until = self._clock() + self.cooldown_seconds
        await self._timings.update(
            identifier, lambda timing: replace(timing, cooldown_until=cooldown_until)
        )
        logger.warning(
            "Rate limit exceeded, entering cooldown",
            extra={"identifier": identifier, "cooldown_until": cooldown_until},
        )
