"""Error taxonomy for crawl and fetch operations.

Fetch-class errors (``FetchError`` and subclasses) describe a single page
retrieval going wrong. They are caught by the crawler and the fetch executor
and turned into failed records. ``RobotsFetchError`` never escapes the robots
cache. Everything else, ``RendererNotInitializedError`` included, is a
programmer or configuration error and propagates to the caller.
"""

from __future__ import annotations


class GovCrawlError(Exception):
    """Base class for all govcrawl errors."""

    pass


class FetchError(GovCrawlError):
    """Raised when retrieving or extracting a page fails.

    Args:
        message: Human-readable error message
        url: URL that was being fetched
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class NetworkError(FetchError):
    """Connection-level failure (DNS, reset, refused)."""

    pass


class NavigationTimeoutError(FetchError):
    """Navigation or render did not finish within the timeout."""

    pass


class HttpError(FetchError):
    """Page responded with a non-success HTTP status.

    Args:
        status: HTTP status code (0 when no response was received)
        url: URL that was being fetched
    """

    def __init__(self, status: int, url: str | None = None) -> None:
        super().__init__(f"HTTP {status}", url=url)
        self.status = status


class ExtractionError(FetchError):
    """Page evaluation or content extraction failed."""

    pass


class RobotsFetchError(GovCrawlError):
    """robots.txt could not be retrieved. Always handled as fail-open."""

    pass


class RendererNotInitializedError(GovCrawlError, RuntimeError):
    """A renderer-backed operation ran before ``initialize()``."""

    pass
