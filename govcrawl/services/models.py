"""Service-layer data models for crawl and scrape operations."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PageType(str, Enum):
    """Classification of a crawled page."""

    HOMEPAGE = "homepage"
    CATEGORY = "category"
    CONTENT = "content"
    LIST = "list"
    SEARCH = "search"
    UNKNOWN = "unknown"


class CrawlStatus(str, Enum):
    """Lifecycle of a navigation node. Every status except PENDING is terminal."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class Language(str, Enum):
    """Page language as classified by Unicode ranges."""

    KO = "ko"
    KO_EN = "ko-en"
    EN = "en"
    UNKNOWN = "unknown"


class WaitStrategy(str, Enum):
    """Navigation completion condition passed to the renderer."""

    LOAD = "load"
    DOMCONTENTLOADED = "domcontentloaded"
    NETWORKIDLE = "networkidle"
    COMMIT = "commit"


@dataclass(frozen=True)
class FrontierEntry:
    """A URL waiting in the crawl queue.

    Args:
        url: Normalized URL to crawl
        parent_id: Node id of the page that discovered this URL
        level: BFS depth (seed = 0)
    """

    url: str
    level: int
    parent_id: str | None = None


@dataclass(frozen=True)
class PageMetadata:
    """Structural facts about a crawled page.

    Args:
        breadcrumb: Breadcrumb trail texts
        category: Category/section label, if present
        last_modified: Parsed page date, if any
        content_length: Characters in the main content block
        has_images: Page contains images
        has_attachments: Page links to downloadable attachments
        has_table: Page contains a table
        language: Unicode-range language classification
    """

    breadcrumb: list[str] = field(default_factory=list)
    category: str | None = None
    last_modified: datetime | None = None
    content_length: int | None = None
    has_images: bool = False
    has_attachments: bool = False
    has_table: bool = False
    language: Language = Language.UNKNOWN


@dataclass(frozen=True)
class NavigationNode:
    """Durable record of one visited URL.

    Args:
        id: Stable node id derived from the normalized URL
        url: Normalized URL
        title: Page title ("Failed to load" for failed nodes)
        level: BFS depth (seed = 0, child = parent + 1)
        parent_id: Id of the discovering node (None for the seed)
        children: Child node ids, appended as children are recorded
        page_type: DOM-heuristic page classification
        metadata: Structural metadata
        discovered_at: When the node was recorded
        last_crawled: When the page was fetched successfully
        crawl_status: SUCCESS or FAILED for recorded nodes
        error: Error message for failed nodes
        title_korean: Korean title when it differs from the main title
    """

    id: str
    url: str
    title: str
    level: int
    page_type: PageType
    metadata: PageMetadata
    crawl_status: CrawlStatus
    parent_id: str | None = None
    children: list[str] = field(default_factory=list)
    discovered_at: datetime = field(default_factory=_utcnow)
    last_crawled: datetime | None = None
    error: str | None = None
    title_korean: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible dictionary."""
        data = asdict(self)
        data["page_type"] = self.page_type.value
        data["crawl_status"] = self.crawl_status.value
        data["metadata"]["language"] = self.metadata.language.value
        for key in ("discovered_at", "last_crawled"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        if data["metadata"]["last_modified"] is not None:
            data["metadata"]["last_modified"] = data["metadata"]["last_modified"].isoformat()
        return data


@dataclass
class CrawlStats:
    """Counters for one crawl session.

    pages_crawled + pages_failed + pages_skipped never exceeds pages_discovered.
    unique_urls counts distinct in-scope links across the whole session.
    """

    pages_discovered: int = 0
    pages_crawled: int = 0
    pages_skipped: int = 0
    pages_failed: int = 0
    total_links: int = 0
    unique_urls: int = 0
    crawl_depth: int = 0
    start_time: datetime = field(default_factory=_utcnow)
    end_time: datetime | None = None
    duration: float | None = None


DEFAULT_SKIP_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\.(pdf|doc|docx|xls|xlsx|ppt|pptx|zip|rar|exe|hwp)$", re.IGNORECASE),
    re.compile(r"/download/", re.IGNORECASE),
    re.compile(r"/api/", re.IGNORECASE),
    re.compile(r"/admin/", re.IGNORECASE),
)

# Static assets are never navigation pages unless include_assets is set
ASSET_PATTERN = re.compile(
    r"\.(png|jpe?g|gif|webp|svg|ico|bmp|css|js|woff2?|ttf|eot|mp4|mp3|avi|mov)(\?.*)?$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class CrawlOptions:
    """Options for one crawl session.

    Args:
        max_depth: Deepest BFS level crawled (seed = 0)
        max_pages: Stop after this many successfully crawled pages
        follow_external_links: Crawl links outside the seed's domain
        include_assets: Crawl static asset URLs (images, scripts, styles)
        respect_robots_txt: Skip URLs disallowed by robots.txt
        crawl_delay: Extra pause after each page in seconds
        timeout: Navigation timeout in seconds
        skip_patterns: URLs matching any of these are skipped
        include_patterns: When non-empty, only matching URLs are crawled
    """

    max_depth: int = 5
    max_pages: int = 1000
    follow_external_links: bool = False
    include_assets: bool = False
    respect_robots_txt: bool = True
    crawl_delay: float = 1.0
    timeout: float = 30.0
    skip_patterns: tuple[re.Pattern[str], ...] = DEFAULT_SKIP_PATTERNS
    include_patterns: tuple[re.Pattern[str], ...] = ()


@dataclass(frozen=True)
class ScrapeOptions:
    """Options for one fetch executor call.

    Args:
        include_images: Keep image references in the document
        include_attachments: Keep attachment references in the document
        process_korean_text: Extract keywords from Hangul and Latin tokens
        use_cache: Read from and write through to the cache store
        retry_on_failure: Retry transient failures
        max_retries: Retries after the first attempt
        timeout: Navigation timeout in seconds
        wait_strategy: Navigation completion condition
        extract_tables: Extract table cells into the document
        follow_pagination: Follow next-page links
        max_pages: Page limit when following pagination
    """

    include_images: bool = True
    include_attachments: bool = True
    process_korean_text: bool = True
    use_cache: bool = True
    retry_on_failure: bool = True
    max_retries: int = 3
    timeout: float = 30.0
    wait_strategy: WaitStrategy = WaitStrategy.NETWORKIDLE
    extract_tables: bool = True
    follow_pagination: bool = False
    max_pages: int = 1

    def cache_fields(self) -> dict[str, Any]:
        """Options that change the scraped document, used in cache keys."""
        return {
            "include_images": self.include_images,
            "include_attachments": self.include_attachments,
            "process_korean_text": self.process_korean_text,
            "extract_tables": self.extract_tables,
            "follow_pagination": self.follow_pagination,
            "max_pages": self.max_pages,
        }


class ImageRef(BaseModel):
    """Image referenced by a document."""

    id: str
    url: str
    alt: str = ""
    width: int = 0
    height: int = 0
    format: str = "unknown"


class AttachmentRef(BaseModel):
    """Downloadable attachment linked from a document."""

    id: str
    filename: str
    url: str
    description: str = ""


class DocumentMetadata(BaseModel):
    """Descriptive metadata for a scraped document."""

    agency: str = "KRDS"
    publication_date: datetime | None = None
    document_type: str = "webpage"
    keywords: list[str] = Field(default_factory=list)
    language: Language = Language.UNKNOWN
    classification: str = "general"


class ScrapedDocument(BaseModel):
    """Document extracted from one page (or a paginated run of pages)."""

    id: str
    title: str
    url: str
    category: str = "general"
    content: str = ""
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    images: list[ImageRef] = Field(default_factory=list)
    attachments: list[AttachmentRef] = Field(default_factory=list)
    tables: list[list[list[str]]] = Field(default_factory=list)
    page_count: int = 1
    scraped_at: datetime = Field(default_factory=_utcnow)


@dataclass(frozen=True)
class ScrapeResult:
    """Result for a single fetch executor invocation.

    Args:
        url: Normalized URL
        success: Whether a document was produced
        document: Scraped document on success
        error: Error message on failure
        execution_time_ms: Wall time of the call in milliseconds
        retry_count: Retries performed (attempts - 1)
        from_cache: Whether the document came from the cache store
    """

    url: str
    success: bool
    document: ScrapedDocument | None = None
    error: str | None = None
    execution_time_ms: int = 0
    retry_count: int = 0
    from_cache: bool = False
