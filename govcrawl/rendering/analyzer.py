"""DOM heuristics over rendered HTML.

``PageAnalyzer`` wraps a BeautifulSoup tree of a rendered page and answers the
questions the crawler and fetch executor ask: the page title, breadcrumb, page
type, structural metadata, outgoing links, the next pagination link, and the
extracted document. Selectors target the KRDS portal markup.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from urllib.parse import unquote, urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from govcrawl.core.urls import generate_node_id
from govcrawl.rendering.language import LanguageDetector, contains_hangul
from govcrawl.services.models import (
    AttachmentRef,
    DocumentMetadata,
    ImageRef,
    PageMetadata,
    PageType,
    ScrapedDocument,
    ScrapeOptions,
)

logger = logging.getLogger(__name__)

TITLE_SELECTORS = ("title", "h1", ".title", ".page-title")
CONTENT_TITLE_SELECTOR = "h1, .title, .page-title, .content-title"
KOREAN_TITLE_SELECTOR = '[lang="ko"], .title-ko, .korean-title'
BREADCRUMB_SELECTOR = ".breadcrumb, .path"
PAGINATION_SELECTOR = ".pagination, .paging"
BODY_SELECTOR = ".content, .body, .main-content, article, .article-content"
CONTENT_LENGTH_SELECTOR = ".content, .body, .main-content, article"
DATE_SELECTOR = ".date, .created-date, .publish-date, time"
CATEGORY_SELECTOR = ".category, .section, .department"
ATTACHMENT_SELECTOR = (
    'a[href*=".pdf"], a[href*=".doc"], a[href*=".xls"], .attachment-list a'
)
IMAGE_SELECTOR = ".content img, article img, .main-content img"

LIST_SELECTOR = ".board-list, .list, .data-list, table.board-table"
SEARCH_SELECTOR = '.search-form, #search-form, [name*="search"]'
NAVIGATION_SELECTOR = "nav, .menu, .category-list"
ARTICLE_SELECTOR = "article, .article-content, .content"
HOMEPAGE_PATHS = {"/", "/index.html", "/main.html"}

NEXT_PAGE_LABELS = {"다음", "다음 페이지", "next", "›", "»", ">"}
MAX_CONTENT_LENGTH = 1_000_000
MAX_KEYWORDS = 20
KEYWORD_STOPWORDS = {
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
}

KEYWORD_TOKEN = re.compile(r"[가-힣]+|[a-zA-Z][a-zA-Z0-9]*")
DATE_PATTERN = re.compile(
    r"(?P<year>\d{4})\s*(?:[.\-/]|년)\s*(?P<month>\d{1,2})\s*(?:[.\-/]|월)\s*(?P<day>\d{1,2})"
)


def _text(element: Tag | None) -> str:
    if element is None:
        return ""
    return element.get_text(" ", strip=True)


def _resolve(base: str, href: str) -> str | None:
    """Resolve href against base, or None when urljoin cannot parse it."""
    try:
        return urljoin(base, href)
    except ValueError:
        return None


def parse_date(text: str | None) -> datetime | None:
    """Parse a page date such as "2024-01-15", "2024.01.15" or "2024년 1월 15일".

    ISO 8601 timestamps are tried first. Returns None when nothing parses.
    """
    if not text:
        return None
    candidate = text.strip()
    try:
        return datetime.fromisoformat(candidate.replace("Z", "+00:00"))
    except ValueError:
        pass

    match = DATE_PATTERN.search(candidate)
    if match is None:
        return None
    try:
        return datetime(
            int(match.group("year")), int(match.group("month")), int(match.group("day"))
        )
    except ValueError:
        logger.debug("Ignoring invalid date: %r", candidate)
        return None


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Return up to limit unique keywords from Hangul and Latin tokens.

    Hangul tokens of two or more syllables and Latin tokens longer than two
    letters are kept, in order of first appearance, lower-cased.
    """
    keywords: list[str] = []
    seen: set[str] = set()
    for token in KEYWORD_TOKEN.findall(text or ""):
        word = token.lower()
        if contains_hangul(word):
            if len(word) < 2:
                continue
        elif len(word) <= 2 or word in KEYWORD_STOPWORDS:
            continue
        if word in seen:
            continue
        seen.add(word)
        keywords.append(word)
        if len(keywords) >= limit:
            break
    return keywords


class PageAnalyzer:
    """Heuristic reader for one rendered page.

    Args:
        html: Rendered document HTML, or an already parsed tree
        url: Page URL used to resolve relative links
        language_detector: Optional detector (default: LanguageDetector())
    """

    def __init__(
        self,
        html: str | BeautifulSoup,
        url: str,
        language_detector: LanguageDetector | None = None,
    ) -> None:
        self.url = url
        if isinstance(html, BeautifulSoup):
            self.soup = html
        else:
            self.soup = BeautifulSoup(html or "", "html.parser")
        self._language_detector = language_detector or LanguageDetector()

    def title(self) -> str:
        """Return the first non-empty of title, h1, .title, .page-title, else "Untitled"."""
        for selector in TITLE_SELECTORS:
            text = _text(self.soup.select_one(selector))
            if text:
                return text
        return "Untitled"

    def korean_title(self) -> str | None:
        """Return the Korean-language title element's text when it contains Hangul."""
        text = _text(self.soup.select_one(KOREAN_TITLE_SELECTOR))
        return text if contains_hangul(text) else None

    def breadcrumb(self) -> list[str]:
        container = self.soup.select_one(BREADCRUMB_SELECTOR)
        if container is None:
            return []
        return [text for item in container.select("a, span") if (text := _text(item))]

    def page_type(self, location: str | None = None) -> PageType:
        """Classify the page.

        Checks run in priority order: homepage path, list markup, search
        markup or URL, navigation without article content, else content.

        Args:
            location: Final page URL after redirects (defaults to the analyzer URL)
        """
        location = location or self.url
        path = urlsplit(location).path or "/"
        if path in HOMEPAGE_PATHS:
            return PageType.HOMEPAGE

        if self.soup.select_one(LIST_SELECTOR) is not None:
            return PageType.LIST

        decoded = unquote(location).lower()
        if (
            self.soup.select_one(SEARCH_SELECTOR) is not None
            or "search" in decoded
            or "검색" in decoded
        ):
            return PageType.SEARCH

        if (
            self.soup.select_one(NAVIGATION_SELECTOR) is not None
            and self.soup.select_one(ARTICLE_SELECTOR) is None
        ):
            return PageType.CATEGORY

        return PageType.CONTENT

    def content_length(self) -> int:
        element = self.soup.select_one(CONTENT_LENGTH_SELECTOR)
        return len(element.get_text()) if element is not None else 0

    def metadata(self) -> PageMetadata:
        """Collect structural metadata for a navigation node."""
        body = self.soup.body or self.soup
        category = _text(self.soup.select_one(CATEGORY_SELECTOR)) or None
        return PageMetadata(
            breadcrumb=self.breadcrumb(),
            category=category,
            last_modified=self._page_date(),
            content_length=self.content_length(),
            has_images=self.soup.find("img") is not None,
            has_attachments=self.soup.select_one(ATTACHMENT_SELECTOR) is not None,
            has_table=self.soup.find("table") is not None,
            language=self._language_detector.detect(body.get_text(" ")).language,
        )

    def links(self) -> list[str]:
        """Return every anchor href resolved to an absolute http(s) URL, in page order."""
        urls: list[str] = []
        for anchor in self.soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not href or href.startswith("#"):
                continue
            resolved = _resolve(self.url, href)
            if resolved is not None and resolved.startswith(("http://", "https://")):
                urls.append(resolved)
        return urls

    def next_page_url(self) -> str | None:
        """Return the absolute URL of the next pagination page, if any."""
        candidates: list[Tag] = list(self.soup.select('a[rel="next"], link[rel="next"]'))
        pagination = self.soup.select_one(PAGINATION_SELECTOR)
        if pagination is not None:
            candidates.extend(pagination.select("a.next, a.btn-next, .next a"))
            candidates.extend(
                anchor
                for anchor in pagination.find_all("a")
                if _text(anchor).lower() in NEXT_PAGE_LABELS
                or (anchor.get("title") or "").strip().lower() in NEXT_PAGE_LABELS
            )

        for candidate in candidates:
            href = (candidate.get("href") or "").strip()
            if not href or href.startswith(("#", "javascript:")):
                continue
            resolved = _resolve(self.url, href)
            if resolved is not None and resolved != self.url:
                return resolved
        return None

    def tables(self) -> list[list[list[str]]]:
        """Return every table as rows of cell texts, skipping empty rows."""
        tables: list[list[list[str]]] = []
        for table in self.soup.find_all("table"):
            rows = []
            for row in table.find_all("tr"):
                cells = [_text(cell) for cell in row.find_all(["th", "td"])]
                if any(cells):
                    rows.append(cells)
            if rows:
                tables.append(rows)
        return tables

    def extract_document(self, options: ScrapeOptions | None = None) -> ScrapedDocument:
        """Extract a ScrapedDocument from the page.

        Args:
            options: Controls images, attachments, tables and keyword extraction

        Returns:
            ScrapedDocument whose id is stable for the page URL
        """
        options = options or ScrapeOptions()

        title = _text(self.soup.select_one(CONTENT_TITLE_SELECTOR)) or self.title()
        content_element = self.soup.select_one(BODY_SELECTOR) or self.soup.body or self.soup
        content = content_element.get_text(" ", strip=True)
        if len(content) > MAX_CONTENT_LENGTH:
            content = content[:MAX_CONTENT_LENGTH] + "..."

        category = _text(self.soup.select_one(CATEGORY_SELECTOR)) or "general"
        language = self._language_detector.detect(f"{title} {content}").language

        metadata = DocumentMetadata(
            publication_date=self._page_date(),
            keywords=extract_keywords(content) if options.process_korean_text else [],
            language=language,
            classification=category,
        )

        return ScrapedDocument(
            id=generate_node_id(self.url),
            title=title,
            url=self.url,
            category=category,
            content=content,
            metadata=metadata,
            images=self._images() if options.include_images else [],
            attachments=self._attachments() if options.include_attachments else [],
            tables=self.tables() if options.extract_tables else [],
        )

    def _page_date(self) -> datetime | None:
        element = self.soup.select_one(DATE_SELECTOR)
        if element is None:
            return None
        return parse_date(element.get("datetime") or _text(element))

    def _images(self) -> list[ImageRef]:
        images = []
        for index, img in enumerate(self.soup.select(IMAGE_SELECTOR)):
            src = (img.get("src") or "").strip()
            url = _resolve(self.url, src) if src else ""
            if url is None:
                continue
            extension = urlsplit(url).path.rsplit(".", 1)
            images.append(
                ImageRef(
                    id=f"img-{index}",
                    url=url,
                    alt=img.get("alt") or "",
                    width=_int_attr(img, "width"),
                    height=_int_attr(img, "height"),
                    format=extension[1].lower() if len(extension) == 2 else "unknown",
                )
            )
        return images

    def _attachments(self) -> list[AttachmentRef]:
        attachments = []
        for index, link in enumerate(self.soup.select(ATTACHMENT_SELECTOR)):
            text = _text(link)
            attachments.append(
                AttachmentRef(
                    id=f"att-{index}",
                    filename=text or f"attachment-{index}",
                    url=_resolve(self.url, (link.get("href") or "").strip()) or "",
                    description=link.get("title") or text,
                )
            )
        return attachments


def _int_attr(element: Tag, name: str) -> int:
    try:
        return int(str(element.get(name, "0")).strip().rstrip("px"))
    except ValueError:
        return 0
