"""URL utilities shared by the crawler, fetcher and politeness governor.

Normalization defines URL identity for a crawl session: two URLs that
normalize to the same string are the same page. The rules are:

- relative and protocol-relative references resolve against the base URL
- scheme and host are lower-cased, default ports are dropped
- fragments are dropped
- an empty path becomes "/", any other trailing slash is removed
"""

from __future__ import annotations

import base64
import hashlib
import json
import re
from typing import Any
from urllib.parse import urljoin, urlsplit, urlunsplit

ALLOWED_SCHEMES = {"http", "https"}
DEFAULT_PORTS = {"http": 80, "https": 443}

# Cloud metadata hostnames are never crawl targets
BLOCKED_HOSTNAMES = {
    "metadata.google.internal",
    "metadata",
}


def validate_url(url: str) -> bool:
    """Check that url is an absolute http(s) URL with a usable hostname.

    Args:
        url: URL to validate

    Returns:
        True if the URL can be fetched, False otherwise

    Examples:
        >>> validate_url("https://v04.krds.go.kr/")
        True
        >>> validate_url("ftp://example.com/file")
        False
        >>> validate_url("not-a-url")
        False
    """
    try:
        parsed = urlsplit(url)
    except ValueError:
        return False

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return False

    hostname = parsed.hostname
    if not hostname:
        return False

    return hostname.lower() not in BLOCKED_HOSTNAMES


def normalize_url(url: str, base_url: str | None = None) -> str:
    """Normalize url, resolving it against base_url when relative.

    Args:
        url: Absolute or relative URL
        base_url: Base for relative references

    Returns:
        Normalized absolute URL. Unparseable input is returned stripped.
    """
    candidate = url.strip()
    try:
        if candidate.startswith("//"):
            candidate = f"https:{candidate}"
        elif base_url and not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*:", candidate):
            candidate = urljoin(base_url, candidate)
        parsed = urlsplit(candidate)
        port = parsed.port
    except ValueError:
        return candidate

    scheme = parsed.scheme.lower()
    hostname = (parsed.hostname or "").lower()
    if not scheme or not hostname:
        return candidate

    netloc = hostname
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{hostname}:{port}"

    path = parsed.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"

    return urlunsplit((scheme, netloc, path, parsed.query, ""))


def origin_of(url: str) -> str:
    """Return scheme://host[:port] for url.

    Raises:
        ValueError: If url has no scheme or host
    """
    parsed = urlsplit(normalize_url(url))
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"URL has no origin: {url}")
    return f"{parsed.scheme}://{parsed.netloc}"


def path_with_query(url: str) -> str:
    """Return the path plus query string used for robots.txt matching."""
    parsed = urlsplit(url)
    path = parsed.path or "/"
    if parsed.query:
        return f"{path}?{parsed.query}"
    return path


def _site_host(hostname: str) -> str:
    hostname = hostname.lower()
    return hostname[4:] if hostname.startswith("www.") else hostname


def is_same_site(url: str, base_url: str) -> bool:
    """Check whether url belongs to the site rooted at base_url.

    The base host and any of its subdomains count as in-domain; a leading
    "www." is ignored on both sides.

    Args:
        url: Candidate URL
        base_url: Crawl seed URL

    Returns:
        True if url is in-domain
    """
    try:
        host = urlsplit(url).hostname
        base_host = urlsplit(base_url).hostname
    except ValueError:
        return False
    if not host or not base_host:
        return False

    host = _site_host(host)
    base_host = _site_host(base_host)
    return host == base_host or host.endswith(f".{base_host}")


def generate_cache_key(
    prefix: str, url: str, options: dict[str, Any] | None = None
) -> str:
    """Build a cache key for url, varying with the options that shape the result.

    Args:
        prefix: Key namespace such as "page"
        url: Normalized URL
        options: Options affecting the cached value

    Returns:
        Stable cache key string
    """
    base_key = f"govcrawl:{prefix}:{url}"
    if not options:
        return base_key

    options_json = json.dumps(options, sort_keys=True, default=str)
    options_hash = hashlib.sha256(options_json.encode("utf-8")).hexdigest()[:12]
    return f"{base_key}:{options_hash}"


def generate_node_id(url: str) -> str:
    """Generate a readable, collision-resistant node id from a normalized URL.

    The readable part is the path segments joined by "-" ("home" for the root);
    an 8 character SHA256 suffix keeps ids unique per URL.

    Examples:
        >>> generate_node_id("https://v04.krds.go.kr/guide/intro")[:11]
        'guide-intro'
    """
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:8]
    try:
        segments = [s for s in urlsplit(url).path.split("/") if s]
    except ValueError:
        fallback = base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii")
        return f"{fallback[:10]}-{digest}"

    slug = "-".join(segments) if segments else "home"
    slug = re.sub(r"[^\w.-]+", "-", slug)[:80]
    return f"{slug}-{digest}"
