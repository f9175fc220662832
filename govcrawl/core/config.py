"""Configuration module for the govcrawl crawl engine.

Provides Pydantic-based configuration management with environment variable support
and field validation. Defaults mirror the politeness policy agreed with the
portal operators: one request per second, a burst of three, and a five second
cooldown once the burst is spent.

Example:
    >>> from govcrawl.core.config import Settings
    >>> settings = Settings(base_url="https://v04.krds.go.kr")
    >>> print(settings.requests_per_second)
    1.0
"""

import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://v04.krds.go.kr"
DEFAULT_USER_AGENT = "krds-mcp-server"
DEFAULT_BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_ACCEPT_LANGUAGE = "ko-KR,ko;q=0.9,en;q=0.8"

# Error message fragments that mark a failure as transient
DEFAULT_RETRYABLE_ERRORS = (
    "timeouterror",
    "protocolerror",
    "networkerror",
    "econnreset",
    "enotfound",
    "etimedout",
    "timeout",
    "net::err_connection",
)

# Server errors that a retry will not fix
DEFAULT_NON_RETRYABLE_STATUS_CODES = (400, 401, 403, 404, 405, 410, 501, 505)

CACHE_BACKENDS = {"memory", "redis"}


class Settings(BaseSettings):
    """Crawl engine configuration.

    Attributes:
        base_url: Seed URL and domain scope for crawling
        user_agent: Product token used for robots.txt matching and fetches
        browser_user_agent: User-Agent header sent by the page renderer
        accept_language: Accept-Language header sent by the page renderer
        requests_per_second: Sustained request rate per identifier
        burst_limit: Requests allowed inside one second before cooldown
        cooldown_seconds: Cooldown length once the burst budget is spent
        default_crawl_delay: Crawl delay (seconds) when robots.txt has none
        robots_cache_ttl: Seconds a parsed robots.txt stays cached
        robots_timeout: Timeout for robots.txt fetches in seconds
        respect_robots_txt: Default robots.txt compliance for crawls
        retry_base_delay: First retry backoff delay in seconds
        backoff_multiplier: Multiplier applied per retry
        max_retry_delay: Upper bound on a single backoff delay
        page_cache_ttl: Seconds scraped documents stay in the cache
        cache_backend: "memory" or "redis"
        cache_max_entries: Entry bound for the memory cache
        redis_url: Redis connection URL for the redis cache backend
        headless: Run the browser without a window
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Rotating log file path

    Raises:
        ValidationError: If values are invalid
    """

    base_url: str = DEFAULT_BASE_URL
    user_agent: str = DEFAULT_USER_AGENT
    browser_user_agent: str = DEFAULT_BROWSER_USER_AGENT
    accept_language: str = DEFAULT_ACCEPT_LANGUAGE

    # Rate limiting
    requests_per_second: float = 1.0
    burst_limit: int = 3
    cooldown_seconds: float = 5.0

    # robots.txt
    default_crawl_delay: float = 1.0
    robots_cache_ttl: float = 86400.0
    robots_timeout: float = 5.0
    respect_robots_txt: bool = True

    # Retry
    retry_base_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_retry_delay: float = 30.0

    # Cache
    page_cache_ttl: int = 1800
    cache_backend: str = "memory"
    cache_max_entries: int = 1000
    redis_url: str = "redis://localhost:6379"

    # Renderer
    headless: bool = True

    # Logging
    log_level: str = "INFO"
    log_file: Path = Path(".cache/govcrawl.log")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    @field_validator("requests_per_second", "robots_cache_ttl")
    @classmethod
    def validate_positive_float(cls: type["Settings"], v: float) -> float:
        """Validate rate and TTL values are positive.

        Args:
            cls: The Settings class (provided by Pydantic)
            v: Value to validate

        Returns:
            Validated value

        Raises:
            ValueError: If the value is not positive
        """
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("burst_limit", "cache_max_entries", "page_cache_ttl")
    @classmethod
    def validate_positive_int(cls: type["Settings"], v: int) -> int:
        """Validate counters are positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator(
        "cooldown_seconds",
        "default_crawl_delay",
        "robots_timeout",
        "retry_base_delay",
        "max_retry_delay",
    )
    @classmethod
    def validate_non_negative(cls: type["Settings"], v: float) -> float:
        """Validate delays are not negative."""
        if v < 0:
            raise ValueError("delay must not be negative")
        return v

    @field_validator("backoff_multiplier")
    @classmethod
    def validate_backoff_multiplier(cls: type["Settings"], v: float) -> float:
        """Validate the backoff multiplier does not shrink delays.

        Args:
            cls: The Settings class (provided by Pydantic)
            v: Backoff multiplier

        Returns:
            Validated multiplier

        Raises:
            ValueError: If the multiplier is below 1
        """
        if v < 1:
            raise ValueError("backoff_multiplier must be at least 1")
        return v

    @field_validator("cache_backend")
    @classmethod
    def validate_cache_backend(cls: type["Settings"], v: str) -> str:
        """Validate the cache backend name."""
        normalized = v.lower()
        if normalized not in CACHE_BACKENDS:
            raise ValueError(f"cache_backend must be one of {sorted(CACHE_BACKENDS)}")
        return normalized

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls: type["Settings"], v: str) -> str:
        """Validate the log level is a known logging level name."""
        normalized = v.upper()
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"Unknown log level: {v}")
        return normalized
