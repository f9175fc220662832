"""Cache stores for scraped documents."""

from govcrawl.cache.memory import CacheStats, MemoryCacheStore
from govcrawl.cache.redis_cache import RedisCacheStore
from govcrawl.core.config import Settings
from govcrawl.core.interfaces import CacheStore


def create_cache_store(settings: Settings) -> CacheStore:
    """Build the cache store selected by ``settings.cache_backend``."""
    if settings.cache_backend == "redis":
        return RedisCacheStore(
            redis_url=settings.redis_url, default_ttl=settings.page_cache_ttl
        )
    return MemoryCacheStore(
        max_entries=settings.cache_max_entries, default_ttl=settings.page_cache_ttl
    )


__all__ = [
    "CacheStats",
    "MemoryCacheStore",
    "RedisCacheStore",
    "create_cache_store",
]
