"""Redis-backed cache store shared across processes."""

from __future__ import annotations

import inspect
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from govcrawl.core.interfaces import CacheEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_PREFIX = "govcrawl:cache:"
DEFAULT_TTL_SECONDS = 1800
SCAN_BATCH_SIZE = 500

REDIS_ERRORS = (RedisError, ConnectionError, TimeoutError, OSError)


class RedisCacheStore:
    """Cache store keeping JSON envelopes in Redis.

    Each value is stored as ``{"value", "expires_at", "created_at"}`` with a
    native Redis expiry. Redis failures are logged and reported as misses so
    that a cache outage never fails a fetch.

    Args:
        redis_url: Redis connection URL
        default_ttl: TTL in seconds when ``set`` gets none
        key_prefix: Namespace prepended to every key
        client: Optional pre-built client (tests pass a mock)
        clock: Wall clock returning epoch seconds
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        default_ttl: float = DEFAULT_TTL_SECONDS,
        key_prefix: str = KEY_PREFIX,
        client: redis.Redis | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.default_ttl = default_ttl
        self.key_prefix = key_prefix
        self._client: redis.Redis = client or redis.from_url(
            redis_url, decode_responses=True
        )
        self._clock = clock

    async def _await(self, result: Awaitable[T] | T) -> T:
        if inspect.isawaitable(result):
            return await result
        return result

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def is_available(self) -> bool:
        """Check if Redis is reachable."""
        try:
            await self._await(self._client.ping())
            return True
        except REDIS_ERRORS:
            logger.warning("Redis is unavailable - cache operations will be degraded")
            return False

    async def get(self, key: str) -> CacheEntry | None:
        try:
            raw = await self._await(self._client.get(self._key(key)))
        except REDIS_ERRORS as exc:
            logger.warning("Cache read failed, treating as miss: %s", exc, extra={"key": key})
            return None
        if raw is None:
            return None

        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            envelope = json.loads(raw)
            entry = CacheEntry(
                value=envelope["value"],
                expires_at=float(envelope["expires_at"]),
                created_at=float(envelope.get("created_at", 0.0)),
            )
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding malformed cache entry: %s", exc, extra={"key": key})
            await self.delete(key)
            return None

        if self._clock() >= entry.expires_at:
            return None
        return entry

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = ttl if ttl is not None else self.default_ttl
        now = self._clock()
        payload = json.dumps(
            {"value": value, "expires_at": now + ttl, "created_at": now},
            ensure_ascii=False,
        )
        try:
            await self._await(
                self._client.set(self._key(key), payload, ex=max(int(ttl), 1))
            )
        except REDIS_ERRORS as exc:
            logger.warning("Cache write failed: %s", exc, extra={"key": key})

    async def delete(self, key: str) -> bool:
        try:
            removed = await self._await(self._client.delete(self._key(key)))
        except REDIS_ERRORS as exc:
            logger.warning("Cache delete failed: %s", exc, extra={"key": key})
            return False
        return bool(removed)

    async def clear(self) -> None:
        """Delete every key under this store's prefix."""
        cursor = 0
        try:
            while True:
                cursor, keys = await self._await(
                    self._client.scan(
                        cursor=cursor, match=f"{self.key_prefix}*", count=SCAN_BATCH_SIZE
                    )
                )
                if keys:
                    await self._await(self._client.delete(*keys))
                if not cursor:
                    break
        except REDIS_ERRORS as exc:
            logger.warning("Cache clear failed: %s", exc)

    async def aclose(self) -> None:
        await self._await(self._client.aclose())
