"""Unit tests for the memory and Redis cache stores."""

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from govcrawl.cache import MemoryCacheStore, RedisCacheStore, create_cache_store
from govcrawl.core.config import Settings
from tests.fakes import FakeClock


class TestMemoryCacheStore:
    @pytest.mark.asyncio
    async def test_set_and_get(self, fake_clock: FakeClock) -> None:
        store = MemoryCacheStore(clock=fake_clock)

        await store.set("page", {"title": "홈"}, ttl=60)
        entry = await store.get("page")

        assert entry is not None
        assert entry.value == {"title": "홈"}
        assert entry.created_at == 1000.0
        assert entry.expires_at == 1060.0

    @pytest.mark.asyncio
    async def test_entry_expires(self, fake_clock: FakeClock) -> None:
        store = MemoryCacheStore(clock=fake_clock)

        await store.set("page", "value", ttl=10)
        fake_clock.advance(10)

        assert await store.get("page") is None
        assert store.stats().size == 0

    @pytest.mark.asyncio
    async def test_default_ttl(self, fake_clock: FakeClock) -> None:
        store = MemoryCacheStore(default_ttl=5, clock=fake_clock)

        await store.set("page", "value")
        fake_clock.advance(4)
        assert await store.get("page") is not None
        fake_clock.advance(1)
        assert await store.get("page") is None

    @pytest.mark.asyncio
    async def test_lru_eviction(self, fake_clock: FakeClock) -> None:
        store = MemoryCacheStore(max_entries=2, clock=fake_clock)

        await store.set("a", 1)
        await store.set("b", 2)
        await store.get("a")
        await store.set("c", 3)

        assert await store.get("b") is None
        assert (await store.get("a")).value == 1
        assert (await store.get("c")).value == 3
        assert store.stats().evictions == 1

    @pytest.mark.asyncio
    async def test_stats_and_hit_rate(self, fake_clock: FakeClock) -> None:
        store = MemoryCacheStore(clock=fake_clock)

        await store.set("a", 1)
        await store.get("a")
        await store.get("a")
        await store.get("missing")

        stats = store.stats()
        assert (stats.hits, stats.misses, stats.size) == (2, 1, 1)
        assert stats.hit_rate == pytest.approx(2 / 3)

    @pytest.mark.asyncio
    async def test_delete_clear_and_purge(self, fake_clock: FakeClock) -> None:
        store = MemoryCacheStore(clock=fake_clock)

        await store.set("short", 1, ttl=1)
        await store.set("long", 2, ttl=100)
        fake_clock.advance(2)

        assert await store.purge_expired() == 1
        assert await store.delete("long") is True
        assert await store.delete("long") is False

        await store.set("again", 3)
        await store.clear()
        assert store.stats().size == 0

    def test_max_entries_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            MemoryCacheStore(max_entries=0)


def _redis_store(client: AsyncMock, clock: FakeClock) -> RedisCacheStore:
    return RedisCacheStore(client=client, default_ttl=1800, clock=clock)


class TestRedisCacheStore:
    @pytest.mark.asyncio
    async def test_set_writes_envelope_with_expiry(self, fake_clock: FakeClock) -> None:
        client = AsyncMock()
        store = _redis_store(client, fake_clock)

        await store.set("page", {"title": "홈"}, ttl=90.5)

        key, payload = client.set.await_args.args
        assert key == "govcrawl:cache:page"
        assert client.set.await_args.kwargs == {"ex": 90}
        envelope = json.loads(payload)
        assert envelope == {"value": {"title": "홈"}, "expires_at": 1090.5, "created_at": 1000.0}

    @pytest.mark.asyncio
    async def test_get_decodes_envelope(self, fake_clock: FakeClock) -> None:
        client = AsyncMock()
        client.get.return_value = json.dumps(
            {"value": [1, 2], "expires_at": 2000.0, "created_at": 900.0}
        )
        store = _redis_store(client, fake_clock)

        entry = await store.get("page")

        client.get.assert_awaited_once_with("govcrawl:cache:page")
        assert entry is not None
        assert entry.value == [1, 2]
        assert entry.expires_at == 2000.0

    @pytest.mark.asyncio
    async def test_get_miss_and_expired(self, fake_clock: FakeClock) -> None:
        client = AsyncMock()
        client.get.return_value = None
        store = _redis_store(client, fake_clock)
        assert await store.get("page") is None

        client.get.return_value = json.dumps({"value": 1, "expires_at": 999.0})
        assert await store.get("page") is None

    @pytest.mark.asyncio
    async def test_malformed_entry_is_deleted(self, fake_clock: FakeClock) -> None:
        client = AsyncMock()
        client.get.return_value = b"{not json"
        store = _redis_store(client, fake_clock)

        assert await store.get("page") is None
        client.delete.assert_awaited_once_with("govcrawl:cache:page")

    @pytest.mark.asyncio
    async def test_redis_errors_degrade_to_miss(self, fake_clock: FakeClock) -> None:
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("down")
        client.set.side_effect = RedisConnectionError("down")
        client.ping.side_effect = RedisConnectionError("down")
        store = _redis_store(client, fake_clock)

        assert await store.get("page") is None
        await store.set("page", "value")
        assert await store.is_available() is False

    @pytest.mark.asyncio
    async def test_clear_scans_prefix(self, fake_clock: FakeClock) -> None:
        client = AsyncMock()
        client.scan.side_effect = [
            (7, ["govcrawl:cache:a", "govcrawl:cache:b"]),
            (0, []),
        ]
        store = _redis_store(client, fake_clock)

        await store.clear()

        assert client.scan.await_count == 2
        assert client.scan.await_args_list[0].kwargs["match"] == "govcrawl:cache:*"
        client.delete.assert_awaited_once_with("govcrawl:cache:a", "govcrawl:cache:b")

    @pytest.mark.asyncio
    async def test_aclose(self, fake_clock: FakeClock) -> None:
        client = AsyncMock()
        await _redis_store(client, fake_clock).aclose()
        client.aclose.assert_awaited_once()


class TestCreateCacheStore:
    def test_memory_backend(self) -> None:
        store = create_cache_store(Settings(cache_max_entries=10, page_cache_ttl=60))

        assert isinstance(store, MemoryCacheStore)
        assert store.max_entries == 10
        assert store.default_ttl == 60

    def test_redis_backend(self) -> None:
        store = create_cache_store(
            Settings(cache_backend="redis", redis_url="redis://localhost:6390/1")
        )
        assert isinstance(store, RedisCacheStore)
