import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from src.news.providers.cache import InMemoryCache, RedisCache, generate_key
from src.news.services.cache_invalidator import CLEANUP_CACHE_PATTERNS, PIPELINE_CACHE_PATTERNS, CacheInvalidator


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache"""

    def __init__(self):
        self.data = {}
        self.closed = False

    async def get(self, key):
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self.data[key] = value

    async def scan_iter(self, match=None):
        import fnmatch
        for key in list(self.data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)
        return len(keys)

    async def aclose(self):
        self.closed = True


class TestInMemoryCache:
    @pytest.mark.asyncio
    async def test_round_trip_and_expiry(self):
        clock = FakeClock()
        cache = InMemoryCache(clock=clock)

        assert await cache.set("articles:1", {"title": "Hello"}, ttl_seconds=60)
        assert await cache.get("articles:1") == {"title": "Hello"}

        clock.now += 61
        assert await cache.get("articles:1") is None

    @pytest.mark.asyncio
    async def test_purge_expired_counts_removed_entries(self):
        clock = FakeClock()
        cache = InMemoryCache(clock=clock)
        await cache.set("a", 1, ttl_seconds=10)
        await cache.set("b", 2, ttl_seconds=100)

        clock.now += 50

        assert await cache.purge_expired() == 1
        assert await cache.purge_expired() == 0
        assert await cache.get("b") == 2

    @pytest.mark.asyncio
    async def test_invalidate_by_pattern(self):
        cache = InMemoryCache(key_prefix="news:")
        await cache.set("articles:1:20", [])
        await cache.set("articles:2:20", [])
        await cache.set("categories:counts", {})

        assert await cache.invalidate("articles:*") == 2
        assert await cache.get("categories:counts") == {}

    @pytest.mark.asyncio
    async def test_unserializable_value_is_not_cached(self):
        cache = InMemoryCache()
        circular = {}
        circular["self"] = circular

        assert await cache.set("bad", circular) is False
        assert await cache.get("bad") is None


class TestRedisCache:
    @pytest.mark.asyncio
    async def test_set_get_and_invalidate(self):
        client = FakeRedis()
        cache = RedisCache("redis://localhost:6379/0", key_prefix="news:", client=client)

        await cache.set("articles:1", {"id": "1"}, ttl_seconds=300)
        await cache.set("analytics:summary", {"total": 3})

        assert "news:articles:1" in client.data
        assert await cache.get("articles:1") == {"id": "1"}
        assert await cache.invalidate("articles:*") == 1
        assert await cache.get("articles:1") is None
        assert await cache.get("analytics:summary") == {"total": 3}

    @pytest.mark.asyncio
    async def test_errors_degrade_to_miss(self):
        client = MagicMock()
        client.get = AsyncMock(side_effect=RedisConnectionError("refused"))
        client.setex = AsyncMock(side_effect=RedisConnectionError("refused"))
        cache = RedisCache("redis://localhost:6379/0", client=client)

        assert await cache.get("articles:1") is None
        assert await cache.set("articles:1", {"id": "1"}) is False

    @pytest.mark.asyncio
    async def test_close(self):
        client = FakeRedis()
        cache = RedisCache("redis://localhost:6379/0", client=client)

        await cache.close()

        assert client.closed


class TestCacheInvalidator:
    @pytest.mark.asyncio
    async def test_clears_pipeline_namespaces_only(self, memory_cache):
        await memory_cache.set("articles:1:20", [])
        await memory_cache.set("analytics:summary", {})
        await memory_cache.set("categories:counts", {})
        await memory_cache.set("session:abc", {})

        cleared = await CacheInvalidator(memory_cache).invalidate(PIPELINE_CACHE_PATTERNS)

        assert cleared == 3
        assert await memory_cache.get("session:abc") == {}

    @pytest.mark.asyncio
    async def test_cleanup_patterns_keep_listings(self, memory_cache):
        await memory_cache.set("articles:1:20", [])
        await memory_cache.set("articles:stats:daily", {})
        await memory_cache.set("analytics:summary", {})

        cleared = await CacheInvalidator(memory_cache).invalidate(CLEANUP_CACHE_PATTERNS)

        assert cleared == 2
        assert await memory_cache.get("articles:1:20") == []

    @pytest.mark.asyncio
    async def test_pattern_failure_is_skipped(self):
        cache = MagicMock()
        cache.invalidate = AsyncMock(side_effect=[RedisConnectionError("down"), 3, 0, 1])

        cleared = await CacheInvalidator(cache).invalidate(PIPELINE_CACHE_PATTERNS)

        assert cleared == 4
        assert cache.invalidate.await_count == 4


def test_generate_key():
    assert generate_key("articles", 1, 20, "all") == "articles:1:20:all"
