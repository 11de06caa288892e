"""
Read-through cache backends.
get/set failures degrade to a cache miss; invalidate works on glob patterns.
"""

import fnmatch
import json
import time
from typing import Any, Dict, Optional, Tuple

import structlog
from redis import asyncio as aioredis
from redis.exceptions import RedisError

logger = structlog.get_logger(__name__)


def generate_key(namespace: str, *parts: Any) -> str:
    return ":".join([namespace, *(str(part) for part in parts)])


class InMemoryCache:
    """Process-local cache used when Redis is not configured"""

    def __init__(self, key_prefix: str = "", clock=time.monotonic):
        self.key_prefix = key_prefix
        self._entries: Dict[str, Tuple[float, str]] = {}
        self._clock = clock

    @property
    def backend(self) -> str:
        return "memory"

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(self.key_prefix + key)
        if entry is None:
            return None
        expires_at, payload = entry
        if expires_at <= self._clock():
            self._entries.pop(self.key_prefix + key, None)
            return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl_seconds: int = 3600) -> bool:
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.warning("Cache set failed", key=key, error=str(e))
            return False
        self._entries[self.key_prefix + key] = (self._clock() + ttl_seconds, payload)
        return True

    async def invalidate(self, pattern: str) -> int:
        full_pattern = self.key_prefix + pattern
        keys = [key for key in self._entries if fnmatch.fnmatchcase(key, full_pattern)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def close(self) -> None:
        self._entries.clear()


class RedisCache:
    """Redis-backed cache storing JSON values with SETEX"""

    def __init__(self, url: str, key_prefix: str = "", client: Optional[aioredis.Redis] = None):
        self.key_prefix = key_prefix
        self.client = client or aioredis.from_url(url, decode_responses=True)

    @property
    def backend(self) -> str:
        return "redis"

    async def get(self, key: str) -> Optional[Any]:
        try:
            cached = await self.client.get(self.key_prefix + key)
            return json.loads(cached) if cached else None
        except (RedisError, ValueError) as e:
            logger.warning("Cache get failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int = 3600) -> bool:
        try:
            await self.client.setex(self.key_prefix + key, ttl_seconds, json.dumps(value, default=str))
            return True
        except (RedisError, TypeError, ValueError) as e:
            logger.warning("Cache set failed", key=key, error=str(e))
            return False

    async def invalidate(self, pattern: str) -> int:
        keys = [key async for key in self.client.scan_iter(match=self.key_prefix + pattern)]
        if keys:
            await self.client.delete(*keys)
        return len(keys)

    async def purge_expired(self) -> int:
        # Redis expires keys itself
        return 0

    async def close(self) -> None:
        await self.client.aclose()
