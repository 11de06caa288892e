from typing import Iterable, Protocol

import structlog

logger = structlog.get_logger(__name__)

# Read-cache namespaces touched by a pipeline write
PIPELINE_CACHE_PATTERNS = ("articles:*", "analytics:*", "categories:*", "sources:*")
CLEANUP_CACHE_PATTERNS = ("analytics:*", "articles:stats:*")


class PatternCache(Protocol):
    async def invalidate(self, pattern: str) -> int: ...


class CacheInvalidator:
    """Best-effort invalidation; a stale cache is tolerated, a failed pipeline is not."""

    def __init__(self, cache: PatternCache):
        self.cache = cache

    async def invalidate(self, patterns: Iterable[str]) -> int:
        cleared = 0
        for pattern in patterns:
            try:
                removed = await self.cache.invalidate(pattern)
            except Exception as e:
                logger.warning("Cache invalidation failed", pattern=pattern, error=str(e))
                continue
            cleared += removed or 0
            logger.debug("Cache pattern invalidated", pattern=pattern, removed=removed)
        return cleared
