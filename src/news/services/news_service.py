"""
Read-only News Service for API endpoints
Serves stored articles and aggregates through the read-through cache.
Writes happen only in the pipeline and the cleanup job.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List

import structlog

from ...exceptions import ArticleNotFoundError
from ..providers.cache import generate_key
from ..schemas.requests import ArticleQuery

logger = structlog.get_logger(__name__)

TIMEFRAME_DAYS = {"1d": 1, "7d": 7, "30d": 30, "90d": 90}
TRENDS_TTL_SECONDS = 900


def window_start(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


def ranked(counts: Dict[str, int]) -> List[Dict[str, Any]]:
    """Name/count pairs, largest first, ties by name"""
    return [
        {"name": name, "count": count}
        for name, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    ]


class NewsService:
    """Cached reads over the article store"""

    def __init__(
        self,
        store: Any,
        cache: Any,
        ttl_articles: int = 300,
        ttl_categories: int = 3600,
        ttl_analytics: int = 1800,
    ):
        self.store = store
        self.cache = cache
        self.ttl_articles = ttl_articles
        self.ttl_categories = ttl_categories
        self.ttl_analytics = ttl_analytics

    async def _read_through(self, cache_key: str, ttl: int, load: Callable[[], Awaitable[Any]]) -> Any:
        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Served from cache", key=cache_key)
            return cached
        value = await load()
        await self.cache.set(cache_key, value, ttl)
        return value

    async def list_articles(self, query: ArticleQuery) -> Dict[str, Any]:
        """Filtered, paginated article listing"""

        async def load():
            articles = await self.store.query(query)
            total = await self.store.count(query)
            pages = math.ceil(total / query.limit) if total else 0
            return {
                "articles": articles,
                "pagination": {
                    "page": query.page,
                    "limit": query.limit,
                    "total": total,
                    "pages": pages,
                    "has_next": query.page < pages,
                    "has_prev": query.page > 1,
                },
            }

        return await self._read_through(generate_key("articles", *query.cache_parts()), self.ttl_articles, load)

    async def get_article(self, article_id: str) -> Dict[str, Any]:
        async def load():
            article = await self.store.get(article_id)
            if article is None:
                raise ArticleNotFoundError(article_id)
            return article

        return await self._read_through(generate_key("articles", "detail", article_id), self.ttl_articles, load)

    async def categories(self) -> Dict[str, Any]:
        """Article counts per category, largest first"""

        async def load():
            counts = await self.store.category_counts()
            return {"categories": ranked(counts), "total": sum(counts.values())}

        return await self._read_through(generate_key("categories", "counts"), self.ttl_categories, load)

    async def sources(self) -> Dict[str, Any]:
        """Article counts per source, largest first"""

        async def load():
            counts = await self.store.source_counts()
            return {"sources": ranked(counts), "total": sum(counts.values())}

        return await self._read_through(generate_key("sources", "counts"), self.ttl_categories, load)

    async def analytics_summary(self) -> Dict[str, Any]:
        async def load():
            by_category = await self.store.category_counts()
            return {
                "total_articles": sum(by_category.values()),
                "by_category": by_category,
                "by_source": await self.store.source_counts(),
                "enrichment_failures": await self.store.enrichment_failures(),
                "generated_at": datetime.now(timezone.utc).isoformat(),
            }

        return await self._read_through(generate_key("analytics", "summary"), self.ttl_analytics, load)

    async def analytics_overview(self, timeframe: str = "7d") -> Dict[str, Any]:
        """
        Totals by category, source and day for articles published within the timeframe.

        Args:
            timeframe: one of 1d, 7d, 30d, 90d
        """
        days = TIMEFRAME_DAYS[timeframe]

        async def load():
            since = window_start(days)
            window = await self.store.analytics(since)
            return {
                "timeframe": timeframe,
                "since": since.isoformat(),
                **window,
                "generated_at": datetime.now(timezone.utc).isoformat(),
            }

        return await self._read_through(generate_key("analytics", "overview", timeframe), self.ttl_analytics, load)

    async def trends(self, timeframe: str = "7d", limit: int = 10) -> Dict[str, Any]:
        """Category share of the timeframe, largest first, percentages to one decimal"""
        days = TIMEFRAME_DAYS[timeframe]

        async def load():
            window = await self.store.analytics(window_start(days))
            total = window["total_articles"]
            trends = [
                {
                    "category": item["name"],
                    "count": item["count"],
                    "percentage": round(item["count"] / total * 100, 1),
                }
                for item in ranked(window["by_category"])[:limit]
            ] if total else []
            return {"timeframe": timeframe, "trends": trends}

        return await self._read_through(
            generate_key("analytics", "trends", timeframe, limit), TRENDS_TTL_SECONDS, load
        )

    async def daily_counts(self, days: int = 30) -> Dict[str, Any]:
        """Per-day article counts, oldest day first; days with no articles are omitted"""

        async def load():
            window = await self.store.analytics(window_start(days))
            return {
                "days": days,
                "daily": [{"date": date, "count": count} for date, count in sorted(window["daily_count"].items())],
            }

        return await self._read_through(generate_key("analytics", "daily", days), self.ttl_analytics, load)

    async def article_stats(self) -> Dict[str, Any]:
        async def load():
            window = await self.store.analytics(window_start(TIMEFRAME_DAYS["7d"]))
            today = datetime.now(timezone.utc).date().isoformat()
            return {
                "total_articles": window["total_articles"],
                "categories_count": len(window["by_category"]),
                "sources_count": len(window["by_source"]),
                "today_count": window["daily_count"].get(today, 0),
            }

        return await self._read_through(generate_key("articles", "stats", "summary"), self.ttl_analytics, load)
