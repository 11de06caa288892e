import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from httpx import ASGITransport, AsyncClient

from src.news.services.news_service import NewsService
from src.news.tasks.scheduler import Scheduler, SchedulerConfig


@pytest.fixture
def test_container(sql_store, memory_cache, mock_alert_sink, sources):
    pipeline = MagicMock()
    pipeline.run = AsyncMock(return_value=MagicMock(to_dict=lambda: {"saved": 0}))
    pipeline.status = MagicMock(return_value={
        "is_running": False,
        "active_runs": 0,
        "stage": "done",
        "last_run": {"scraped": 4, "saved": 3, "skipped": 1, "stage": "done", "duration": 1200},
    })
    invalidator = MagicMock()
    invalidator.invalidate = AsyncMock(return_value=0)
    scheduler = Scheduler(
        pipeline=pipeline,
        store=sql_store,
        cache=memory_cache,
        cache_invalidator=invalidator,
        alert_sink=mock_alert_sink,
        sources_provider=lambda: sources,
        config=SchedulerConfig(environment="test", enabled=False),
    )
    scheduler.initialize()
    return SimpleNamespace(
        settings=SimpleNamespace(environment="test"),
        store=sql_store,
        cache=memory_cache,
        pipeline=pipeline,
        scheduler=scheduler,
        news_service=NewsService(sql_store, memory_cache),
        scrape_sources=lambda: sources,
    )


@pytest.fixture
async def async_client(test_container):
    from src.main import app

    app.state.container = test_container

    # ASGITransport does not run the lifespan, so the test container is used as-is
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestApi:
    @pytest.mark.asyncio
    async def test_health(self, async_client):
        response = await async_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["cache"] == "memory"
        assert body["scheduler"] == "idle"

    @pytest.mark.asyncio
    async def test_list_articles(self, async_client, sql_store, article_record):
        await sql_store.create_batch([article_record(1), article_record(2)])

        response = await async_client.get("/api/v1/articles", params={"limit": 1})

        assert response.status_code == 200
        body = response.json()
        assert len(body["articles"]) == 1
        assert body["pagination"]["total"] == 2

    @pytest.mark.asyncio
    async def test_list_articles_rejects_bad_sort(self, async_client):
        response = await async_client.get("/api/v1/articles", params={"sort_by": "url"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_article_not_found(self, async_client):
        response = await async_client.get("/api/v1/articles/999")

        assert response.status_code == 404
        assert response.json()["error_code"] == "ARTICLE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_categories_and_analytics(self, async_client, sql_store, article_record):
        await sql_store.create_batch([article_record(1, category="sports")])

        categories = await async_client.get("/api/v1/categories")
        analytics = await async_client.get("/api/v1/analytics/summary")

        assert categories.json()["categories"] == [{"name": "sports", "count": 1}]
        assert analytics.json()["total_articles"] == 1

    @pytest.mark.asyncio
    async def test_scheduler_status(self, async_client):
        response = await async_client.get("/api/v1/scheduler/status")

        assert response.status_code == 200
        body = response.json()
        assert body["enabled"] is False
        assert set(body["jobs"]) == {"daily_scrape", "cleanup", "cache_cleanup"}
        assert body["alerts"] == {"webhook": True, "slack": False}

    @pytest.mark.asyncio
    async def test_trigger_job(self, async_client):
        response = await async_client.post("/api/v1/scheduler/jobs/cache_cleanup/trigger")

        assert response.status_code == 200
        assert response.json()["status"] == "success"

    @pytest.mark.asyncio
    async def test_trigger_unknown_job(self, async_client):
        response = await async_client.post("/api/v1/scheduler/jobs/nope/trigger")

        assert response.status_code == 404
        assert response.json()["error_code"] == "JOB_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_manual_scrape_runs_in_background(self, async_client, test_container):
        response = await async_client.post("/api/v1/scrape/manual")

        assert response.status_code == 202
        assert response.json()["sources"] == ["TechCrunch", "BBC News"]
        test_container.pipeline.run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_scrape_status(self, async_client):
        response = await async_client.get("/api/v1/scrape/status")

        assert response.status_code == 200
        body = response.json()
        assert body["is_running"] is False
        assert body["stage"] == "done"
        assert body["last_run"]["saved"] == 3
        assert body["last_run"]["skipped"] == 1
        assert body["next_scheduled"] is not None

    @pytest.mark.asyncio
    async def test_sources(self, async_client, sql_store, article_record):
        await sql_store.create_batch([article_record(1, source="Reuters"), article_record(2, source="Reuters")])

        response = await async_client.get("/api/v1/sources")

        assert response.status_code == 200
        assert response.json() == {"sources": [{"name": "Reuters", "count": 2}], "total": 2}

    @pytest.mark.asyncio
    async def test_article_stats_summary(self, async_client, sql_store, article_record):
        await sql_store.create_batch([article_record(1, days_old=0), article_record(2, days_old=3)])

        response = await async_client.get("/api/v1/articles/stats/summary")

        assert response.status_code == 200
        assert response.json() == {"total_articles": 2, "categories_count": 1, "sources_count": 1, "today_count": 1}

    @pytest.mark.asyncio
    async def test_analytics_timeframes(self, async_client, sql_store, article_record):
        await sql_store.create_batch([
            article_record(1, days_old=1, category="technology"),
            article_record(2, days_old=1, category="health"),
            article_record(3, days_old=60, category="health"),
        ])

        overview = await async_client.get("/api/v1/analytics/overview", params={"timeframe": "90d"})
        trends = await async_client.get("/api/v1/analytics/trends", params={"timeframe": "7d", "limit": 5})
        daily = await async_client.get("/api/v1/analytics/daily", params={"days": 7})

        assert overview.json()["total_articles"] == 3
        assert [t["percentage"] for t in trends.json()["trends"]] == [50.0, 50.0]
        assert daily.json()["daily"][0]["count"] == 2

    @pytest.mark.asyncio
    async def test_analytics_rejects_unknown_timeframe(self, async_client):
        overview = await async_client.get("/api/v1/analytics/overview", params={"timeframe": "2w"})
        trends = await async_client.get("/api/v1/analytics/trends", params={"timeframe": "90d"})
        daily = await async_client.get("/api/v1/analytics/daily", params={"days": 91})

        assert overview.status_code == 422
        assert trends.status_code == 422
        assert daily.status_code == 422
