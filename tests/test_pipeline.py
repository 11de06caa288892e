import pytest
from unittest.mock import AsyncMock, MagicMock

from src.exceptions import PipelineError, ScrapeError, StoreError
from src.news.schemas.article import ScrapeSource
from src.news.schemas.pipeline import PipelineStage
from src.news.services.cache_invalidator import CacheInvalidator
from src.news.services.enrichment import EnrichmentStage
from src.news.services.normalizer import ArticleNormalizer
from src.news.services.persistence import PersistenceStage
from src.news.services.pipeline import PipelineOrchestrator


@pytest.fixture
def scraper(raw_items):
    scraper = MagicMock()
    # Both sources return the same two items, so half are duplicates
    scraper.scrape = AsyncMock(side_effect=lambda source: [dict(item) for item in raw_items])
    return scraper


@pytest.fixture
def build_pipeline(mock_enrichment_provider, mock_store, memory_cache, mock_alert_sink, fast_retry):
    def _build(scraper, store=None):
        return PipelineOrchestrator(
            scraper=scraper,
            normalizer=ArticleNormalizer(),
            enrichment=EnrichmentStage(mock_enrichment_provider, fast_retry, batch_delay_seconds=0),
            persistence=PersistenceStage(store or mock_store, fast_retry),
            cache_invalidator=CacheInvalidator(memory_cache),
            retry=fast_retry,
            alert_sink=mock_alert_sink,
            environment="test",
        )

    return _build


class TestPipelineOrchestrator:
    @pytest.mark.asyncio
    async def test_full_run(self, build_pipeline, scraper, sources, mock_store, memory_cache, mock_alert_sink):
        await memory_cache.set("articles:1:20", ["stale"])
        pipeline = build_pipeline(scraper)

        stats = await pipeline.run(sources)

        assert scraper.scrape.await_count == 2
        assert stats.scraped == 2
        assert stats.processed == 2
        assert stats.saved == 2
        assert stats.failed == 0
        assert stats.stage == PipelineStage.DONE
        assert stats.finished_at is not None
        assert pipeline.stage == PipelineStage.DONE
        assert await memory_cache.get("articles:1:20") is None
        mock_store.create_batch.assert_awaited_once()
        mock_alert_sink.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_source_aborts_run(self, build_pipeline, scraper, sources, mock_store, mock_alert_sink, memory_cache):
        scraper.scrape = AsyncMock(side_effect=ScrapeError("actor failed"))
        await memory_cache.set("articles:1:20", ["cached"])
        pipeline = build_pipeline(scraper)

        with pytest.raises(PipelineError) as exc_info:
            await pipeline.run(sources)

        assert exc_info.value.stage == "scraping"
        # Retried three times for the first source, second never attempted
        assert scraper.scrape.await_count == 3
        mock_store.create_batch.assert_not_awaited()
        assert await memory_cache.get("articles:1:20") == ["cached"]
        assert pipeline.stage == PipelineStage.FAILED
        assert pipeline.last_stats.stage == PipelineStage.FAILED

        mock_alert_sink.notify.assert_awaited_once()
        payload = mock_alert_sink.notify.await_args.args[0]
        assert payload["job"] == "Content Pipeline"
        assert payload["environment"] == "test"
        assert "actor failed" in payload["error"]

    @pytest.mark.asyncio
    async def test_empty_scrape_finishes_without_enrichment(self, build_pipeline, sources, mock_enrichment_provider, mock_store):
        scraper = MagicMock()
        scraper.scrape = AsyncMock(return_value=[])
        pipeline = build_pipeline(scraper)

        stats = await pipeline.run(sources)

        assert stats.scraped == 0
        assert stats.saved == 0
        assert stats.stage == PipelineStage.DONE
        mock_enrichment_provider.summarize.assert_not_awaited()
        mock_store.create_batch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_enrichment_failures_still_persist(self, build_pipeline, scraper, sources, mock_enrichment_provider):
        mock_enrichment_provider.summarize = AsyncMock(side_effect=RuntimeError("rate limited"))
        pipeline = build_pipeline(scraper)

        stats = await pipeline.run(sources)

        assert stats.enrichment_failures == 2
        assert stats.saved == 2
        assert stats.stage == PipelineStage.DONE

    @pytest.mark.asyncio
    async def test_no_valid_article_written_fails_run(self, build_pipeline, scraper, sources, mock_store, mock_alert_sink):
        mock_store.create_batch = AsyncMock(side_effect=StoreError("db down"))
        mock_store.create_one = AsyncMock(side_effect=StoreError("db down"))
        pipeline = build_pipeline(scraper)

        with pytest.raises(PipelineError) as exc_info:
            await pipeline.run(sources)

        assert exc_info.value.stage == "persisting"
        assert pipeline.last_stats.failed == 2
        mock_alert_sink.notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_inactive_sources_are_skipped(self, build_pipeline, scraper, sources):
        inactive = ScrapeSource(name="Paused", url="https://paused.example.com", actor_id="apify/web-scraper", active=False)
        pipeline = build_pipeline(scraper)

        await pipeline.run([inactive, *sources])

        scraped_names = [c.args[0].name for c in scraper.scrape.await_args_list]
        assert "Paused" not in scraped_names

    @pytest.mark.asyncio
    async def test_invalid_items_counted(self, build_pipeline, sources, mock_store):
        scraper = MagicMock()
        scraper.scrape = AsyncMock(return_value=[{"title": "Tiny", "content": "short", "url": "https://example.com/x"}])
        pipeline = build_pipeline(scraper)

        stats = await pipeline.run(sources[:1])

        assert stats.invalid == 1
        assert stats.saved == 0
        assert stats.stage == PipelineStage.DONE
        mock_store.create_batch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rerun_over_stored_articles_succeeds(self, build_pipeline, scraper, sources, sql_store, mock_alert_sink):
        pipeline = build_pipeline(scraper, store=sql_store)

        first = await pipeline.run(sources)
        second = await pipeline.run(sources)

        assert first.saved == 2
        assert second.saved == 0
        assert second.skipped == 2
        assert second.failed == 0
        assert second.stage == PipelineStage.DONE
        assert second.to_dict()["skipped"] == 2
        assert await sql_store.count() == 2
        mock_alert_sink.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_only_new_articles_are_written_on_rerun(self, build_pipeline, scraper, sources, sql_store, raw_items):
        pipeline = build_pipeline(scraper, store=sql_store)
        await pipeline.run(sources)
        raw_items.append({
            "title": "Library extends opening hours",
            "content": "The central library will stay open until ten in the evening on weekdays starting next month.",
            "url": "https://example.com/news/library",
        })

        stats = await pipeline.run(sources)

        assert stats.saved == 1
        assert stats.skipped == 2
        assert await sql_store.count() == 3

    @pytest.mark.asyncio
    async def test_failed_stage_is_tracked_per_run(self, build_pipeline, scraper, sources):
        pipeline = build_pipeline(scraper)

        async def enrich(articles):
            # A concurrent run moving the shared stage forward
            pipeline.stage = PipelineStage.PERSISTING
            raise RuntimeError("enrichment crashed")

        pipeline.enrichment.enrich = enrich

        with pytest.raises(PipelineError) as exc_info:
            await pipeline.run(sources)

        assert exc_info.value.stage == "enriching"
        assert pipeline.last_stats.stage == PipelineStage.FAILED

    @pytest.mark.asyncio
    async def test_status_reports_last_run(self, build_pipeline, scraper, sources):
        pipeline = build_pipeline(scraper)
        assert pipeline.status() == {"is_running": False, "active_runs": 0, "stage": "idle", "last_run": None}

        await pipeline.run(sources)
        status = pipeline.status()

        assert status["is_running"] is False
        assert status["stage"] == "done"
        assert status["last_run"]["saved"] == 2
