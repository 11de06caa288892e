"""
Explicit wiring of the aggregation components.
Built once by the process entry point and torn down on shutdown.
"""

from dataclasses import dataclass
from typing import List, Optional

import structlog
from sqlalchemy.engine import Engine

from ..config import Settings
from ..exceptions import ConfigurationError
from ..news.providers.apify_client import ApifyScrapeProvider
from ..news.providers.article_store import AirtableArticleStore, SqlArticleStore
from ..news.providers.cache import InMemoryCache, RedisCache
from ..news.providers.llm_enricher import LLMEnrichmentProvider
from ..news.schemas.article import ScrapeSource
from ..news.services.alerts import LoggingAlertSink, WebhookAlertSink
from ..news.services.cache_invalidator import CacheInvalidator
from ..news.services.enrichment import EnrichmentStage
from ..news.services.news_service import NewsService
from ..news.services.normalizer import ArticleNormalizer
from ..news.services.persistence import PersistenceStage
from ..news.services.pipeline import PipelineOrchestrator
from ..news.services.retry import RetryExecutor
from ..news.tasks.scheduler import Scheduler, SchedulerConfig, should_run
from ..services.llm_service import LLMService
from .database import build_engine, build_session_factory, create_tables

logger = structlog.get_logger(__name__)


@dataclass
class Container:
    settings: Settings
    store: object
    cache: object
    cache_invalidator: CacheInvalidator
    alert_sink: object
    pipeline: PipelineOrchestrator
    scheduler: Scheduler
    news_service: NewsService
    engine: Optional[Engine] = None

    def scrape_sources(self) -> List[ScrapeSource]:
        return load_scrape_sources(self.settings)

    async def close(self) -> None:
        self.scheduler.shutdown()
        await self.cache.close()
        if self.engine is not None:
            self.engine.dispose()


def load_scrape_sources(settings: Settings) -> List[ScrapeSource]:
    return [ScrapeSource.model_validate(source) for source in settings.scrape_sources]


def build_store(settings: Settings):
    backend = settings.article_store_backend.lower()
    if backend == "sql":
        engine = build_engine(settings.database_url, echo=settings.debug)
        create_tables(engine)
        return SqlArticleStore(build_session_factory(engine)), engine
    if backend == "airtable":
        store = AirtableArticleStore(
            api_key=settings.airtable_api_key,
            base_id=settings.airtable_base_id,
            table_name=settings.airtable_table_name,
            timeout_seconds=settings.airtable_timeout_seconds,
        )
        return store, None
    raise ConfigurationError(f"Unknown article store backend: {settings.article_store_backend}")


def build_cache(settings: Settings):
    if settings.redis_url:
        return RedisCache(settings.redis_url, key_prefix=settings.cache_key_prefix)
    logger.info("REDIS_URL not set, using in-memory cache")
    return InMemoryCache(key_prefix=settings.cache_key_prefix)


def build_alert_sink(settings: Settings):
    if settings.alert_webhook_url or settings.slack_webhook_url:
        return WebhookAlertSink(
            webhook_url=settings.alert_webhook_url,
            slack_webhook_url=settings.slack_webhook_url,
            timeout_seconds=settings.alert_timeout_seconds,
        )
    return LoggingAlertSink()


def scheduler_enabled(settings: Settings) -> bool:
    return should_run(
        disable=settings.scheduler_disabled,
        enable=settings.scheduler_enabled,
        dedicated=settings.scheduler_dedicated_instance,
        replica_index=settings.replica_index,
        environment=settings.environment,
    )


def build_container(settings: Settings) -> Container:
    store, engine = build_store(settings)
    cache = build_cache(settings)
    alert_sink = build_alert_sink(settings)
    cache_invalidator = CacheInvalidator(cache)

    retry = RetryExecutor(
        max_attempts=settings.scraping_max_retries,
        delay_seconds=settings.scraping_retry_delay_ms / 1000,
    )
    llm_service = LLMService(
        openai_api_key=settings.openai_api_key,
        anthropic_api_key=settings.anthropic_api_key,
        google_api_key=settings.google_api_key,
        openai_model_name=settings.openai_model_name,
        anthropic_model_name=settings.anthropic_model_name,
        google_model_name=settings.google_model_name,
    )
    enrichment = EnrichmentStage(
        provider=LLMEnrichmentProvider(
            llm_service,
            summary_max_length=settings.summary_max_length,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        ),
        retry=retry,
        batch_size=settings.scraping_batch_size,
        batch_delay_seconds=settings.enrichment_batch_delay_ms / 1000,
        classify=settings.enrichment_classify,
        summary_max_length=settings.summary_max_length,
    )
    pipeline = PipelineOrchestrator(
        scraper=ApifyScrapeProvider(
            api_token=settings.apify_api_token,
            base_url=settings.apify_base_url,
            poll_interval_seconds=settings.apify_poll_interval_seconds,
            run_timeout_seconds=settings.apify_run_timeout_seconds,
        ),
        normalizer=ArticleNormalizer(),
        enrichment=enrichment,
        persistence=PersistenceStage(store, retry, batch_size=settings.persistence_batch_size),
        cache_invalidator=cache_invalidator,
        retry=retry,
        alert_sink=alert_sink,
        environment=settings.environment,
    )
    scheduler = Scheduler(
        pipeline=pipeline,
        store=store,
        cache=cache,
        cache_invalidator=cache_invalidator,
        alert_sink=alert_sink,
        sources_provider=lambda: load_scrape_sources(settings),
        config=SchedulerConfig(
            daily_scrape_cron=settings.cron_daily_scrape,
            cleanup_cron=settings.cron_cleanup,
            cache_cleanup_cron=settings.cron_cache_cleanup,
            timezone=settings.scheduler_timezone,
            retention_days=settings.article_retention_days,
            environment=settings.environment,
            enabled=scheduler_enabled(settings),
        ),
    )
    news_service = NewsService(
        store=store,
        cache=cache,
        ttl_articles=settings.cache_ttl_articles,
        ttl_categories=settings.cache_ttl_categories,
        ttl_analytics=settings.cache_ttl_analytics,
    )
    return Container(
        settings=settings,
        store=store,
        cache=cache,
        cache_invalidator=cache_invalidator,
        alert_sink=alert_sink,
        pipeline=pipeline,
        scheduler=scheduler,
        news_service=news_service,
        engine=engine,
    )
