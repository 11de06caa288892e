"""
Pipeline Orchestrator
One aggregation pass over the configured sources:
1. Scrape every source through the scraping actor (with retry)
2. Normalize and deduplicate across sources
3. Enrich with LLM summaries and keywords
4. Validate and persist
5. Invalidate read caches
"""

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

import structlog

from ...core.performance_timer import PerformanceTimer
from ...exceptions import PipelineError
from ..schemas.article import Article, ScrapeSource
from ..schemas.pipeline import PipelineRunStats, PipelineStage
from .alerts import AlertSink, build_alert_payload
from .cache_invalidator import CacheInvalidator, PIPELINE_CACHE_PATTERNS
from .enrichment import EnrichmentStage
from .normalizer import ArticleNormalizer, deduplicate
from .persistence import PersistenceStage
from .retry import RetryExecutor

logger = structlog.get_logger(__name__)


class ScrapeProvider(Protocol):
    async def scrape(self, source: ScrapeSource) -> List[Dict[str, Any]]: ...


class PipelineOrchestrator:
    """Runs scrape -> normalize -> enrich -> persist -> invalidate as one unit"""

    def __init__(
        self,
        scraper: ScrapeProvider,
        normalizer: ArticleNormalizer,
        enrichment: EnrichmentStage,
        persistence: PersistenceStage,
        cache_invalidator: CacheInvalidator,
        retry: RetryExecutor,
        alert_sink: Optional[AlertSink] = None,
        environment: str = "development",
    ):
        self.scraper = scraper
        self.normalizer = normalizer
        self.enrichment = enrichment
        self.persistence = persistence
        self.cache_invalidator = cache_invalidator
        self.retry = retry
        self.alert_sink = alert_sink
        self.environment = environment
        self.stage = PipelineStage.IDLE
        self.last_stats: Optional[PipelineRunStats] = None
        self.active_runs = 0

    async def run(self, sources: Sequence[ScrapeSource]) -> PipelineRunStats:
        """
        Run the complete aggregation pipeline.

        Returns:
            Stats with scraped/processed/saved counts and duration

        Raises:
            PipelineError: any stage failed; the failure has already been
                logged and alerted
        """
        timer = PerformanceTimer("pipeline").start()
        stats = PipelineRunStats()
        self.last_stats = stats
        active_sources = [source for source in sources if source.active]

        logger.info("Starting full content pipeline", sources_count=len(active_sources))

        self.active_runs += 1
        try:
            self._enter(PipelineStage.SCRAPING, stats)
            scraped = await self._scrape_all(active_sources)

            self._enter(PipelineStage.NORMALIZING, stats)
            articles = self._normalize(scraped)
            stats.scraped = len(articles)

            if not articles:
                logger.warning("No articles found during scraping")
                self._enter(PipelineStage.DONE, stats)
                stats.finalize(PipelineStage.DONE, timer.stop())
                return stats

            self._enter(PipelineStage.ENRICHING, stats)
            enriched = await self.enrichment.enrich(articles)
            stats.processed = len(enriched)
            stats.enrichment_failures = sum(1 for article in enriched if article.processing_error)

            self._enter(PipelineStage.PERSISTING, stats)
            result = await self.persistence.persist(enriched)
            stats.saved = len(result.saved)
            stats.skipped = result.skipped_count
            stats.invalid = result.invalid_count
            stats.failed = result.failed_count
            new_count = len(enriched) - result.invalid_count - result.skipped_count
            if new_count > 0 and not result.saved:
                raise PipelineError(
                    PipelineStage.PERSISTING.value,
                    f"none of {new_count} new valid articles could be written",
                    stats.to_dict(),
                )

            self._enter(PipelineStage.CACHE_INVALIDATING, stats)
            await self.cache_invalidator.invalidate(PIPELINE_CACHE_PATTERNS)

            self._enter(PipelineStage.DONE, stats)
            stats.finalize(PipelineStage.DONE, timer.stop())
            logger.info("Content pipeline completed successfully", **stats.to_dict())
            return stats

        except Exception as e:
            failed_stage = stats.stage
            self.stage = PipelineStage.FAILED
            stats.finalize(PipelineStage.FAILED, timer.stop(), error=str(e))
            logger.error(
                "Content pipeline failed",
                stage=failed_stage.value,
                error=str(e),
                duration_ms=stats.duration_ms,
                exc_info=True,
            )
            await self._send_failure_alert(e)
            if isinstance(e, PipelineError):
                raise
            raise PipelineError(failed_stage.value, str(e), stats.to_dict()) from e
        finally:
            self.active_runs -= 1

    def _enter(self, stage: PipelineStage, stats: PipelineRunStats) -> None:
        self.stage = stage
        stats.stage = stage

    def status(self) -> Dict[str, Any]:
        """Live view for the scrape status endpoint; `stage` is the most recently entered stage of any run"""
        return {
            "is_running": self.active_runs > 0,
            "active_runs": self.active_runs,
            "stage": self.stage.value,
            "last_run": self.last_stats.to_dict() if self.last_stats else None,
        }

    async def _scrape_all(self, sources: Sequence[ScrapeSource]) -> List[Tuple[ScrapeSource, List[Mapping[str, Any]]]]:
        # A source that exhausts its retries aborts the whole run
        scraped = []
        for source in sources:
            logger.info("Scraping source", source=source.name)
            items = await self.retry.execute(
                lambda source=source: self.scraper.scrape(source),
                label=f"Scraping {source.name}",
            )
            logger.info("Scraped source", source=source.name, items_count=len(items))
            scraped.append((source, items))
        return scraped

    def _normalize(self, scraped: Sequence[Tuple[ScrapeSource, Sequence[Mapping[str, Any]]]]) -> List[Article]:
        articles: List[Article] = []
        for source, items in scraped:
            articles.extend(self.normalizer.normalize(items, source))
        unique = deduplicate(articles)
        logger.info("Normalized articles", total=len(articles), duplicates=len(articles) - len(unique))
        return unique

    async def _send_failure_alert(self, error: BaseException) -> None:
        if self.alert_sink is None:
            return
        try:
            await self.alert_sink.notify(build_alert_payload("Content Pipeline", error, self.environment))
        except Exception as alert_error:
            logger.error("Failed to send failure alert", error=str(alert_error))
