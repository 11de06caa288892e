"""
Enrichment Stage
Adds LLM summaries and keywords to articles in small concurrent batches.
A failed article keeps a truncated-content summary and records the error.
"""

import asyncio
from typing import List, Optional, Protocol, Sequence

import structlog

from ..schemas.article import Article, Category, utcnow
from .outcome import Outcome
from .retry import RetryExecutor

logger = structlog.get_logger(__name__)


class EnrichmentProvider(Protocol):
    async def summarize(self, text: str) -> str: ...

    async def extract_keywords(self, text: str) -> List[str]: ...

    async def classify(self, text: str, categories: Sequence[str]) -> str: ...


def create_batches(items: Sequence, batch_size: int) -> List[list]:
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


def fallback_summary(content: str, max_length: int = 200) -> str:
    return content[:max_length] + "..."


def merge_keywords(existing: Sequence[str], extra: Sequence[str]) -> List[str]:
    merged = []
    seen = set()
    for keyword in list(existing) + list(extra):
        if keyword in seen:
            continue
        seen.add(keyword)
        merged.append(keyword)
    return merged


class EnrichmentStage:
    """
    Args:
        provider: Summarization/keyword/classification service
        retry: Executor wrapping each provider call
        batch_size: Articles enriched concurrently
        batch_delay_seconds: Pause between batches (not within one)
        classify: Ask the provider for a category as well
    """

    def __init__(
        self,
        provider: EnrichmentProvider,
        retry: RetryExecutor,
        batch_size: int = 5,
        batch_delay_seconds: float = 1.0,
        classify: bool = False,
        summary_max_length: int = 200,
    ):
        self.provider = provider
        self.retry = retry
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self.classify = classify
        self.summary_max_length = summary_max_length

    async def enrich(self, articles: Sequence[Article]) -> List[Article]:
        logger.info("pipeline_step", step="enrichment", status="started", articles_count=len(articles))

        enriched: List[Article] = []
        failed = 0
        batches = create_batches(articles, self.batch_size)

        for index, batch in enumerate(batches, start=1):
            logger.info("Processing enrichment batch", batch=index, total_batches=len(batches), size=len(batch))

            outcomes = await self._enrich_batch(batch)
            for article, outcome in zip(batch, outcomes):
                if outcome.ok:
                    enriched.append(outcome.value)
                    continue
                failed += 1
                logger.error("Enrichment failed for article", title=article.title, error=str(outcome.error))
                enriched.append(self._fallback(article, outcome.error))

            if index < len(batches) and self.batch_delay_seconds > 0:
                await asyncio.sleep(self.batch_delay_seconds)

        logger.info(
            "pipeline_step",
            step="enrichment",
            status="completed",
            processed_count=len(enriched) - failed,
            failed_count=failed,
        )
        return enriched

    async def _enrich_batch(self, batch: Sequence[Article]) -> List[Outcome[Article]]:
        results = await asyncio.gather(
            *(self._enrich_one(article) for article in batch),
            return_exceptions=True,
        )
        return [
            Outcome.failure(result) if isinstance(result, BaseException) else Outcome.success(result)
            for result in results
        ]

    async def _enrich_one(self, article: Article) -> Article:
        summary, keywords = await asyncio.gather(
            self.retry.execute(
                lambda: self.provider.summarize(article.content),
                label=f"Summary for article: {article.title}",
            ),
            self.retry.execute(
                lambda: self.provider.extract_keywords(article.content),
                label=f"Keyword extraction for article: {article.title}",
            ),
            return_exceptions=True,
        )
        for result in (summary, keywords):
            if isinstance(result, BaseException):
                raise result

        update = {
            "summary": summary,
            "keywords": merge_keywords(article.keywords, keywords),
            "processed_at": utcnow(),
            "processing_error": None,
        }
        category = await self._classify(article) if self.classify else None
        if category is not None:
            update["category"] = category
        return article.model_copy(update=update)

    async def _classify(self, article: Article) -> Optional[Category]:
        try:
            answer = await self.provider.classify(article.content, [c.value for c in Category])
        except Exception as e:
            logger.warning("Classification failed, keeping keyword category", title=article.title, error=str(e))
            return None
        try:
            return Category(str(answer).strip().lower())
        except ValueError:
            logger.warning("Classifier returned unknown category", title=article.title, category=answer)
            return None

    def _fallback(self, article: Article, error: Optional[BaseException]) -> Article:
        return article.model_copy(update={
            "summary": fallback_summary(article.content, self.summary_max_length),
            "processed_at": utcnow(),
            "processing_error": str(error),
        })
