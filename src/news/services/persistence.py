"""
Persistence Stage
Validates articles and writes them to the article store in batches,
falling back to one-by-one writes when a batch write fails.
Articles whose URL is already stored are skipped, not rewritten.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set

import structlog

from ...exceptions import ArticleValidationError
from ..schemas.article import Article, ValidatedArticle, validate_article
from .enrichment import create_batches
from .outcome import Outcome
from .retry import RetryExecutor

logger = structlog.get_logger(__name__)

Record = Dict[str, Any]


class ArticleStore(Protocol):
    async def create_batch(self, records: Sequence[Record]) -> List[Record]: ...

    async def create_one(self, record: Record) -> Record: ...

    async def existing_urls(self, urls: Sequence[str]) -> Set[str]: ...

    async def delete_older_than(self, days: int) -> int: ...

    async def query(self, filters: Optional[Dict[str, Any]] = None) -> List[Record]: ...


@dataclass
class PersistenceResult:
    saved: List[ValidatedArticle] = field(default_factory=list)
    invalid_count: int = 0
    skipped_count: int = 0
    write_failed_count: int = 0

    @property
    def failed_count(self) -> int:
        return self.invalid_count + self.write_failed_count


class PersistenceStage:
    def __init__(self, store: ArticleStore, retry: RetryExecutor, batch_size: int = 10):
        self.store = store
        self.retry = retry
        self.batch_size = batch_size

    def partition(self, articles: Sequence[Article]):
        valid: List[ValidatedArticle] = []
        invalid: List[Article] = []
        for article in articles:
            outcome = self._validate(article)
            if outcome.ok:
                valid.append(outcome.value)
            else:
                logger.warning("Article validation failed", title=article.title, error=str(outcome.error))
                invalid.append(article)
        return valid, invalid

    async def skip_stored(self, articles: Sequence[ValidatedArticle]) -> List[ValidatedArticle]:
        """Drop articles whose URL the store already holds"""
        if not articles:
            return []
        try:
            stored = await self.retry.execute(
                lambda: self.store.existing_urls([article.url for article in articles]),
                label="Store URL lookup",
            )
        except Exception as e:
            # The unique URL constraint still rejects duplicates on write
            logger.warning("Stored URL lookup failed, writing all valid articles", error=str(e))
            return list(articles)
        return [article for article in articles if article.url not in stored]

    async def persist(self, articles: Sequence[Article]) -> PersistenceResult:
        logger.info("pipeline_step", step="persistence", status="started", articles_count=len(articles))

        valid, invalid = self.partition(articles)
        if invalid:
            logger.warning("Articles excluded from persistence", invalid_count=len(invalid))

        new_articles = await self.skip_stored(valid)
        result = PersistenceResult(invalid_count=len(invalid), skipped_count=len(valid) - len(new_articles))
        if result.skipped_count:
            logger.info("Skipping already stored articles", skipped_count=result.skipped_count)

        batches = create_batches(new_articles, self.batch_size)

        for index, batch in enumerate(batches, start=1):
            logger.info("Saving batch", batch=index, total_batches=len(batches), size=len(batch))
            records = [article.to_record() for article in batch]
            try:
                await self.retry.execute(
                    lambda: self.store.create_batch(records),
                    label=f"Store batch save {index}",
                )
            except Exception as e:
                logger.error("Batch save failed, writing records individually", batch=index, error=str(e))
                outcomes = [await self._write_one(record) for record in records]
                for article, outcome in zip(batch, outcomes):
                    if outcome.ok:
                        result.saved.append(article)
                    else:
                        result.write_failed_count += 1
                        logger.error("Record save failed", title=article.title, error=str(outcome.error))
                continue
            result.saved.extend(batch)

        logger.info(
            "pipeline_step",
            step="persistence",
            status="completed",
            saved_count=len(result.saved),
            skipped_count=result.skipped_count,
            failed_count=result.failed_count,
        )
        return result

    def _validate(self, article: Article) -> Outcome[ValidatedArticle]:
        try:
            return Outcome.success(validate_article(article))
        except ArticleValidationError as e:
            return Outcome.failure(e)

    async def _write_one(self, record: Record) -> Outcome[Record]:
        try:
            return Outcome.success(await self.store.create_one(record))
        except Exception as e:
            return Outcome.failure(e)
