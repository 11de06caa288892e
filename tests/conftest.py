import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, AsyncMock

from src.news.schemas.article import Article, Category, ScrapeSource
from src.news.services.retry import RetryExecutor


SAMPLE_CONTENT = (
    "The city council approved the new transit budget on Tuesday after a long "
    "public hearing, allocating funds for buses, bike lanes and station repairs."
)


@pytest.fixture
def mock_settings():
    settings = MagicMock()
    settings.environment = "development"
    settings.scraping_max_retries = 3
    settings.scraping_retry_delay_ms = 0
    settings.scraping_batch_size = 5
    settings.enrichment_batch_delay_ms = 0
    settings.persistence_batch_size = 10
    settings.summary_max_length = 200
    settings.openai_api_key = "test-openai-key"
    settings.google_api_key = "test-google-key"
    settings.anthropic_api_key = "test-anthropic-key"
    return settings


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def fast_retry(no_sleep):
    return RetryExecutor(max_attempts=3, delay_seconds=0, sleep=no_sleep)


@pytest.fixture
def sources():
    return [
        ScrapeSource(name="TechCrunch", url="https://techcrunch.com", actor_id="apify/web-scraper", max_pages=5),
        ScrapeSource(name="BBC News", url="https://www.bbc.com/news", actor_id="apify/web-scraper"),
    ]


@pytest.fixture
def make_article():
    counter = {"n": 0}

    def _make(**overrides) -> Article:
        counter["n"] += 1
        fields = {
            "title": f"Transit budget approved {counter['n']}",
            "content": SAMPLE_CONTENT,
            "url": f"https://example.com/news/{counter['n']}",
            "source": "Example News",
            "category": Category.GENERAL,
            "published_at": datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc),
        }
        fields.update(overrides)
        return Article(**fields)

    return _make


@pytest.fixture
def raw_items():
    return [
        {
            "title": "Council approves transit budget",
            "content": SAMPLE_CONTENT,
            "url": "https://example.com/news/transit",
            "publishedAt": "2024-03-01T09:00:00Z",
        },
        {
            "headline": "Hospital opens new wing",
            "description": "The regional hospital opened a new wing for outpatient treatment, "
                           "adding forty beds and two operating rooms.",
            "link": "https://example.com/news/hospital",
            "date": "Fri, 01 Mar 2024 10:30:00 GMT",
        },
    ]


@pytest.fixture
def mock_enrichment_provider():
    provider = MagicMock()
    provider.summarize = AsyncMock(return_value="Council approves transit budget.")
    provider.extract_keywords = AsyncMock(return_value=["transit", "budget", "council"])
    provider.classify = AsyncMock(return_value="politics")
    return provider


@pytest.fixture
def mock_store():
    store = MagicMock()
    store.create_batch = AsyncMock(side_effect=lambda records: list(records))
    store.create_one = AsyncMock(side_effect=lambda record: record)
    store.existing_urls = AsyncMock(return_value=set())
    store.delete_older_than = AsyncMock(return_value=0)
    store.query = AsyncMock(return_value=[])
    store.count = AsyncMock(return_value=0)
    return store


@pytest.fixture
def mock_alert_sink():
    sink = MagicMock()
    sink.notify = AsyncMock()
    sink.channels = {"webhook": True, "slack": False}
    return sink


@pytest.fixture
def memory_cache():
    from src.news.providers.cache import InMemoryCache
    return InMemoryCache()


@pytest.fixture
def sql_store(tmp_path):
    from src.core.database import build_engine, build_session_factory, create_tables, drop_tables
    from src.news.providers.article_store import SqlArticleStore

    # File-backed SQLite so worker threads share the same database
    engine = build_engine(f"sqlite:///{tmp_path / 'news.db'}")
    create_tables(engine)
    try:
        yield SqlArticleStore(build_session_factory(engine))
    finally:
        drop_tables(engine)
        engine.dispose()


@pytest.fixture
def article_record():
    def _record(n: int, days_old: int = 1, **overrides):
        record = {
            "title": f"Stored article number {n}",
            "url": f"https://example.com/stored/{n}",
            "source": "Example News",
            "category": "general",
            "content": SAMPLE_CONTENT,
            "summary": "Short summary.",
            "keywords": ["transit", "budget"],
            "processing_error": None,
            "published_at": datetime.now(timezone.utc) - timedelta(days=days_old),
            "processed_at": datetime.now(timezone.utc),
        }
        record.update(overrides)
        return record

    return _record
