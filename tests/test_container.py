import pytest

from src.config import Settings
from src.core.container import build_container, load_scrape_sources, scheduler_enabled
from src.exceptions import ConfigurationError
from src.news.providers.cache import InMemoryCache
from src.news.services.alerts import LoggingAlertSink, WebhookAlertSink


@pytest.fixture
def make_settings(tmp_path):
    def _make(**overrides):
        values = {"database_url": f"sqlite:///{tmp_path / 'container.db'}", "environment": "development"}
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


class TestBuildContainer:
    @pytest.mark.asyncio
    async def test_defaults_to_sql_store_and_memory_cache(self, make_settings):
        container = build_container(make_settings())

        try:
            assert isinstance(container.cache, InMemoryCache)
            assert isinstance(container.alert_sink, LoggingAlertSink)
            assert container.scheduler.config.enabled is True
            assert await container.store.count() == 0
        finally:
            await container.close()

    @pytest.mark.asyncio
    async def test_webhook_alerts_when_configured(self, make_settings):
        container = build_container(make_settings(slack_webhook_url="https://hooks.slack.com/services/x"))

        try:
            assert isinstance(container.alert_sink, WebhookAlertSink)
            assert container.scheduler.status()["alerts"] == {"webhook": False, "slack": True}
        finally:
            await container.close()

    def test_unknown_store_backend(self, make_settings):
        with pytest.raises(ConfigurationError):
            build_container(make_settings(article_store_backend="mongo"))

    def test_airtable_backend_requires_credentials(self, make_settings):
        with pytest.raises(ConfigurationError):
            build_container(make_settings(article_store_backend="airtable"))


class TestSchedulerEligibility:
    def test_production_defaults_off(self, make_settings):
        assert scheduler_enabled(make_settings(environment="Production")) is False

    def test_dedicated_instance_in_production(self, make_settings):
        assert scheduler_enabled(make_settings(environment="production", scheduler_dedicated_instance="true")) is True

    def test_secondary_replica(self, make_settings):
        assert scheduler_enabled(make_settings(replica_index="2")) is False


def test_default_scrape_sources(make_settings):
    sources = load_scrape_sources(make_settings())

    assert [source.name for source in sources] == ["TechCrunch", "BBC News", "Reuters"]
    assert sources[1].max_pages == 15
