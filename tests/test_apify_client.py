import json

import httpx
import pytest
from unittest.mock import AsyncMock

from src.exceptions import ConfigurationError, ScrapeError
from src.news.providers.apify_client import ApifyScrapeProvider, actor_path, build_actor_input


def make_provider(handler, **kwargs):
    kwargs.setdefault("sleep", AsyncMock())
    return ApifyScrapeProvider(
        api_token="apify-token",
        poll_interval_seconds=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestApifyScrapeProvider:
    @pytest.mark.asyncio
    async def test_runs_actor_and_returns_dataset(self, sources):
        requests = []
        statuses = iter(["RUNNING", "SUCCEEDED"])

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            path = request.url.path
            if request.method == "POST" and path == "/v2/acts/apify~web-scraper/runs":
                return httpx.Response(201, json={"data": {"id": "run1", "status": "READY", "defaultDatasetId": "ds1"}})
            if path == "/v2/actor-runs/run1":
                return httpx.Response(200, json={"data": {"id": "run1", "status": next(statuses), "defaultDatasetId": "ds1"}})
            if path == "/v2/datasets/ds1/items":
                return httpx.Response(200, json=[{"title": "Story", "url": "https://techcrunch.com/story"}])
            return httpx.Response(404)

        provider = make_provider(handler)

        items = await provider.scrape(sources[0])

        assert items == [{"title": "Story", "url": "https://techcrunch.com/story"}]
        start = requests[0]
        assert start.headers["Authorization"] == "Bearer apify-token"
        body = json.loads(start.content)
        assert body["startUrls"] == [{"url": "https://techcrunch.com/"}]
        assert body["maxPagesPerCrawl"] == 5
        assert requests[-1].url.params["clean"] == "true"
        assert provider._sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_run_raises(self, sources):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(201, json={"data": {"id": "run1", "status": "FAILED", "defaultDatasetId": "ds1"}})
            return httpx.Response(404)

        provider = make_provider(handler)

        with pytest.raises(ScrapeError) as exc_info:
            await provider.scrape(sources[0])

        assert exc_info.value.details["status"] == "FAILED"

    @pytest.mark.asyncio
    async def test_http_error_becomes_scrape_error(self, sources):
        provider = make_provider(lambda request: httpx.Response(401, json={"error": "unauthorized"}))

        with pytest.raises(ScrapeError) as exc_info:
            await provider.scrape(sources[0])

        assert exc_info.value.details["status_code"] == 401

    @pytest.mark.asyncio
    async def test_non_json_body_becomes_scrape_error(self, sources):
        provider = make_provider(lambda request: httpx.Response(200, text="<html>Bad gateway</html>"))

        with pytest.raises(ScrapeError, match="non-JSON") as exc_info:
            await provider.scrape(sources[0])

        assert exc_info.value.details["path"] == "/acts/apify~web-scraper/runs"

    @pytest.mark.asyncio
    async def test_run_timeout(self, sources):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"id": "run1", "status": "RUNNING", "defaultDatasetId": "ds1"}})

        provider = make_provider(handler, run_timeout_seconds=0)

        with pytest.raises(ScrapeError, match="Timed out"):
            await provider.scrape(sources[0])

    @pytest.mark.asyncio
    async def test_missing_token(self, sources):
        provider = ApifyScrapeProvider(api_token=None)

        with pytest.raises(ConfigurationError):
            await provider.scrape(sources[0])


def test_actor_path():
    assert actor_path("apify/web-scraper") == "apify~web-scraper"
    assert actor_path("abc123") == "abc123"


def test_actor_input_merges_source_config(sources):
    source = sources[1].model_copy(update={"config": {"pageFunction": "noop", "maxPagesPerCrawl": 2}})

    actor_input = build_actor_input(source)

    assert actor_input["pageFunction"] == "noop"
    assert actor_input["maxPagesPerCrawl"] == 2
