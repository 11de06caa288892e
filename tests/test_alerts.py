import json

import httpx
import pytest

from src.news.services.alerts import LoggingAlertSink, WebhookAlertSink, build_alert_payload


@pytest.fixture
def payload():
    return build_alert_payload("daily_scrape", RuntimeError("actor failed"), "production")


class TestWebhookAlertSink:
    @pytest.mark.asyncio
    async def test_posts_to_both_channels(self, payload):
        received = {}

        def handler(request: httpx.Request) -> httpx.Response:
            received[request.url.host] = json.loads(request.content)
            return httpx.Response(200)

        sink = WebhookAlertSink(
            webhook_url="https://alerts.example.com/hook",
            slack_webhook_url="https://hooks.slack.com/services/T/B/X",
            transport=httpx.MockTransport(handler),
        )

        await sink.notify(payload)

        assert received["alerts.example.com"]["job"] == "daily_scrape"
        assert received["alerts.example.com"]["error"] == "actor failed"
        assert "daily_scrape" in received["hooks.slack.com"]["text"]

    @pytest.mark.asyncio
    async def test_delivery_failure_is_swallowed(self, payload):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        sink = WebhookAlertSink(webhook_url="https://alerts.example.com/hook", transport=httpx.MockTransport(handler))

        await sink.notify(payload)

    @pytest.mark.asyncio
    async def test_error_status_is_swallowed(self, payload):
        sink = WebhookAlertSink(
            webhook_url="https://alerts.example.com/hook",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )

        await sink.notify(payload)

    def test_channels(self):
        assert WebhookAlertSink(slack_webhook_url="https://hooks.slack.com/x").channels == {"webhook": False, "slack": True}
        assert LoggingAlertSink().channels == {"webhook": False, "slack": False}


def test_payload_shape(payload):
    assert set(payload) == {"job", "error", "timestamp", "environment"}
    assert payload["environment"] == "production"
