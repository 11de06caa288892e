"""Job failure alerts delivered to webhooks"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import httpx
import structlog

logger = structlog.get_logger(__name__)


class AlertSink(Protocol):
    async def notify(self, payload: Dict[str, Any]) -> None: ...

    @property
    def channels(self) -> Dict[str, bool]: ...


def build_alert_payload(job: str, error: BaseException, environment: str) -> Dict[str, Any]:
    return {
        "job": job,
        "error": str(error),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": environment,
    }


class LoggingAlertSink:
    """Alert sink used when no webhook is configured."""

    async def notify(self, payload: Dict[str, Any]) -> None:
        logger.error("Job failure alert", **payload)

    @property
    def channels(self) -> Dict[str, bool]:
        return {"webhook": False, "slack": False}


class WebhookAlertSink:
    """
    Posts failure alerts to a generic JSON webhook and/or a Slack incoming webhook.
    Delivery is best effort: errors are logged and never raised.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        slack_webhook_url: Optional[str] = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.slack_webhook_url = slack_webhook_url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def channels(self) -> Dict[str, bool]:
        return {"webhook": bool(self.webhook_url), "slack": bool(self.slack_webhook_url)}

    async def notify(self, payload: Dict[str, Any]) -> None:
        logger.error("Job failure alert", **payload)

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            if self.webhook_url:
                await self._post(client, self.webhook_url, payload, channel="webhook")
            if self.slack_webhook_url:
                text = (
                    f":rotating_light: Job *{payload.get('job')}* failed "
                    f"({payload.get('environment')}) at {payload.get('timestamp')}\n"
                    f"```{payload.get('error')}```"
                )
                await self._post(client, self.slack_webhook_url, {"text": text}, channel="slack")

    async def _post(self, client: httpx.AsyncClient, url: str, body: Dict[str, Any], channel: str) -> None:
        try:
            response = await client.post(url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to send job failure alert", channel=channel, error=str(e))
