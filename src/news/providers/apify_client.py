"""
Apify actor client used as the scrape provider.
Starts an actor run for a source, waits for a terminal status and
returns the items of the run's default dataset.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import structlog

from ...core.performance_timer import PerformanceTimer
from ...exceptions import ConfigurationError, ScrapeError
from ..schemas.article import ScrapeSource

logger = structlog.get_logger(__name__)

SUCCEEDED = "SUCCEEDED"
FAILED_STATUSES = {"FAILED", "ABORTED", "TIMED-OUT"}
TERMINAL_STATUSES = FAILED_STATUSES | {SUCCEEDED}


def actor_path(actor_id: str) -> str:
    # The API addresses "user/actor" as "user~actor"
    return actor_id.replace("/", "~")


def build_actor_input(source: ScrapeSource) -> Dict[str, Any]:
    return {
        "startUrls": [{"url": str(source.url)}],
        "maxPagesPerCrawl": source.max_pages,
        **source.config,
    }


class ApifyScrapeProvider:
    def __init__(
        self,
        api_token: Optional[str],
        base_url: str = "https://api.apify.com/v2",
        poll_interval_seconds: float = 5.0,
        run_timeout_seconds: float = 600.0,
        request_timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.poll_interval_seconds = poll_interval_seconds
        self.run_timeout_seconds = run_timeout_seconds
        self.request_timeout_seconds = request_timeout_seconds
        self._transport = transport
        self._sleep = sleep

    def _client(self) -> httpx.AsyncClient:
        if not self.api_token:
            raise ConfigurationError("APIFY_API_TOKEN is not configured")
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_token}"},
            timeout=self.request_timeout_seconds,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        async with self._client() as client:
            try:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise ScrapeError(
                    f"Apify request failed with status {e.response.status_code}",
                    details={"path": path, "status_code": e.response.status_code},
                ) from e
            except httpx.HTTPError as e:
                raise ScrapeError(f"Apify request failed: {e}", details={"path": path}) from e
            try:
                return response.json()
            except ValueError as e:
                raise ScrapeError("Apify returned a non-JSON response", details={"path": path}) from e

    async def start_run(self, source: ScrapeSource) -> Dict[str, Any]:
        body = await self._request(
            "POST",
            f"/acts/{actor_path(source.actor_id)}/runs",
            json=build_actor_input(source),
        )
        run = body.get("data", body)
        logger.info("Actor run started", source=source.name, actor_id=source.actor_id, run_id=run.get("id"))
        return run

    async def get_run_status(self, run_id: str) -> Dict[str, Any]:
        body = await self._request("GET", f"/actor-runs/{run_id}")
        return body.get("data", body)

    async def get_results(self, run: Dict[str, Any]) -> List[Dict[str, Any]]:
        dataset_id = run.get("defaultDatasetId")
        if not dataset_id:
            raise ScrapeError("Actor run has no dataset", details={"run_id": run.get("id")})
        items = await self._request("GET", f"/datasets/{dataset_id}/items", params={"clean": "true", "format": "json"})
        if not isinstance(items, list):
            raise ScrapeError("Unexpected dataset payload", details={"dataset_id": dataset_id})
        return items

    async def wait_for_run(self, run: Dict[str, Any]) -> Dict[str, Any]:
        timer = PerformanceTimer("actor_run").start()
        while run.get("status") not in TERMINAL_STATUSES:
            if timer.elapsed_ms / 1000 >= self.run_timeout_seconds:
                raise ScrapeError(
                    "Timed out waiting for actor run",
                    details={"run_id": run.get("id"), "status": run.get("status")},
                )
            await self._sleep(self.poll_interval_seconds)
            run = await self.get_run_status(run["id"])
        return run

    async def scrape(self, source: ScrapeSource) -> List[Dict[str, Any]]:
        run = await self.wait_for_run(await self.start_run(source))
        status = run.get("status")
        if status != SUCCEEDED:
            raise ScrapeError(
                f"Actor run for {source.name} finished with status {status}",
                details={"run_id": run.get("id"), "status": status},
            )
        items = await self.get_results(run)
        logger.info("Actor run finished", source=source.name, run_id=run.get("id"), items_count=len(items))
        return items
