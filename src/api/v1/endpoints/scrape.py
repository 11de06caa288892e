from typing import List, Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Body, Depends

from ...dependencies import get_container, get_pipeline, get_scheduler
from ....core.container import Container
from ....exceptions import PipelineError
from ....news.schemas.article import ScrapeSource
from ....news.schemas.requests import ManualScrapeRequest
from ....news.schemas.responses import ManualScrapeResponse, ScrapeStatusResponse
from ....news.services.pipeline import PipelineOrchestrator
from ....news.tasks.scheduler import Scheduler

logger = structlog.get_logger(__name__)

router = APIRouter()


async def run_pipeline_in_background(pipeline: PipelineOrchestrator, sources: List[ScrapeSource]) -> None:
    try:
        stats = await pipeline.run(sources)
        logger.info("Manual scrape completed", **stats.to_dict())
    except PipelineError as e:
        # Already logged and alerted by the pipeline
        logger.warning("Manual scrape failed", error=e.message)


@router.post("/manual", response_model=ManualScrapeResponse, status_code=202)
async def manual_scrape(
    background_tasks: BackgroundTasks,
    payload: Optional[ManualScrapeRequest] = Body(None),
    container: Container = Depends(get_container),
    pipeline: PipelineOrchestrator = Depends(get_pipeline),
):
    """Start a pipeline run now; returns immediately"""
    sources = payload.sources if payload and payload.sources else container.scrape_sources()
    background_tasks.add_task(run_pipeline_in_background, pipeline, sources)
    logger.info("Manual scrape started", sources=[source.name for source in sources])
    return ManualScrapeResponse(
        status="started",
        message="Scraping process started in background",
        sources=[source.name for source in sources],
    )


@router.get("/status", response_model=ScrapeStatusResponse)
async def get_scrape_status(
    pipeline: PipelineOrchestrator = Depends(get_pipeline),
    scheduler: Scheduler = Depends(get_scheduler),
):
    """Current pipeline stage, last run stats and the next scheduled scrape"""
    return {**pipeline.status(), "next_scheduled": scheduler.next_run("daily_scrape")}
