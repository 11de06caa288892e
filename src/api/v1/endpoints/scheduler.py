from fastapi import APIRouter, Depends

from ...dependencies import get_scheduler
from ....news.schemas.responses import JobRunResponse, SchedulerStatusResponse
from ....news.tasks.scheduler import Scheduler

router = APIRouter()


@router.get("/status", response_model=SchedulerStatusResponse)
async def get_scheduler_status(scheduler: Scheduler = Depends(get_scheduler)):
    return scheduler.status()


@router.post("/jobs/{job_name}/trigger", response_model=JobRunResponse)
async def trigger_job(job_name: str, scheduler: Scheduler = Depends(get_scheduler)):
    """Run a job immediately. Job failures are reported in the body, not as an error status."""
    result = await scheduler.trigger_job(job_name)
    return result.to_dict()
