from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, HTTPException

from ...dependencies import get_container
from ....core.container import Container

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(container: Container = Depends(get_container)) -> Dict[str, Any]:
    try:
        await container.store.count()
    except Exception as e:
        logger.error("Article store health check failed", error=str(e))
        raise HTTPException(
            status_code=503,
            detail={
                "status": "unhealthy",
                "store": "unhealthy",
                "error": "Article store connectivity failed",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )

    return {
        "status": "healthy",
        "service": "News Aggregator API",
        "version": "0.1.0",
        "environment": container.settings.environment,
        "store": "healthy",
        "cache": container.cache.backend,
        "scheduler": "running" if container.scheduler.is_running else "idle",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
