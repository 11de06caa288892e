"""Run bookkeeping for the pipeline and the scheduler"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from .article import utcnow


class PipelineStage(str, Enum):
    IDLE = "idle"
    SCRAPING = "scraping"
    NORMALIZING = "normalizing"
    ENRICHING = "enriching"
    PERSISTING = "persisting"
    CACHE_INVALIDATING = "cache_invalidating"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineRunStats:
    """Counters for one aggregation pass. Logged and alerted on, never persisted."""
    scraped: int = 0
    processed: int = 0
    saved: int = 0
    skipped: int = 0
    invalid: int = 0
    failed: int = 0
    enrichment_failures: int = 0
    duration_ms: int = 0
    stage: PipelineStage = PipelineStage.IDLE
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    def finalize(self, stage: PipelineStage, duration_ms: int, error: Optional[str] = None) -> None:
        self.stage = stage
        self.duration_ms = duration_ms
        self.finished_at = utcnow()
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scraped": self.scraped,
            "processed": self.processed,
            "saved": self.saved,
            "skipped": self.skipped,
            "invalid": self.invalid,
            "failed": self.failed,
            "enrichment_failures": self.enrichment_failures,
            "duration": self.duration_ms,
            "stage": self.stage.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
        }


JobHandler = Callable[[], Awaitable[Any]]


@dataclass
class JobDescriptor:
    name: str
    cron_expression: str
    handler: JobHandler
    description: str
    timezone: str = "UTC"
