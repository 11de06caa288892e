"""
Background job scheduler
Decides whether this process runs the cron jobs, registers them with
APScheduler and executes each firing in an isolated, logged, alerted wrapper.

Jobs:
- daily_scrape: full aggregation pipeline over the configured sources
- cleanup: delete articles past the retention window, drop stale analytics caches
- cache_cleanup: purge expired cache entries
"""

import asyncio
import signal
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ...core.performance_timer import PerformanceTimer
from ...exceptions import ConfigurationError, JobNotFoundError, MissingCapabilityError
from ..schemas.article import ScrapeSource
from ..schemas.pipeline import JobDescriptor
from ..services.alerts import build_alert_payload
from ..services.cache_invalidator import CLEANUP_CACHE_PATTERNS

logger = structlog.get_logger(__name__)

Flag = Union[str, bool, int, None]

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def parse_flag(value: Flag) -> Optional[bool]:
    """Tri-state flag: True, False, or None when unset/unrecognised."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return None


def parse_replica_index(value: Flag) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def should_run(
    disable: Flag = None,
    enable: Flag = None,
    dedicated: Flag = None,
    replica_index: Flag = None,
    environment: Optional[str] = "development",
) -> bool:
    """
    Whether this process instance should execute background jobs.

    Precedence: explicit disable, explicit enable, dedicated-instance flag,
    non-zero replica index (off), then the environment default (on outside
    production). There is no cross-replica lock; two instances that both
    compute True will both run jobs.
    """
    if parse_flag(disable) is True:
        return False
    if parse_flag(enable) is True:
        return True
    if parse_flag(dedicated) is True:
        return True
    index = parse_replica_index(replica_index)
    if index is not None and index != 0:
        return False
    return (environment or "development").strip().lower() != "production"


def parse_cron(expression: str, tz: str = "UTC") -> CronTrigger:
    """Parse a five-field crontab expression, raising ConfigurationError when malformed."""
    try:
        return CronTrigger.from_crontab(expression, timezone=tz)
    except (ValueError, KeyError) as e:
        raise ConfigurationError(
            f"Invalid cron schedule '{expression}' ({tz}): {e}",
            details={"expression": expression, "timezone": tz},
        ) from e


@dataclass
class JobRunResult:
    job: str
    run_id: str
    status: str
    duration_ms: int
    result: Any = None
    error: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job,
            "run_id": self.run_id,
            "status": self.status,
            "duration_ms": self.duration_ms,
            "result": self.result,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
        }


@dataclass
class SchedulerConfig:
    daily_scrape_cron: str = "0 6 * * *"
    cleanup_cron: str = "0 2 * * 0"
    cache_cleanup_cron: str = "0 * * * *"
    timezone: str = "UTC"
    retention_days: int = 90
    environment: str = "development"
    enabled: bool = True


# Collaborator name -> operations it must expose
REQUIRED_CAPABILITIES: Dict[str, Sequence[str]] = {
    "pipeline": ("run",),
    "store": ("delete_older_than",),
    "cache": ("purge_expired",),
    "cache_invalidator": ("invalidate",),
    "alert_sink": ("notify",),
}


class Scheduler:
    def __init__(
        self,
        pipeline: Any,
        store: Any,
        cache: Any,
        cache_invalidator: Any,
        alert_sink: Any,
        sources_provider: Callable[[], List[ScrapeSource]],
        config: Optional[SchedulerConfig] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.pipeline = pipeline
        self.store = store
        self.cache = cache
        self.cache_invalidator = cache_invalidator
        self.alert_sink = alert_sink
        self.sources_provider = sources_provider
        self.config = config or SchedulerConfig()
        self._scheduler = scheduler
        self.jobs: Dict[str, JobDescriptor] = {}
        self._triggers: Dict[str, CronTrigger] = {}
        self.is_initialized = False
        self.is_running = False
        self.on_shutdown: Optional[Callable[[], None]] = None

    # Lifecycle

    def validate_services(self) -> None:
        missing = []
        for name, operations in REQUIRED_CAPABILITIES.items():
            collaborator = getattr(self, name, None)
            for operation in operations:
                if collaborator is None or not callable(getattr(collaborator, operation, None)):
                    missing.append(f"{name}.{operation}")
        if not callable(self.sources_provider):
            missing.append("sources_provider")
        if missing:
            raise MissingCapabilityError(missing)

    def build_jobs(self) -> List[JobDescriptor]:
        tz = self.config.timezone
        return [
            JobDescriptor(
                name="daily_scrape",
                cron_expression=self.config.daily_scrape_cron,
                handler=self.run_daily_scrape,
                description="Scrape all sources, enrich and store new articles",
                timezone=tz,
            ),
            JobDescriptor(
                name="cleanup",
                cron_expression=self.config.cleanup_cron,
                handler=self.run_cleanup,
                description=f"Delete articles older than {self.config.retention_days} days and stale analytics caches",
                timezone=tz,
            ),
            JobDescriptor(
                name="cache_cleanup",
                cron_expression=self.config.cache_cleanup_cron,
                handler=self.run_cache_cleanup,
                description="Purge expired cache entries",
                timezone=tz,
            ),
        ]

    def initialize(self) -> None:
        """Validate collaborators and schedules; nothing is registered if anything is wrong."""
        if self.is_initialized:
            return
        self.validate_services()
        descriptors = self.build_jobs()
        triggers = {d.name: parse_cron(d.cron_expression, d.timezone) for d in descriptors}
        self.jobs = {d.name: d for d in descriptors}
        self._triggers = triggers
        self.is_initialized = True
        logger.info("Scheduler initialized", jobs=list(self.jobs), timezone=self.config.timezone)

    def start(self) -> bool:
        """Register cron timers. Returns False when this instance is not eligible."""
        if self.is_running:
            logger.warning("Scheduler is already running")
            return True

        self.initialize()

        if not self.config.enabled:
            logger.info("Scheduler disabled for this instance", environment=self.config.environment)
            return False

        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone=self.config.timezone)

        for name, descriptor in self.jobs.items():
            self._scheduler.add_job(
                self._run_scheduled,
                trigger=self._triggers[name],
                args=[name],
                id=name,
                name=descriptor.description,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=300,
                replace_existing=True,
            )
            logger.info("Job scheduled", job=name, schedule=descriptor.cron_expression, timezone=descriptor.timezone)

        self._scheduler.start()
        self.is_running = True
        logger.info("Scheduler started successfully", jobs=list(self.jobs))
        return True

    def shutdown(self) -> None:
        """Stop future firings. In-flight jobs are not cancelled. Safe to call repeatedly."""
        if not self.is_running and not self.jobs:
            logger.debug("Scheduler is not running")
            return

        logger.info("Stopping scheduler")
        if self._scheduler is not None and self.is_running:
            for name in list(self.jobs):
                if self._scheduler.get_job(name) is not None:
                    self._scheduler.remove_job(name)
                logger.info("Stopped job", job=name)
            self._scheduler.shutdown(wait=False)

        self.jobs.clear()
        self._triggers.clear()
        self.is_running = False
        self.is_initialized = False
        logger.info("Scheduler stopped")
        if self.on_shutdown is not None:
            self.on_shutdown()

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform/loop
                logger.debug("Signal handler not installed", signal=sig.name)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received termination signal", signal=sig.name)
        self.shutdown()

    # Execution

    async def _run_scheduled(self, name: str) -> None:
        descriptor = self.jobs.get(name)
        if descriptor is None:
            return
        await self.execute(descriptor)

    async def execute(self, descriptor: JobDescriptor) -> JobRunResult:
        """Run one job firing. Failures are logged and alerted, never raised."""
        run_id = uuid.uuid4().hex[:12]
        log = logger.bind(job=descriptor.name, run_id=run_id)
        timer = PerformanceTimer(descriptor.name).start()
        log.info("Job started")

        try:
            result = await descriptor.handler()
        except Exception as e:
            duration_ms = timer.stop()
            log.error("Job failed", error=str(e), duration_ms=duration_ms, exc_info=True)
            await self._send_job_failure_alert(descriptor.name, e)
            return JobRunResult(descriptor.name, run_id, "failed", duration_ms, error=str(e))

        duration_ms = timer.stop()
        log.info("Job completed successfully", duration_ms=duration_ms, result=result)
        return JobRunResult(descriptor.name, run_id, "success", duration_ms, result=result)

    async def trigger_job(self, name: str) -> JobRunResult:
        """Run a registered job now, outside its schedule."""
        descriptor = self.jobs.get(name)
        if descriptor is None:
            raise JobNotFoundError(name)
        logger.info("Manually triggering job", job=name)
        return await self.execute(descriptor)

    async def _send_job_failure_alert(self, job_name: str, error: BaseException) -> None:
        try:
            await self.alert_sink.notify(build_alert_payload(job_name, error, self.config.environment))
        except Exception as alert_error:
            logger.error("Failed to send job failure alert", job=job_name, error=str(alert_error))

    # Job bodies

    async def run_daily_scrape(self) -> Dict[str, Any]:
        sources = self.sources_provider()
        stats = await self.pipeline.run(sources)
        return stats.to_dict()

    async def run_cleanup(self) -> Dict[str, Any]:
        deleted = await self.store.delete_older_than(self.config.retention_days)
        await self.cache_invalidator.invalidate(CLEANUP_CACHE_PATTERNS)
        return {"deleted": deleted, "retention_days": self.config.retention_days}

    async def run_cache_cleanup(self) -> Dict[str, Any]:
        purged = await self.cache.purge_expired()
        return {"purged": purged}

    # Introspection

    def next_run(self, name: str) -> Optional[str]:
        if self._scheduler is not None and self.is_running:
            job = self._scheduler.get_job(name)
            if job is not None and job.next_run_time is not None:
                return job.next_run_time.isoformat()
        trigger = self._triggers.get(name)
        if trigger is None:
            return None
        next_fire = trigger.get_next_fire_time(None, datetime.now(timezone.utc))
        return next_fire.isoformat() if next_fire else None

    def status(self) -> Dict[str, Any]:
        channels = getattr(self.alert_sink, "channels", {}) or {}
        return {
            "enabled": self.config.enabled,
            "running": self.is_running,
            "environment": self.config.environment,
            "timezone": self.config.timezone,
            "jobs": {
                name: {
                    "schedule": descriptor.cron_expression,
                    "description": descriptor.description,
                    "next_run": self.next_run(name),
                }
                for name, descriptor in self.jobs.items()
            },
            "alerts": {channel: bool(configured) for channel, configured in channels.items()},
        }
