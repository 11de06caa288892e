"""
Dedicated scheduler process.
Runs the cron jobs without serving HTTP: python -m src.worker
"""

import asyncio

import structlog

from .config import get_settings
from .core.container import build_container
from .core.log_config import configure_logging

logger = structlog.get_logger(__name__)


async def run_worker() -> None:
    settings = get_settings()
    container = build_container(settings)
    scheduler = container.scheduler

    if not scheduler.start():
        logger.warning("Scheduler not eligible on this instance, set SCHEDULER_ENABLED=true to force it")
        await container.close()
        return

    stopped = asyncio.Event()
    loop = asyncio.get_running_loop()
    scheduler.install_signal_handlers(loop)
    scheduler.on_shutdown = stopped.set

    logger.info("Scheduler worker running", jobs=list(scheduler.jobs))
    try:
        await stopped.wait()
    finally:
        await container.close()
        logger.info("Scheduler worker stopped")


if __name__ == "__main__":
    configure_logging(get_settings())
    asyncio.run(run_worker())
