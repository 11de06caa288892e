"""Bounded retry with linear backoff for async operations."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from ...exceptions import RetryExhaustedError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RetryExecutor:
    """Runs a zero-argument coroutine factory until it succeeds or attempts run out.

    The wait before attempt ``n + 1`` is ``delay_seconds * n``. The executor
    knows nothing about the operation; scrape calls, LLM calls and store
    batches all go through the same path.

    Args:
        max_attempts: Default number of attempts per call
        delay_seconds: Base delay, multiplied by the failed attempt number
        sleep: Awaitable sleep function (injected in tests)
    """

    def __init__(
        self,
        max_attempts: int = 3,
        delay_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "",
        max_attempts: Optional[int] = None,
    ) -> T:
        """Call ``operation`` with retries.

        Raises:
            RetryExhaustedError: after the last attempt fails, chained to the
                last underlying exception.
        """
        attempts = max_attempts or self.max_attempts
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                result = await operation()
            except Exception as e:
                last_error = e
                logger.warning(
                    "Attempt failed",
                    label=label,
                    attempt=attempt,
                    max_attempts=attempts,
                    error=str(e),
                )
                if attempt < attempts:
                    await self._sleep(self.delay_seconds * attempt)
                continue

            if attempt > 1:
                logger.info("Succeeded after retry", label=label, attempt=attempt)
            return result

        logger.error("All attempts failed", label=label, max_attempts=attempts, error=str(last_error))
        raise RetryExhaustedError(label, attempts, last_error) from last_error
