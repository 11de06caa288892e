"""
Timing utilities for pipeline stages and scheduled jobs.
"""

import time
from typing import Optional


class PerformanceTimer:
    """Monotonic timer reporting durations in milliseconds."""

    def __init__(self, stage_name: str):
        self.stage_name = stage_name
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

    def start(self) -> "PerformanceTimer":
        self.start_time = time.monotonic()
        self.end_time = None
        return self

    def stop(self) -> int:
        if self.start_time is None:
            raise ValueError("Timer not started")
        self.end_time = time.monotonic()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> int:
        """Elapsed time so far, or the final duration once stopped."""
        if self.start_time is None:
            raise ValueError("Timer not started")
        end = self.end_time if self.end_time is not None else time.monotonic()
        return int((end - self.start_time) * 1000)

