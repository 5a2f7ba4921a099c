"""
Progress reporting for generation calls.

Key Features:
- ProgressEvent: percent (0-100), message and optional ETA
- ProgressReporter: clamps and never lets the reported percent go backwards;
  100 is only emitted by complete()
- ProgressEstimator: background task emitting scheduled milestones and a slow
  creep (capped at 90) while a single long request is outstanding
- EtaTracker: remaining-time estimate from completed chunk timings
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from loguru import logger

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class ProgressEvent:
    """One progress update delivered to the caller."""

    percent: int
    message: str = ""
    eta_seconds: Optional[float] = None


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressReporter:
    """Monotonic progress sink for one generation call."""

    def __init__(self, callback: ProgressCallback | None = None):
        self._callback = callback
        self._percent = 0
        self.events: list[ProgressEvent] = []

    @property
    def percent(self) -> int:
        return self._percent

    def report(self, percent: float, message: str = "", eta_seconds: float | None = None) -> None:
        """Emit an update; values below the last reported percent are raised to it."""
        # 100 means success and is reserved for complete()
        value = max(self._percent, min(99, max(0, int(percent))))
        self._emit(value, message, eta_seconds)

    def complete(self, message: str = "Done") -> None:
        self._emit(100, message, 0.0)

    def _emit(self, percent: int, message: str, eta_seconds: float | None) -> None:
        self._percent = percent
        event = ProgressEvent(percent=percent, message=message, eta_seconds=eta_seconds)
        self.events.append(event)
        if self._callback is not None:
            self._callback(event)


# (seconds since start, percent, message)
DEFAULT_MILESTONES: tuple[tuple[float, int, str], ...] = (
    (2.0, 30, "Generating content..."),
    (5.0, 50, "Still generating..."),
    (10.0, 70, "Almost there..."),
)


class ProgressEstimator:
    """
    Cosmetic progress for a single outstanding request.

    Runs as its own task, independent of the request: it only knows elapsed
    time, never the request state. Stop it when the request finishes.
    """

    def __init__(
        self,
        reporter: ProgressReporter,
        milestones: tuple[tuple[float, int, str], ...] = DEFAULT_MILESTONES,
        creep_interval: float = 3.0,
        creep_step: int = 1,
        ceiling: int = 90,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.reporter = reporter
        self.milestones = milestones
        self.creep_interval = creep_interval
        self.creep_step = creep_step
        self.ceiling = ceiling
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    async def _run(self) -> None:
        elapsed = 0.0
        for at, percent, message in self.milestones:
            await self._sleep(max(0.0, at - elapsed))
            elapsed = max(elapsed, at)
            self.reporter.report(min(percent, self.ceiling), message)

        while self.reporter.percent < self.ceiling:
            await self._sleep(self.creep_interval)
            self.reporter.report(
                min(self.reporter.percent + self.creep_step, self.ceiling),
                "Still working...",
            )

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> ProgressEstimator:
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()


class EtaTracker:
    """Estimate remaining time as elapsed / completed * remaining."""

    def __init__(self, total: int, clock: Callable[[], float] = time.monotonic):
        self.total = total
        self._clock = clock
        self._started = clock()

    def eta(self, completed: int) -> float | None:
        if completed <= 0:
            return None
        elapsed = self._clock() - self._started
        remaining = max(0, self.total - completed)
        estimate = elapsed / completed * remaining
        logger.debug(f"ETA after {completed}/{self.total} chunks: {estimate:.1f}s")
        return estimate
