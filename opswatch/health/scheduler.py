"""Health check scheduler — runs a cycle at a fixed interval.

Uses a simple asyncio loop. A failing cycle is logged and the loop keeps
going; cycles never overlap.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .reporter import CycleResult, HealthReporter

logger = logging.getLogger(__name__)


class HealthScheduler:
    """Periodically runs ``HealthReporter.run_cycle``.

    Lifecycle:
        scheduler = HealthScheduler(reporter, interval=60)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        reporter: HealthReporter,
        interval: float = 60,
        on_cycle: Callable[[CycleResult], Any] | None = None,
    ) -> None:
        self.reporter = reporter
        self.interval = interval
        self.on_cycle = on_cycle
        self.cycles_run = 0
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="health-scheduler")
        logger.info("Health scheduler started: every %ss", self.interval)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        logger.info("Health scheduler stopped")

    async def run_now(self) -> CycleResult:
        """Run one cycle immediately and hand it to ``on_cycle``."""
        result = await self.reporter.run_cycle()
        self.cycles_run += 1
        if self.on_cycle:
            try:
                self.on_cycle(result)
            except Exception:
                logger.exception("on_cycle callback error")
        return result

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.run_now()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Health cycle error")
            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
