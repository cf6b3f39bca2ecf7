"""Polling scheduler lifecycle manager.

Drives :class:`SyncPipeline` cycles on a fixed period from a single
background task. Cycles never overlap: a tick that fires while a cycle is
still running is skipped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reposter.services.sync_service import CycleResult, SyncPipeline

logger = logging.getLogger(__name__)

_STOP_TIMEOUT = 30.0


class PollingScheduler:
    """Recurring driver for sync cycles.

    Args:
        pipeline: the per-cycle work.
        interval: seconds between cycle starts.
    """

    def __init__(self, pipeline: SyncPipeline, interval: float = 60.0) -> None:
        if interval <= 0:
            msg = f"interval must be > 0, got {interval}"
            raise ValueError(msg)
        self._pipeline = pipeline
        self._interval = interval
        self._timer_task: asyncio.Task[None] | None = None
        self._cycle_task: asyncio.Task[CycleResult | None] | None = None
        self._last_cycle: CycleResult | None = None
        self._skipped_ticks = 0

    @property
    def is_running(self) -> bool:
        """Whether the timer task is alive."""
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    @property
    def last_cycle(self) -> CycleResult | None:
        return self._last_cycle

    @property
    def skipped_ticks(self) -> int:
        return self._skipped_ticks

    def start(self) -> None:
        """Start the timer. The first cycle runs immediately."""
        if self.is_running:
            return
        self._timer_task = asyncio.create_task(self._run(), name="polling-scheduler")
        logger.info("Polling scheduler started (interval=%.1fs)", self._interval)

    async def stop(self) -> None:
        """Stop the timer and wait for the in-flight cycle to finish."""
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        if self._cycle_task is not None and not self._cycle_task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._cycle_task), timeout=_STOP_TIMEOUT)
            except TimeoutError:
                logger.warning("In-flight cycle did not finish in %.0fs, cancelling", _STOP_TIMEOUT)
                self._cycle_task.cancel()
                try:
                    await self._cycle_task
                except asyncio.CancelledError:
                    pass
        self._cycle_task = None
        logger.info("Polling scheduler stopped")

    async def run_once(self) -> CycleResult | None:
        """Run a single cycle now, unless one is already running."""
        if self.cycle_in_progress:
            self._skipped_ticks += 1
            logger.warning("Previous polling cycle still running, skipping tick")
            return None
        self._cycle_task = asyncio.create_task(self._cycle(), name="polling-cycle")
        return await asyncio.shield(self._cycle_task)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            if self.cycle_in_progress:
                self._skipped_ticks += 1
                logger.warning("Previous polling cycle still running, skipping tick")
            else:
                self._cycle_task = asyncio.create_task(self._cycle(), name="polling-cycle")
            next_tick += self._interval
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    async def _cycle(self) -> CycleResult | None:
        logger.debug("Starting polling cycle...")
        try:
            result = await self._pipeline.run_cycle()
        except Exception:
            # Store outage while selecting users; the next tick retries.
            logger.exception("Polling cycle failed")
            return None
        self._last_cycle = result
        return result
