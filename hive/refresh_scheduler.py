"""
refresh_scheduler.py — Two independent repeating tasks on the asyncio loop.

  data refresh  — fires on start, then every `data_interval` seconds
  simulation    — fires every `simulation_interval` seconds (optional)

Each task runs its job in a separate asyncio.Task so a slow firing never
delays the timer. A tick that lands while the previous firing is still in
flight is skipped. Explicit refresh requests (refresh_now) arriving while
busy are queued with depth 1: however many arrive, one extra run follows.

stop() is deterministic: the timers are cancelled and awaited, and any
firing requested afterwards is a no-op.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

Job = Callable[[], Awaitable[None]]


class PeriodicTask:

    def __init__(
        self,
        name:            str,
        interval:        float,
        job:             Job,
        run_immediately: bool = True,
        cancel_inflight: bool = True,
    ) -> None:
        self.name = name
        self.interval = interval
        self._job = job
        self._run_immediately = run_immediately
        self._cancel_inflight = cancel_inflight
        self._ticker: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self._pending = False
        self._stopped = True
        self.fire_count = 0
        self.skipped_count = 0

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return not self._stopped and self._ticker is not None and not self._ticker.done()

    @property
    def is_busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        if self.is_running:
            return
        self._stopped = False
        self._ticker = asyncio.create_task(self._tick_loop(), name=f"{self.name}-timer")
        logger.debug(f"{self.name}: started (every {self.interval}s)")

    async def stop(self) -> None:
        self._stopped = True
        self._pending = False

        ticker, self._ticker = self._ticker, None
        if ticker is not None and not ticker.done():
            ticker.cancel()
            try:
                await ticker
            except asyncio.CancelledError:
                pass

        inflight = self._inflight
        if inflight is not None and not inflight.done():
            if self._cancel_inflight:
                inflight.cancel()
            try:
                await inflight
            except asyncio.CancelledError:
                pass
        logger.debug(f"{self.name}: stopped")

    async def restart(self) -> None:
        await self.stop()
        self.start()

    # ── Firing ────────────────────────────────────────────────────────────────

    def _launch(self) -> bool:
        if self._stopped:
            return False
        if self.is_busy:
            self.skipped_count += 1
            logger.debug(f"{self.name}: previous firing still running, tick skipped")
            return False
        self._inflight = asyncio.create_task(self._execute(), name=f"{self.name}-run")
        return True

    def trigger(self) -> bool:
        """Request a run now; queued (depth 1) if one is in flight."""
        if self._stopped:
            return False
        if self.is_busy:
            self._pending = True
            return True
        return self._launch()

    async def fire(self) -> bool:
        """Run one firing and wait for it. False if stopped or busy."""
        if not self._launch():
            return False
        inflight = self._inflight
        if inflight is not None:
            await inflight
        return True

    async def _tick_loop(self) -> None:
        if self._run_immediately:
            self._launch()
        while not self._stopped:
            await asyncio.sleep(self.interval)
            self._launch()

    async def _execute(self) -> None:
        while True:
            self.fire_count += 1
            try:
                await self._job()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception(f"{self.name}: firing failed: {exc}")
            if self._stopped or not self._pending:
                break
            self._pending = False


class RefreshScheduler:
    """
    Usage:
        scheduler = RefreshScheduler(engine.refresh, engine.auto_simulate)
        scheduler.start()
        ...
        await scheduler.change_granularity()   # after the view's granularity changed
        await scheduler.stop()
    """

    def __init__(
        self,
        refresh_job:         Job,
        simulation_job:      Optional[Job] = None,
        data_interval:       float = 10.0,
        simulation_interval: float = 60.0,
    ) -> None:
        self.data_task = PeriodicTask("data-refresh", data_interval, refresh_job, run_immediately=True)
        self.simulation_task: Optional[PeriodicTask] = None
        if simulation_job is not None:
            # A pass in progress finishes its current agent; the job itself observes halt()
            self.simulation_task = PeriodicTask(
                "simulation", simulation_interval, simulation_job,
                run_immediately=False, cancel_inflight=False,
            )

    @property
    def is_running(self) -> bool:
        return self.data_task.is_running

    def start(self) -> None:
        if self.is_running:
            return
        self.data_task.start()
        if self.simulation_task is not None:
            self.simulation_task.start()
        logger.info("RefreshScheduler started")

    async def stop(self) -> None:
        was_running = self.is_running
        await self.data_task.stop()
        if self.simulation_task is not None:
            await self.simulation_task.stop()
        if was_running:
            logger.info("RefreshScheduler stopped")

    async def change_granularity(self) -> None:
        """Cancel the data timer and start a fresh one that fires immediately."""
        if not self.is_running:
            return
        await self.data_task.restart()

    async def refresh_now(self) -> None:
        self.data_task.trigger()
