"""Scheduler — periodic re-evaluation of the workspace through the scan coordinator."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from depsentinel.engines.scan_coordinator.coordinator import ScanCoordinator
from depsentinel.engines.scan_coordinator.models import ScanOutcome, ScanStatus, ScanTrigger

logger = structlog.get_logger("depsentinel.scheduler")


class EngineLoop:
    """Single scheduling loop with trigger/timeout wake mechanism."""

    def __init__(
        self,
        name: str,
        run_fn: Callable[[], Awaitable[int]],
        interval: float,
    ) -> None:
        self.name = name
        self.run_fn = run_fn
        self.interval = interval
        self.trigger = asyncio.Event()

    async def loop(self) -> None:
        """Run forever, waking on trigger or timeout."""
        while True:
            try:
                await asyncio.wait_for(self.trigger.wait(), timeout=self.interval)
                self.trigger.clear()
            except asyncio.TimeoutError:
                pass

            try:
                processed = await self.run_fn()
                logger.info("engine.cycle", engine=self.name, processed=processed)
            except Exception:
                logger.exception("engine.error", engine=self.name)


class Scheduler:
    """Manages lifecycle of EngineLoop tasks."""

    def __init__(self, loops: list[EngineLoop]) -> None:
        self._loops = loops
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        self._tasks = [
            asyncio.create_task(loop.loop(), name=f"engine-{loop.name}") for loop in self._loops
        ]
        logger.info("scheduler.started", engines=[loop.name for loop in self._loops])

    async def stop(self) -> None:
        """Cancel all loops and wait for them to exit."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("scheduler.stopped")


def create_scheduler(
    coordinator: ScanCoordinator,
    *,
    run_scan: Callable[[ScanTrigger], Awaitable[ScanOutcome]] | None = None,
) -> Scheduler | None:
    """Build the periodic rescan loop, or None when ``rescan_interval`` is 0.

    *run_scan* defaults to ``coordinator.run``; the runtime passes one that
    keeps a scan running when the loop is cancelled.
    """
    run = run_scan or coordinator.run
    interval = coordinator.settings.rescan_interval
    if interval <= 0:
        return None

    async def _rescan() -> int:
        outcome = await run(ScanTrigger.SCHEDULED)
        return 1 if outcome.status is ScanStatus.COMPLETED else 0

    return Scheduler([EngineLoop("rescan", _rescan, interval)])
