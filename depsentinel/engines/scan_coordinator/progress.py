"""Progress estimation for a running analysis.

The analysis engine reports coarse, bursty work progress. Observers get a
smoothed percentage instead: a time-based projection that may run slightly
ahead of real work but never far ahead, and never moves backwards.

A single ticking loop owns the polling cadence. Its mode is either
``ACTIVE`` (work is moving, poll fast) or ``IDLE`` (nothing moved for a while
and the engine reports it is not running, poll slowly). The transition and the
arithmetic are plain functions so they can be tested without a clock.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable
from enum import Enum

import structlog

from depsentinel.core.config import ProgressSettings
from depsentinel.engines.scan_coordinator.models import AnalysisStatus

log = structlog.get_logger("depsentinel.engine")


class PollMode(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"


def next_mode(
    *,
    advanced: bool,
    since_advance: float,
    is_running: bool,
    idle_threshold: float,
) -> PollMode:
    """Pure transition function for the polling mode."""
    if advanced:
        return PollMode.ACTIVE
    if since_advance > idle_threshold and not is_running:
        return PollMode.IDLE
    return PollMode.ACTIVE


def estimate_total(
    elapsed: float,
    work_progress: int,
    dependency_count: int,
    settings: ProgressSettings,
) -> float:
    """Expected total duration in seconds.

    Work progress of zero carries no rate information, so the heuristic
    per-dependency estimate is used until the first nonzero signal.
    """
    if work_progress > 0:
        return max(elapsed, elapsed / (work_progress / 100))
    return max(settings.min_estimate, settings.per_dependency * dependency_count)


def time_projection(elapsed: float, total: float) -> int:
    if total <= 0:
        return 0
    return min(100, math.floor(elapsed / total * 100))


def blend(displayed: int, projected: int, work_progress: int, lead: int) -> int:
    """Never regress, never outrun work by more than *lead*, cap at 100."""
    capped = min(projected, work_progress + lead)
    return max(displayed, min(100, capped))


def _clamp(value: int) -> int:
    return max(0, min(100, int(value)))


class ProgressEstimator:
    """Polls the engine's status accessor and emits smoothed progress."""

    def __init__(
        self,
        status: Callable[[], AnalysisStatus],
        emit: Callable[[int, str], None],
        *,
        dependency_count: int,
        label: str,
        settings: ProgressSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._status = status
        self._emit = emit
        self._dependency_count = dependency_count
        self._label = label
        self.settings = settings or ProgressSettings()
        self._clock = clock

        now = clock()
        self._started_at = now
        self._last_advance = now
        self._last_emit = now
        self._work = 0
        self._displayed = 0
        self._mode = PollMode.ACTIVE
        self._task: asyncio.Task[None] | None = None

    @property
    def displayed(self) -> int:
        return self._displayed

    @property
    def work_progress(self) -> int:
        return self._work

    @property
    def mode(self) -> PollMode:
        return self._mode

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── ticking ──────────────────────────────────────────────────────────

    def tick(self) -> bool:
        """Poll once. Returns True when the polling mode changed."""
        now = self._clock()
        status = self._status()
        work = _clamp(status.progress)

        advanced = status.is_running and work != self._work
        if advanced:
            self._work = work
            self._last_advance = now
        since_advance = now - self._last_advance

        if status.is_running and since_advance > self.settings.slow_after:
            log.debug(
                "progress.slow",
                stalled_for=round(since_advance, 1),
                progress=self._work,
                current=status.current_item,
            )

        mode = next_mode(
            advanced=advanced,
            since_advance=since_advance,
            is_running=status.is_running,
            idle_threshold=self.settings.idle_threshold,
        )

        elapsed = now - self._started_at
        total = estimate_total(elapsed, self._work, self._dependency_count, self.settings)
        smooth = blend(
            self._displayed,
            time_projection(elapsed, total),
            self._work,
            self.settings.lead,
        )

        if (
            smooth != self._displayed
            or status.current_item
            or now - self._last_emit >= self.settings.heartbeat
        ):
            self._displayed = smooth
            self._last_emit = now
            self._emit(smooth, status.current_item or self._label)

        changed = mode is not self._mode
        self._mode = mode
        return changed

    def interval(self) -> float:
        if self._mode is PollMode.IDLE:
            return self.settings.idle_interval
        return self.settings.active_interval

    async def _loop(self) -> None:
        while True:
            try:
                if self.tick():
                    # Poll once more right away so the cadence switch leaves no gap.
                    self.tick()
            except Exception:
                log.exception("progress.tick_failed")

            if self._clock() - self._started_at > self.settings.max_duration:
                log.warning("progress.ceiling_reached", max_duration=self.settings.max_duration)
                return
            await asyncio.sleep(self.interval())

    # ── lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Emit the initial 0% and start the ticker task."""
        if self.running:
            return
        now = self._clock()
        self._started_at = now
        self._last_advance = now
        self._last_emit = now
        self._emit(self._displayed, "Starting analysis...")
        self._task = asyncio.create_task(self._loop(), name="progress-estimator")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def __aenter__(self) -> ProgressEstimator:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()
