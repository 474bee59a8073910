"""Scan triggers — file changes, start-up and configuration changes.

Every trigger funnels into :meth:`ScanCoordinator.run`; the coordinator's
lock turns overlapping triggers into no-ops.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from pathlib import PurePath
from typing import Any

import structlog

from depsentinel.core.config import ScanSettings
from depsentinel.engines.scan_coordinator.coordinator import ScanCoordinator
from depsentinel.engines.scan_coordinator.models import ScanOutcome, ScanTrigger
from depsentinel.engines.scan_coordinator.ports import ConnectivityProbe, ScanObserver

log = structlog.get_logger("depsentinel.triggers")

MANIFEST_NAMES = frozenset(
    {
        "package.json",
        "package-lock.json",
        "npm-shrinkwrap.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "pnpm-workspace.yaml",
    }
)

GITHUB_OFFLINE_MESSAGE = (
    "You are offline. Connect to the internet to validate your GitHub token "
    "and switch to GitHub Advisory."
)

RunScan = Callable[[ScanTrigger], Awaitable[Any]]


def is_manifest(path: str) -> bool:
    return PurePath(path).name in MANIFEST_NAMES


class DebouncedScanTrigger:
    """Collapses a burst of manifest change notifications into one scan.

    A notification only restarts the quiet period. Once it elapses the scan
    runs as a task of its own that later notifications never cancel; an
    overlapping scan is turned away by the coordinator's lock.
    """

    def __init__(self, run_scan: RunScan, *, delay: float = 1.0, enabled: bool = True) -> None:
        self._run_scan = run_scan
        self.delay = delay
        self.enabled = enabled
        self._timer: asyncio.Task[None] | None = None
        self._scans: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        """True while waiting out the quiet period."""
        return self._timer is not None and not self._timer.done()

    @property
    def scanning(self) -> bool:
        return bool(self._scans)

    def notify(self, path: str | None = None) -> bool:
        """Restart the quiet period. Returns False if the change was ignored."""
        if not self.enabled:
            return False
        if path is not None and not is_manifest(path):
            return False
        if self._timer is not None:
            self._timer.cancel()
        log.debug("watch.change", path=path, delay=self.delay)
        self._timer = asyncio.create_task(self._quiet_period(), name="debounce-timer")
        return True

    async def _quiet_period(self) -> None:
        await asyncio.sleep(self.delay)
        scan = asyncio.create_task(self._scan(), name="debounced-scan")
        self._scans.add(scan)
        scan.add_done_callback(self._scans.discard)

    async def _scan(self) -> None:
        try:
            await self._run_scan(ScanTrigger.FILE_CHANGE)
        except Exception:
            log.exception("watch.scan_failed")

    async def dispose(self) -> None:
        """Drop a pending quiet period and wait for scans already started."""
        if self._timer is not None:
            self._timer.cancel()
            await asyncio.gather(self._timer, return_exceptions=True)
            self._timer = None
        if self._scans:
            await asyncio.gather(*self._scans, return_exceptions=True)


def schedule_startup_scan(
    run_scan: RunScan,
    *,
    delay: float = 2.0,
    enabled: bool = True,
) -> asyncio.Task[None] | None:
    """Trigger one scan after *delay* seconds; None when start-up scans are off."""
    if not enabled:
        log.info("startup.scan_disabled")
        return None

    async def _startup() -> None:
        await asyncio.sleep(delay)
        try:
            # Only the delay is cancellable.
            await asyncio.shield(run_scan(ScanTrigger.STARTUP))
        except Exception:
            log.exception("startup.scan_failed")

    return asyncio.create_task(_startup(), name="startup-scan")


class ConfigurationChangeHandler:
    """Applies new settings to the coordinator and rescans when results depend on them."""

    def __init__(
        self,
        coordinator: ScanCoordinator,
        probe: ConnectivityProbe,
        observer: ScanObserver,
        *,
        watcher: DebouncedScanTrigger | None = None,
        run_scan: Callable[..., Awaitable[ScanOutcome]] | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._probe = probe
        self._observer = observer
        self._watcher = watcher
        self._run_scan = run_scan or coordinator.run

    async def apply(self, new: ScanSettings) -> ScanOutcome | None:
        """Returns the outcome of the rescan, or None when no rescan was needed."""
        old = self._coordinator.settings
        changed = {
            f.name: getattr(new, f.name)
            for f in dataclasses.fields(ScanSettings)
            if getattr(new, f.name) != getattr(old, f.name)
        }
        if not changed:
            return None
        log.info("config.changed", keys=sorted(changed))

        rescan = False
        bypass_cache: bool | None = None

        source = changed.pop("vulnerability_source", None)
        if source is not None:
            if await self._can_switch_source(source):
                self._coordinator.update_settings(vulnerability_source=source)
                rescan, bypass_cache = True, True
            else:
                log.warning(
                    "config.source_switch_refused",
                    source=source,
                    kept=old.vulnerability_source,
                )

        if "scan_on_save" in changed:
            enabled = changed["scan_on_save"]
            if self._watcher is not None:
                self._watcher.enabled = enabled
            if enabled:
                # The file system observer is only registered at start-up.
                log.warning("config.restart_required", setting="scan_on_save")

        if "workspace_root" in changed:
            log.warning("config.restart_required", setting="workspace_root")

        if "watch_debounce" in changed and self._watcher is not None:
            self._watcher.delay = changed["watch_debounce"]

        if changed:
            self._coordinator.update_settings(**changed)

        if "enable_cache" in changed:
            self._observer.cache_status_changed(changed["enable_cache"])

        if "include_transitive" in changed or "staleness_hours" in changed:
            rescan = True

        if not rescan:
            return None
        return await self._run_scan(ScanTrigger.CONFIG_CHANGE, bypass_cache=bypass_cache)

    async def _can_switch_source(self, source: str) -> bool:
        if source != "github":
            return True
        self._probe.reset()
        try:
            online = await self._probe.check_connectivity()
        except Exception:
            log.exception("config.probe_failed")
            online = False
        if not online:
            self._observer.error(GITHUB_OFFLINE_MESSAGE, [])
        return online
