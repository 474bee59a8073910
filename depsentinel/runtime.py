"""Runtime wiring — builds the coordinator, its store and its triggers.

External collaborators (workspace scanner, analysis engine, health scorer and
optionally a cache accessor) come from a factory named ``module:callable``.
The callable receives the :class:`ScanSettings` and returns
:class:`Collaborators`.
"""

from __future__ import annotations

import asyncio
import importlib
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from depsentinel.core.config import ScanSettings
from depsentinel.core.database import create_all, create_engine, create_session_factory
from depsentinel.dao.snapshot_dao import SnapshotDAO
from depsentinel.engines.connectivity.network_status import NetworkStatusService
from depsentinel.engines.scan_coordinator.coordinator import ScanCoordinator
from depsentinel.engines.scan_coordinator.models import ScanOutcome, ScanTrigger
from depsentinel.engines.scan_coordinator.ports import (
    AnalysisEngine,
    CacheAccessor,
    ConnectivityProbe,
    HealthScorer,
    ScanObserver,
    WorkspaceScanner,
)
from depsentinel.engines.scan_coordinator.status_board import ScanStatusBoard
from depsentinel.engines.scan_coordinator.store import DatabaseSnapshotStore
from depsentinel.scheduler import Scheduler, create_scheduler
from depsentinel.services.snapshot_service import SnapshotService
from depsentinel.triggers import (
    ConfigurationChangeHandler,
    DebouncedScanTrigger,
    schedule_startup_scan,
)
from depsentinel.watch import ManifestWatcher

log = structlog.get_logger("depsentinel.runtime")


@dataclass
class Collaborators:
    scanner: WorkspaceScanner
    engine: AnalysisEngine
    scorer: HealthScorer
    cache: CacheAccessor | None = None
    probe: ConnectivityProbe | None = None


@dataclass
class Runtime:
    settings: ScanSettings
    coordinator: ScanCoordinator
    board: ScanStatusBoard
    probe: ConnectivityProbe
    store: DatabaseSnapshotStore
    snapshot_service: SnapshotService
    session_factory: async_sessionmaker[AsyncSession]
    engine: AsyncEngine
    watcher: DebouncedScanTrigger = field(init=False)
    file_watcher: ManifestWatcher = field(init=False)
    config_handler: ConfigurationChangeHandler = field(init=False)
    scheduler: Scheduler | None = field(init=False)
    _tasks: set[asyncio.Task[ScanOutcome]] = field(default_factory=set, init=False, repr=False)
    _startup: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.watcher = DebouncedScanTrigger(
            self.run_scan,
            delay=self.settings.watch_debounce,
            enabled=self.settings.scan_on_save,
        )
        self.file_watcher = ManifestWatcher(self.settings.workspace_root, self.watcher)
        self.config_handler = ConfigurationChangeHandler(
            self.coordinator,
            self.probe,
            self.board,
            watcher=self.watcher,
            run_scan=self.run_scan,
        )
        self.scheduler = create_scheduler(self.coordinator, run_scan=self.run_scan)

    async def start(self, *, startup_scan: bool = True) -> None:
        """Create tables, then arm the start-up scan, file watching and periodic rescans."""
        await create_all(self.engine)
        if startup_scan:
            self._startup = schedule_startup_scan(
                self.run_scan,
                delay=self.settings.startup_delay,
                enabled=self.settings.auto_scan_on_startup,
            )
        if self.settings.scan_on_save:
            self.file_watcher.start()
        if self.scheduler is not None:
            await self.scheduler.start()
        log.info("runtime.started", project_key=self.settings.project_key)

    async def close(self) -> None:
        """Stop every trigger, then wait for the scan in flight to finish."""
        if self.scheduler is not None:
            await self.scheduler.stop()
        await asyncio.to_thread(self.file_watcher.stop)
        if self._startup is not None:
            self._startup.cancel()
            await asyncio.gather(self._startup, return_exceptions=True)
            self._startup = None
        await self.watcher.dispose()
        if self._tasks:
            log.info("runtime.waiting_for_scan", tasks=len(self._tasks))
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.coordinator.wait_idle()
        if isinstance(self.probe, NetworkStatusService):
            await self.probe.close()
        await self.engine.dispose()
        log.info("runtime.stopped")

    def _launch(
        self, trigger: ScanTrigger, bypass_cache: bool | None
    ) -> asyncio.Task[ScanOutcome]:
        task = asyncio.create_task(
            self.coordinator.run(trigger, bypass_cache=bypass_cache),
            name=f"scan-{trigger.value}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run_scan(
        self,
        trigger: ScanTrigger = ScanTrigger.COMMAND,
        *,
        bypass_cache: bool | None = None,
    ) -> ScanOutcome:
        """Run a scan and wait for it. Cancelling the caller leaves the scan running."""
        return await asyncio.shield(self._launch(trigger, bypass_cache))

    def request_scan(
        self,
        trigger: ScanTrigger = ScanTrigger.COMMAND,
        *,
        bypass_cache: bool | None = None,
    ) -> bool:
        """Start a scan in the background. False if one is already running."""
        if self.coordinator.is_running:
            return False
        self._launch(trigger, bypass_cache)
        return True


def build_runtime(
    collaborators: Collaborators,
    settings: ScanSettings | None = None,
    *,
    listeners: list[ScanObserver] | None = None,
) -> Runtime:
    settings = settings or ScanSettings.from_env()
    engine = create_engine(settings.database_url)
    session_factory = create_session_factory(engine)
    snapshot_service = SnapshotService(SnapshotDAO())
    store = DatabaseSnapshotStore(session_factory, snapshot_service)
    probe = collaborators.probe or NetworkStatusService(
        settings.connectivity_url, timeout=settings.connectivity_timeout
    )
    board = ScanStatusBoard(listeners)
    board.cache_enabled = settings.enable_cache

    coordinator = ScanCoordinator(
        scanner=collaborators.scanner,
        engine=collaborators.engine,
        probe=probe,
        snapshots=store,
        scorer=collaborators.scorer,
        observer=board,
        cache=collaborators.cache,
        settings=settings,
    )
    return Runtime(
        settings=settings,
        coordinator=coordinator,
        board=board,
        probe=probe,
        store=store,
        snapshot_service=snapshot_service,
        session_factory=session_factory,
        engine=engine,
    )


def load_factory(spec: str) -> Callable[[ScanSettings], Collaborators]:
    """Resolve ``package.module:callable``."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"factory must look like 'module:callable', got {spec!r}")
    module = importlib.import_module(module_name)
    try:
        factory = getattr(module, attr)
    except AttributeError as exc:
        raise ValueError(f"{module_name!r} has no attribute {attr!r}") from exc
    if not callable(factory):
        raise ValueError(f"{spec!r} is not callable")
    return factory
