"""Tests for scan triggers and configuration change handling."""

from __future__ import annotations

import asyncio
import dataclasses

import pytest
from factories import FakeEngine, FakeProbe, MemoryStore, StaticScanner, dep

from depsentinel.engines.scan_coordinator.models import ScanStatus, ScanTrigger
from depsentinel.triggers import (
    GITHUB_OFFLINE_MESSAGE,
    ConfigurationChangeHandler,
    DebouncedScanTrigger,
    is_manifest,
    schedule_startup_scan,
)


class Recorder:
    """Stands in for ``coordinator.run``."""

    def __init__(self, error: Exception | None = None) -> None:
        self.triggers: list[ScanTrigger] = []
        self.error = error

    async def __call__(self, trigger: ScanTrigger) -> None:
        self.triggers.append(trigger)
        if self.error is not None:
            raise self.error


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


# ── file watcher ──


class TestIsManifest:
    @pytest.mark.parametrize(
        "path", ["package.json", "apps/web/package-lock.json", "/repo/yarn.lock", "pnpm-lock.yaml"]
    )
    def test_manifests(self, path):
        assert is_manifest(path)

    @pytest.mark.parametrize("path", ["src/index.ts", "package.json.bak", "README.md"])
    def test_other_files(self, path):
        assert not is_manifest(path)


class TestDebouncedScanTrigger:
    async def test_burst_collapses_into_one_scan(self):
        run = Recorder()
        watcher = DebouncedScanTrigger(run, delay=0.05)

        for _ in range(5):
            assert watcher.notify("package.json")
            await asyncio.sleep(0.01)
        await _wait_until(lambda: run.triggers)
        await asyncio.sleep(0.08)

        assert run.triggers == [ScanTrigger.FILE_CHANGE]
        assert not watcher.pending

    async def test_non_manifest_ignored(self):
        run = Recorder()
        watcher = DebouncedScanTrigger(run, delay=0.01)

        assert not watcher.notify("src/app.js")
        assert not watcher.pending

    async def test_disabled_ignores_changes(self):
        run = Recorder()
        watcher = DebouncedScanTrigger(run, delay=0.01, enabled=False)

        assert not watcher.notify("package.json")
        await asyncio.sleep(0.03)
        assert run.triggers == []

    async def test_scan_errors_are_contained(self):
        run = Recorder(error=RuntimeError("boom"))
        watcher = DebouncedScanTrigger(run, delay=0.01)

        watcher.notify()
        await _wait_until(lambda: run.triggers and not watcher.scanning)

        assert run.triggers == [ScanTrigger.FILE_CHANGE]

    async def test_dispose_cancels_pending(self):
        run = Recorder()
        watcher = DebouncedScanTrigger(run, delay=10)
        watcher.notify("package.json")

        await watcher.dispose()

        assert not watcher.pending
        assert run.triggers == []

    async def test_change_during_scan_leaves_scan_running(
        self, make_coordinator, observer
    ):
        gate = asyncio.Event()
        engine = FakeEngine(gate=gate)
        store = MemoryStore()
        coordinator = make_coordinator(
            scanner=StaticScanner([dep("a"), dep("b")]), engine=engine, store=store
        )
        outcomes = []

        async def run(trigger):
            outcome = await coordinator.run(trigger)
            outcomes.append(outcome)
            return outcome

        watcher = DebouncedScanTrigger(run, delay=0.02)
        watcher.notify("package.json")
        await asyncio.wait_for(engine.started.wait(), timeout=1.0)

        watcher.notify("package-lock.json")
        await _wait_until(lambda: outcomes)
        gate.set()
        await _wait_until(lambda: len(outcomes) == 2)
        await watcher.dispose()

        assert [o.status for o in outcomes] == [ScanStatus.SKIPPED_BUSY, ScanStatus.COMPLETED]
        assert len(engine.calls) == 1
        assert len(store.saves) == 1
        assert observer.names().count("scan_completed") == 1
        assert [args for args in observer.of("loading") if args[0]] == [
            (True, "Scanning workspace for dependencies...")
        ]

    async def test_dispose_waits_for_started_scan(self):
        gate = asyncio.Event()
        finished = []

        async def run(trigger):
            await gate.wait()
            finished.append(trigger)

        watcher = DebouncedScanTrigger(run, delay=0.01)
        watcher.notify("package.json")
        await _wait_until(lambda: watcher.scanning)

        disposing = asyncio.create_task(watcher.dispose())
        await asyncio.sleep(0.02)
        assert not disposing.done()

        gate.set()
        await asyncio.wait_for(disposing, timeout=1.0)
        assert finished == [ScanTrigger.FILE_CHANGE]


class TestStartupScan:
    async def test_fires_once_after_delay(self):
        run = Recorder()
        task = schedule_startup_scan(run, delay=0.01)

        await asyncio.wait_for(task, timeout=1.0)

        assert run.triggers == [ScanTrigger.STARTUP]

    async def test_disabled_returns_none(self):
        assert schedule_startup_scan(Recorder(), enabled=False) is None


# ── configuration changes ──


@pytest.fixture
def coordinator(make_coordinator):
    return make_coordinator(
        scanner=StaticScanner([dep("a"), dep("b")]), engine=FakeEngine(), store=MemoryStore()
    )


class TestConfigurationChangeHandler:
    async def test_no_change_no_scan(self, coordinator, observer, probe):
        handler = ConfigurationChangeHandler(coordinator, probe, observer)

        assert await handler.apply(coordinator.settings) is None

    async def test_transitive_toggle_rescans(self, coordinator, observer, probe):
        handler = ConfigurationChangeHandler(coordinator, probe, observer)
        new = dataclasses.replace(coordinator.settings, include_transitive=False)

        outcome = await handler.apply(new)

        assert outcome.status is ScanStatus.COMPLETED
        assert outcome.trigger is ScanTrigger.CONFIG_CHANGE
        assert not coordinator.settings.include_transitive

    async def test_staleness_change_rescans(self, coordinator, observer, probe):
        handler = ConfigurationChangeHandler(coordinator, probe, observer)
        new = dataclasses.replace(coordinator.settings, staleness_hours=1.0)

        outcome = await handler.apply(new)

        assert outcome is not None
        assert coordinator.settings.staleness_hours == 1.0

    async def test_cache_toggle_notifies_without_scan(self, coordinator, observer, probe):
        handler = ConfigurationChangeHandler(coordinator, probe, observer)
        new = dataclasses.replace(coordinator.settings, enable_cache=False)

        assert await handler.apply(new) is None
        assert observer.of("cache_status_changed") == [(False,)]
        assert not coordinator.settings.enable_cache

    async def test_switch_to_github_online_forces_live_rescan(self, coordinator, observer, probe):
        handler = ConfigurationChangeHandler(coordinator, probe, observer)
        new = dataclasses.replace(coordinator.settings, vulnerability_source="github")

        outcome = await handler.apply(new)

        assert coordinator.settings.vulnerability_source == "github"
        assert outcome.status is ScanStatus.COMPLETED
        assert outcome.cached is False

    async def test_switch_to_github_offline_is_refused(self, coordinator, observer):
        handler = ConfigurationChangeHandler(coordinator, FakeProbe(online=False), observer)
        new = dataclasses.replace(coordinator.settings, vulnerability_source="github")

        outcome = await handler.apply(new)

        assert outcome is None
        assert coordinator.settings.vulnerability_source == "osv"
        assert observer.of("error") == [(GITHUB_OFFLINE_MESSAGE, [])]

    async def test_debounce_change_applied_to_watcher(self, coordinator, observer, probe):
        watcher = DebouncedScanTrigger(Recorder(), delay=1.0)
        handler = ConfigurationChangeHandler(coordinator, probe, observer, watcher=watcher)
        new = dataclasses.replace(coordinator.settings, watch_debounce=0.25)

        assert await handler.apply(new) is None
        assert watcher.delay == 0.25

    async def test_scan_on_save_off_disables_watcher(self, coordinator, observer, network):
        watcher = DebouncedScanTrigger(Recorder(), delay=0.01)
        handler = ConfigurationChangeHandler(coordinator, network, observer, watcher=watcher)
        new = dataclasses.replace(coordinator.settings, scan_on_save=False)

        assert await handler.apply(new) is None
        assert not watcher.enabled
        assert not watcher.notify("package.json")

    async def test_scan_on_save_on_needs_restart(
        self, make_coordinator, settings, observer, network, captured_logs
    ):
        coordinator = make_coordinator(
            scanner=StaticScanner([dep("a")]),
            engine=FakeEngine(),
            settings_override=dataclasses.replace(settings, scan_on_save=False),
        )
        handler = ConfigurationChangeHandler(coordinator, network, observer)
        new = dataclasses.replace(coordinator.settings, scan_on_save=True)

        assert await handler.apply(new) is None
        assert any(e["event"] == "config.restart_required" for e in captured_logs)

    async def test_rescan_goes_through_injected_runner(self, coordinator, observer, network):
        seen = []

        async def run_scan(trigger, *, bypass_cache=None):
            seen.append((trigger, bypass_cache))
            return await coordinator.run(trigger, bypass_cache=bypass_cache)

        handler = ConfigurationChangeHandler(coordinator, network, observer, run_scan=run_scan)
        new = dataclasses.replace(coordinator.settings, include_transitive=False)

        outcome = await handler.apply(new)

        assert seen == [(ScanTrigger.CONFIG_CHANGE, None)]
        assert outcome.status is ScanStatus.COMPLETED
