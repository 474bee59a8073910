"""Tests for the offline preflight."""

from __future__ import annotations

from factories import FakeCache, FakeProbe, RecordingObserver, dep, result

from depsentinel.engines.scan_coordinator.models import ChangeSet, Coverage
from depsentinel.engines.scan_coordinator.offline_preflight import (
    FULL_CACHE_MESSAGE,
    NO_CACHE_MESSAGE,
    PARTIAL_CACHE_ALERT,
    OfflinePreflight,
)


async def _check(preflight, deps, *, bypass=False, previous=None, changes=None):
    return await preflight.check(
        bypass_cache=bypass,
        previous=previous,
        changes=changes or ChangeSet(changed=deps, is_full_scan=previous is None),
        dependencies=deps,
    )


class TestOnline:
    async def test_online_proceeds_live_and_marks_channels_healthy(self):
        probe, observer = FakeProbe(online=True), RecordingObserver()
        preflight = OfflinePreflight(probe, FakeCache(), observer, vulnerability_source="github")

        verdict = await _check(preflight, [dep("a")])

        assert verdict.coverage is Coverage.PROCEED_LIVE
        assert verdict.should_continue
        assert probe.healthy == ["registry", "github"]
        assert observer.events == []

    async def test_bypass_skips_probe(self):
        probe = FakeProbe(online=False)
        preflight = OfflinePreflight(probe, None, RecordingObserver())

        verdict = await _check(preflight, [dep("a")], bypass=True)

        assert verdict.coverage is Coverage.PROCEED_LIVE
        assert probe.checks == 0

    async def test_probe_exception_proceeds(self):
        probe = FakeProbe(error=RuntimeError("probe exploded"))
        preflight = OfflinePreflight(probe, None, RecordingObserver())

        verdict = await _check(preflight, [dep("a")])

        assert verdict.coverage is Coverage.PROCEED_LIVE


class TestOffline:
    async def test_no_cache_aborts(self):
        probe, observer = FakeProbe(online=False), RecordingObserver()
        preflight = OfflinePreflight(probe, None, observer)

        verdict = await _check(preflight, [dep("a")])

        assert verdict.coverage is Coverage.ABORT_NO_CACHE
        assert not verdict.should_continue
        assert verdict.message == NO_CACHE_MESSAGE
        assert observer.of("offline_status") == [("partial", NO_CACHE_MESSAGE)]
        assert observer.of("loading") == [(False, None)]
        assert {c for c, _ in probe.degraded} == {"registry", "osv"}

    async def test_full_cache_coverage_proceeds(self):
        observer = RecordingObserver()
        preflight = OfflinePreflight(FakeProbe(online=False), FakeCache({"a", "b"}), observer)

        verdict = await _check(preflight, [dep("a"), dep("b")])

        assert verdict.coverage is Coverage.PROCEED_FULL_CACHE
        assert verdict.should_continue
        assert verdict.missing_count == 0
        assert observer.of("offline_status") == [("full-cache", FULL_CACHE_MESSAGE)]
        assert "error" not in observer.names()

    async def test_transitive_dependencies_not_required(self):
        preflight = OfflinePreflight(FakeProbe(online=False), FakeCache({"a"}), RecordingObserver())

        verdict = await _check(preflight, [dep("a"), dep("deep", is_transitive=True)])

        assert verdict.coverage is Coverage.PROCEED_FULL_CACHE

    async def test_partial_coverage_aborts_with_preview(self):
        observer = RecordingObserver()
        preflight = OfflinePreflight(FakeProbe(online=False), FakeCache({"a"}), observer)
        deps = [dep("a"), dep("b"), dep("c"), dep("d"), dep("e")]

        verdict = await _check(preflight, deps)

        assert verdict.coverage is Coverage.ABORT_PARTIAL_CACHE
        assert verdict.missing == ["b@1.0.0", "c@1.0.0", "d@1.0.0", "e@1.0.0"]
        assert "Missing cached data for 4 packages" in verdict.message
        assert "(e.g., b@1.0.0, c@1.0.0, d@1.0.0)" in verdict.message
        assert "e@1.0.0)" not in verdict.message
        assert observer.names() == ["offline_status", "loading", "error"]
        assert observer.of("error") == [(PARTIAL_CACHE_ALERT, [])]

    async def test_cache_lookup_failure_counts_as_missing(self):
        preflight = OfflinePreflight(
            FakeProbe(online=False), FakeCache({"a"}, broken={"a"}), RecordingObserver()
        )

        verdict = await _check(preflight, [dep("a")])

        assert verdict.coverage is Coverage.ABORT_PARTIAL_CACHE
        assert verdict.missing == ["a@1.0.0"]

    async def test_unchanged_previous_still_checks_coverage(self):
        deps = [dep("a")]
        preflight = OfflinePreflight(FakeProbe(online=False), FakeCache(), RecordingObserver())

        verdict = await _check(preflight, deps, previous=result(deps), changes=ChangeSet())

        assert verdict.coverage is Coverage.ABORT_PARTIAL_CACHE
