"""Tests for result merging and summary classification."""

from __future__ import annotations

import pytest
from factories import NOW, SimpleScorer, analysis, dep, result

from depsentinel.engines.scan_coordinator.change_detector import detect_changes
from depsentinel.engines.scan_coordinator.merger import classify, merge_results, summarize
from depsentinel.engines.scan_coordinator.models import (
    CacheMetadata,
    ChangeSet,
    Classification,
    DependencyKey,
    FailedPackage,
    FreshnessFinding,
)


class TestClassify:
    def test_security_severity_buckets(self):
        cls = Classification(primary="security", severity="critical")
        assert classify(analysis(dep("a"), classification=cls)) == "critical"
        cls = Classification(primary="security", severity="high")
        assert classify(analysis(dep("a"), classification=cls)) == "high"
        cls = Classification(primary="security", severity="medium")
        assert classify(analysis(dep("a"), classification=cls)) == "warning"

    def test_unmaintained_is_warning(self):
        cls = Classification(primary="unmaintained")
        assert classify(analysis(dep("a"), classification=cls)) == "warning"

    def test_outdated_major_is_warning_minor_is_healthy(self):
        major = Classification(primary="outdated", gap="major")
        minor = Classification(primary="outdated", gap="minor")
        assert classify(analysis(dep("a"), classification=major)) == "warning"
        assert classify(analysis(dep("a"), classification=minor)) == "healthy"

    def test_fallback_on_raw_findings(self):
        assert classify(analysis(dep("a"), severity="critical")) == "critical"
        assert classify(analysis(dep("a"), severity="low")) == "warning"
        assert classify(analysis(dep("a"))) == "healthy"

        stale = analysis(dep("a"))
        stale.freshness = FreshnessFinding(is_outdated=True)
        assert classify(stale) == "warning"


class TestSummarize:
    def test_counts_and_failed_entries(self):
        deps = [
            analysis(dep("a"), severity="critical"),
            analysis(dep("b"), severity="high"),
            analysis(dep("c"), severity="medium"),
            analysis(dep("d")),
            analysis(dep("ghost"), is_failed=True),
        ]
        failed = [FailedPackage(name="ghost", version="1.0.0", error="not found")]

        summary = summarize(deps, failed)

        assert summary.total_dependencies == 5
        assert summary.analyzed_dependencies == 4
        assert summary.failed_dependencies == 1
        assert (summary.critical_issues, summary.high_issues) == (1, 1)
        assert (summary.warnings, summary.healthy) == (1, 1)


class TestMergeResults:
    def test_replaces_changed_adds_new_drops_removed(self):
        previous = result(
            [
                analysis(dep("a", "1.0.0")),
                analysis(dep("b", "1.0.0"), severity="critical"),
                analysis(dep("c", "1.0.0")),
            ],
            timestamp=NOW,
        )
        incremental = result(
            [analysis(dep("b", "2.0.0")), analysis(dep("d", "1.0.0"), severity="high")],
            metadata=CacheMetadata(cache_hits=1, cache_requests=2, total_dependencies=2),
        )
        changes = ChangeSet(
            changed=[dep("b", "2.0.0"), dep("d", "1.0.0")],
            removed=[DependencyKey("c")],
        )

        merged = merge_results(previous, incremental, changes, SimpleScorer())

        by_name = {a.dependency.name: a for a in merged.dependencies}
        assert sorted(by_name) == ["a", "b", "d"]
        assert by_name["b"].dependency.version == "2.0.0"
        assert merged.summary.total_dependencies == 3
        assert merged.summary.critical_issues == 0
        assert merged.summary.high_issues == 1
        # Recomputed from the merged set, not blended.
        assert merged.health_score.overall == 90.0
        assert merged.timestamp > NOW
        assert merged.metadata == incremental.metadata

    def test_same_name_other_scope_untouched(self):
        previous = result(
            [
                analysis(dep("lodash", "1.0.0", package_root="web")),
                analysis(dep("lodash", "1.0.0", package_root="api")),
            ]
        )
        updated = dep("lodash", "2.0.0", package_root="web")
        incremental = result([analysis(updated)])

        merged = merge_results(previous, incremental, ChangeSet(changed=[updated]), SimpleScorer())

        versions = {a.dependency.scope: a.dependency.version for a in merged.dependencies}
        assert versions == {"web": "2.0.0", "api": "1.0.0"}

    def test_failed_packages_replaced_by_name_and_removed(self):
        previous = result(
            [dep("a"), dep("b")],
            failed=[
                FailedPackage(name="a", version="1.0.0", error="old"),
                FailedPackage(name="b", version="1.0.0", error="gone"),
            ],
        )
        incremental = result(
            [dep("a", "1.1.0")],
            failed=[FailedPackage(name="a", version="1.1.0", error="new")],
        )
        changes = ChangeSet(changed=[dep("a", "1.1.0")], removed=[DependencyKey("b")])

        merged = merge_results(previous, incremental, changes, SimpleScorer())

        assert [(f.name, f.error) for f in merged.failed_packages] == [("a", "new")]
        assert merged.summary.failed_dependencies == 1

    def test_coverage_mismatch_is_logged(self, captured_logs):
        previous = result([dep("a")])
        incremental = result([dep("surprise")])
        changes = ChangeSet(changed=[dep("a", "2.0.0")])

        merge_results(previous, incremental, changes, SimpleScorer())

        events = {entry["event"] for entry in captured_logs}
        assert "merge.missing_dependencies" in events
        assert "merge.unexpected_dependencies" in events


MERGE_MIXES = [
    pytest.param(["a@1.0.0", "b@1.0.0"], ["a@1.0.0", "b@1.0.0", "c@1.0.0"], id="added"),
    pytest.param(["a@1.0.0", "b@1.0.0", "c@1.0.0"], ["a@1.0.0"], id="removed"),
    pytest.param(["a@1.0.0", "b@1.0.0"], ["a@2.0.0", "b@1.0.0"], id="version-changed"),
    pytest.param(
        ["a@1.0.0", "b@1.0.0", "c@1.0.0"],
        ["a@1.0.0", "b@3.0.0", "d@1.0.0"],
        id="mixed",
    ),
]


def _parse(pins):
    return [dep(*pin.split("@")) for pin in pins]


class TestMergeIdempotent:
    @pytest.mark.parametrize(("before", "after"), MERGE_MIXES)
    def test_merging_same_increment_twice(self, before, after):
        previous = result(_parse(before), timestamp=NOW)
        changes = detect_changes(_parse(after), previous)
        incremental = result(
            [analysis(d, severity="high" if d.name == "b" else "none") for d in changes.changed]
        )

        once = merge_results(previous, incremental, changes, SimpleScorer())
        twice = merge_results(once, incremental, changes, SimpleScorer())

        def names(r):
            return [(a.dependency.name, a.dependency.version) for a in r.dependencies]

        assert names(twice) == names(once)
        assert sorted(names(once)) == sorted((d.name, d.version) for d in _parse(after))
        assert twice.summary == once.summary
        assert twice.health_score == once.health_score
