"""Tests for the cache expiry policy."""

from __future__ import annotations

from datetime import timedelta

from factories import NOW, dep, result

from depsentinel.engines.scan_coordinator.cache_policy import (
    CacheDecision,
    dependency_counts,
    evaluate,
)
from depsentinel.engines.scan_coordinator.models import ChangeSet, ProjectInfo


def _evaluate(previous, *, age=timedelta(hours=1), current=2, before=2, **kw):
    return evaluate(
        previous,
        kw.pop("changes", ChangeSet()),
        current_count=current,
        previous_count=before,
        now=previous.timestamp + age if previous is not None else NOW,
        **kw,
    )


class TestEvaluate:
    def test_fresh_unchanged_result_is_reused(self):
        plan = _evaluate(result([dep("a"), dep("b")], timestamp=NOW))

        assert plan.decision is CacheDecision.REUSE
        assert plan.reuse
        assert plan.cache_age_minutes == 60

    def test_expired_result_is_refetched(self):
        plan = _evaluate(result([dep("a")], timestamp=NOW), age=timedelta(hours=25))

        assert plan.decision is CacheDecision.REFRESH_EXPIRED
        assert not plan.reuse

    def test_expiry_checked_before_count(self):
        plan = _evaluate(
            result([dep("a")], timestamp=NOW),
            age=timedelta(hours=30),
            current=5,
            before=2,
        )
        assert plan.decision is CacheDecision.REFRESH_EXPIRED

    def test_count_mismatch_refreshes(self):
        plan = _evaluate(result([dep("a")], timestamp=NOW), current=3, before=2)
        assert plan.decision is CacheDecision.REFRESH_COUNT_MISMATCH

    def test_changes_mean_analyze(self):
        plan = _evaluate(
            result([dep("a")], timestamp=NOW),
            changes=ChangeSet(changed=[dep("b")]),
        )
        assert plan.decision is CacheDecision.ANALYZE

    def test_no_previous_means_analyze(self):
        plan = evaluate(None, ChangeSet(is_full_scan=True), current_count=1, previous_count=0)
        assert plan.decision is CacheDecision.ANALYZE
        assert plan.cache_age_minutes == 0

    def test_custom_staleness(self):
        plan = _evaluate(
            result([dep("a")], timestamp=NOW),
            age=timedelta(hours=2),
            staleness=timedelta(hours=1),
        )
        assert plan.decision is CacheDecision.REFRESH_EXPIRED

    def test_naive_timestamp_treated_as_utc(self):
        previous = result([dep("a")], timestamp=NOW.replace(tzinfo=None))
        plan = evaluate(
            previous, ChangeSet(), current_count=1, previous_count=1, now=NOW + timedelta(hours=2)
        )
        assert plan.decision is CacheDecision.REUSE
        assert plan.cache_age_minutes == 120


class TestDependencyCounts:
    def test_single_manifest_uses_raw_counts(self):
        project = ProjectInfo(dependencies=[dep("a"), dep("a"), dep("b")])
        previous = result([dep("a"), dep("b")])

        assert dependency_counts(project, previous) == (3, 2)

    def test_monorepo_dedupes_name_version(self):
        project = ProjectInfo(
            dependencies=[
                dep("a", package_root="x"),
                dep("a", package_root="y"),
                dep("b"),
                dep("mine", is_internal=True),
            ],
            manifest_files=["x/package.json", "y/package.json"],
        )
        previous = result([dep("a", package_root="x"), dep("b")])

        assert dependency_counts(project, previous) == (2, 2)

    def test_monorepo_prefers_resolved_version(self):
        project = ProjectInfo(
            dependencies=[dep("a", "^1.0.0", resolved_version="1.2.0")],
            manifest_files=["x/package.json", "y/package.json"],
        )
        previous = result([dep("a", "1.2.0")])

        assert dependency_counts(project, previous) == (1, 1)
