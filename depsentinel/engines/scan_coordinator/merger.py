"""Result merging — fold an incremental analysis back into the full result."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from depsentinel.engines.scan_coordinator.models import (
    AnalysisResult,
    AnalysisSummary,
    ChangeSet,
    DependencyAnalysis,
    DependencyKey,
    FailedPackage,
)
from depsentinel.engines.scan_coordinator.ports import HealthScorer

log = structlog.get_logger("depsentinel.engine")


def classify(analysis: DependencyAnalysis) -> str:
    """Bucket a dependency: ``critical``, ``high``, ``warning`` or ``healthy``.

    Uses the engine's classification when present, otherwise falls back to
    raw findings with the same precedence a full scan applies.
    """
    classification = analysis.classification
    if classification is None:
        severity = analysis.security.severity
        if severity == "critical":
            return "critical"
        if severity == "high":
            return "high"
        if (
            severity in ("medium", "low")
            or analysis.freshness.is_outdated
            or analysis.freshness.is_unmaintained
        ):
            return "warning"
        return "healthy"

    if classification.primary == "security":
        if classification.severity == "critical":
            return "critical"
        if classification.severity == "high":
            return "high"
        return "warning"
    if classification.primary == "unmaintained":
        return "warning"
    if classification.primary == "outdated":
        return "warning" if classification.gap == "major" else "healthy"
    return "healthy"


def summarize(
    dependencies: list[DependencyAnalysis],
    failed_packages: list[FailedPackage],
) -> AnalysisSummary:
    """Recount the summary; failed entries stay listed but are not classified."""
    summary = AnalysisSummary(
        total_dependencies=len(dependencies),
        failed_dependencies=len(failed_packages),
    )
    for analysis in dependencies:
        if analysis.is_failed:
            continue
        summary.analyzed_dependencies += 1
        bucket = classify(analysis)
        if bucket == "critical":
            summary.critical_issues += 1
        elif bucket == "high":
            summary.high_issues += 1
        elif bucket == "warning":
            summary.warnings += 1
        else:
            summary.healthy += 1
    return summary


def merge_results(
    previous: AnalysisResult,
    incremental: AnalysisResult,
    changes: ChangeSet,
    scorer: HealthScorer,
) -> AnalysisResult:
    """Build a new full result from *previous* plus the re-analysed subset.

    The merged set is ``previous - removed - superseded`` followed by every
    incremental entry. Summary and health score are recomputed from the whole
    merged set rather than blended.
    """
    log.info(
        "merge.started",
        incremental=len(incremental.dependencies),
        removed=len(changes.removed),
    )
    _check_coverage(incremental, changes)

    removed = set(changes.removed)
    incoming: dict[DependencyKey, DependencyAnalysis] = {}
    for analysis in incremental.dependencies:
        incoming[analysis.key] = analysis

    merged: dict[DependencyKey, DependencyAnalysis] = {}
    for analysis in previous.dependencies:
        key = analysis.key
        if key in removed or key in incoming:
            continue
        merged.setdefault(key, analysis)
    for key, analysis in incoming.items():
        merged[key] = analysis
    dependencies = list(merged.values())

    failed = _merge_failed(previous.failed_packages, incremental.failed_packages, removed)

    log.info(
        "merge.details",
        previous=len(previous.dependencies),
        incremental=len(incremental.dependencies),
        merged=len(dependencies),
        removed=len(changes.removed),
    )

    summary = summarize(dependencies, failed)
    result = AnalysisResult(
        timestamp=datetime.now(timezone.utc),
        dependencies=dependencies,
        health_score=scorer.calculate(dependencies),
        summary=summary,
        failed_packages=failed,
        performance_metrics=incremental.performance_metrics,
        metadata=incremental.metadata,
        network_status=incremental.network_status,
    )
    log.info(
        "merge.completed",
        total=summary.total_dependencies,
        analyzed=summary.analyzed_dependencies,
    )
    return result


def _check_coverage(incremental: AnalysisResult, changes: ChangeSet) -> None:
    """Warn when the incremental result does not cover exactly what changed."""
    covered = {a.dependency.name for a in incremental.dependencies}
    expected = {d.name for d in changes.changed}

    missing = sorted(expected - covered)
    if missing:
        log.warning("merge.missing_dependencies", names=missing)
    extra = sorted(covered - expected)
    if extra:
        log.warning("merge.unexpected_dependencies", names=extra)


def _merge_failed(
    previous: list[FailedPackage],
    incremental: list[FailedPackage],
    removed: set[DependencyKey],
) -> list[FailedPackage]:
    removed_names = {key.name for key in removed}
    merged: dict[str, FailedPackage] = {}
    for failed in previous:
        if failed.name not in removed_names:
            merged[failed.name] = failed
    for failed in incremental:
        merged[failed.name] = failed
    return list(merged.values())
