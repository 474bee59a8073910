"""ScanCoordinator — single-flight orchestration of one dependency scan.

Every trigger ends up in :meth:`ScanCoordinator.run`. Inside the lock the
sequence is: optional live-data connectivity check, workspace scan, previous
result load, change detection, offline preflight, strategy selection
(incremental / reuse / full), analysis with progress, merge, cache-status
reconciliation, persistence and notification. The lock is released on every
exit path before any failure message reaches observers.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from typing import Any

import structlog

from depsentinel.core.config import ScanSettings
from depsentinel.core.logging import scan_context
from depsentinel.engines.connectivity.errors import is_network_error
from depsentinel.engines.scan_coordinator.cache_policy import (
    CacheDecision,
    CachePlan,
    dependency_counts,
    evaluate,
)
from depsentinel.engines.scan_coordinator.change_detector import (
    detect_changes,
    rehydrate_scopes,
)
from depsentinel.engines.scan_coordinator.lock import ScanLock
from depsentinel.engines.scan_coordinator.merger import merge_results
from depsentinel.engines.scan_coordinator.metrics import ScanProfiler
from depsentinel.engines.scan_coordinator.models import (
    AnalysisOptions,
    AnalysisResult,
    AnalysisStatus,
    ChangeSet,
    Coverage,
    ProjectInfo,
    ScanCompletion,
    ScanOutcome,
    ScanStatus,
    ScanStrategy,
    ScanTrigger,
)
from depsentinel.engines.scan_coordinator.offline_preflight import OfflinePreflight
from depsentinel.engines.scan_coordinator.ports import (
    AnalysisEngine,
    CacheAccessor,
    ConnectivityProbe,
    HealthScorer,
    ScanObserver,
    SnapshotStore,
    WorkspaceScanner,
)
from depsentinel.engines.scan_coordinator.progress import ProgressEstimator
from depsentinel.exceptions import (
    AnalysisFailure,
    AuthError,
    CacheUnavailable,
    ConnectivityError,
    DepSentinelError,
    SnapshotCorrupt,
)

log = structlog.get_logger("depsentinel.engine")

EMPTY_WORKSPACE_LABEL = "Scan complete - No dependencies found"
REUSE_LABEL = "No changes detected, reusing cached result..."
COMPLETE_LABEL = "Analysis complete"

OFFLINE_CACHE_DISABLED = (
    "No internet connection detected. Enable caching to use previously saved data, "
    "or connect to the internet to scan."
)
OFFLINE_FORCED_REFRESH = (
    "No internet connection detected. Connect to the internet to scan, "
    "or rerun without force refresh to use cached data."
)

ENABLE_CACHE_ACTIONS = ["enable-cache", "cancel"]
AUTH_ACTIONS = ["configure-secrets", "view-logs"]
FAILURE_ACTIONS = ["view-logs"]


class ScanCoordinator:
    """Owns the scan lock and sequences one scan at a time."""

    def __init__(
        self,
        *,
        scanner: WorkspaceScanner,
        engine: AnalysisEngine,
        probe: ConnectivityProbe,
        snapshots: SnapshotStore,
        scorer: HealthScorer,
        observer: ScanObserver,
        cache: CacheAccessor | None = None,
        settings: ScanSettings | None = None,
        lock: ScanLock | None = None,
    ) -> None:
        self._scanner = scanner
        self._engine = engine
        self._probe = probe
        self._snapshots = snapshots
        self._scorer = scorer
        self._observer = observer
        self._cache = cache
        self._settings = settings or ScanSettings()
        self.lock = lock or ScanLock()
        self.last_outcome: ScanOutcome | None = None

    # ── settings ─────────────────────────────────────────────────────────

    @property
    def settings(self) -> ScanSettings:
        return self._settings

    def update_settings(self, **changes: Any) -> ScanSettings:
        """Replace settings; a scan already running keeps the ones it started with."""
        self._settings = dataclasses.replace(self._settings, **changes)
        log.info("settings.updated", **changes)
        return self._settings

    @property
    def is_running(self) -> bool:
        return self.lock.locked

    async def wait_idle(self) -> None:
        """Wait for the scan in flight, if any, to finish."""
        await self.lock.wait_idle()

    def engine_status(self) -> AnalysisStatus:
        return self._engine.status()

    # ── entry point ──────────────────────────────────────────────────────

    async def run(
        self,
        trigger: ScanTrigger = ScanTrigger.COMMAND,
        *,
        bypass_cache: bool | None = None,
    ) -> ScanOutcome:
        """Run one scan, or return ``skipped-busy`` if one is in flight."""
        settings = self._settings
        bypass = (not settings.enable_cache) if bypass_cache is None else bypass_cache

        ticket = self.lock.try_acquire(trigger)
        if ticket is None:
            return ScanOutcome(
                status=ScanStatus.SKIPPED_BUSY,
                trigger=trigger,
                message="A scan is already in progress",
            )

        with scan_context(ticket.id, trigger.value):
            log.info("scan.started", bypass_cache=bypass, explicit=bypass_cache is not None)
            try:
                try:
                    outcome = await self._run_locked(trigger, settings, bypass)
                finally:
                    self.lock.release(ticket)
            except Exception as exc:
                # Reported only once the lock is free, so observers may rescan.
                outcome = self._report_failure(trigger, exc)
            self.last_outcome = outcome
            log.info("scan.finished", status=outcome.status.value)
        return outcome

    # ── sequence ─────────────────────────────────────────────────────────

    async def _run_locked(
        self,
        trigger: ScanTrigger,
        settings: ScanSettings,
        bypass: bool,
    ) -> ScanOutcome:
        self._observer.loading(True, "Scanning workspace for dependencies...")

        if bypass:
            await self._require_connectivity(settings)

        project = await self._scanner.scan()
        if not project.dependencies:
            return await self._empty_workspace(trigger, settings)
        log.info("scan.dependencies_found", count=len(project.dependencies))

        previous = await self._load_previous(settings, project)
        changes = detect_changes(project.dependencies, previous)

        preflight = OfflinePreflight(
            self._probe,
            self._cache,
            self._observer,
            vulnerability_source=settings.vulnerability_source,
        )
        verdict = await preflight.check(
            bypass_cache=bypass,
            previous=previous,
            changes=changes,
            dependencies=project.dependencies,
        )
        if not verdict.should_continue:
            if verdict.coverage is Coverage.ABORT_NO_CACHE:
                return ScanOutcome(
                    status=ScanStatus.ABORTED_OFFLINE,
                    trigger=trigger,
                    message=verdict.message,
                    error=CacheUnavailable(verdict.message or "cache unavailable"),
                )
            return ScanOutcome(
                status=ScanStatus.ABORTED_CACHE,
                trigger=trigger,
                message=verdict.message,
                error=ConnectivityError(verdict.message or "offline"),
            )

        strategy, plan = self._choose_strategy(project, previous, changes, settings, bypass)
        options = AnalysisOptions(
            bypass_cache=bypass,
            include_transitive=settings.include_transitive,
        )

        profiler = ScanProfiler(trace_memory=settings.profile_memory)
        profiler.start()
        try:
            if strategy is ScanStrategy.REUSE and previous is not None:
                self._observer.progress(50, REUSE_LABEL)
                # Original timestamp is kept so the staleness clock keeps running.
                result = previous
            else:
                result = await self._analyze(
                    project, previous, changes, strategy, options, settings
                )
            self._observer.progress(100, COMPLETE_LABEL)
            metrics = profiler.finish(result)
        finally:
            profiler.stop()

        cached, age = self._reconcile_cache_status(result, previous, strategy, plan, bypass)
        log.info(
            "scan.cache_status",
            strategy=strategy.value,
            cached=cached,
            cache_age_minutes=age,
        )

        await self._snapshots.save(settings.project_key, result)

        message = completion_message(result)
        log.info(
            "scan.completed",
            health_score=result.health_score.overall,
            duration_ms=metrics.scan_duration_ms,
            peak_bytes=metrics.memory.peak_bytes,
            summary=message,
        )
        self._observer.scan_completed(
            ScanCompletion(
                result=result,
                cached=cached,
                cache_age_minutes=age,
                metrics=metrics,
                message=message,
                cache_enabled=settings.enable_cache,
                include_transitive=settings.include_transitive,
            )
        )
        return ScanOutcome(
            status=ScanStatus.COMPLETED,
            trigger=trigger,
            strategy=strategy,
            result=result,
            cached=cached,
            cache_age_minutes=age,
            metrics=metrics,
            message=message,
        )

    async def _require_connectivity(self, settings: ScanSettings) -> None:
        """Live data was requested; without a network there is nothing to do."""
        self._probe.reset()
        log.info("scan.checking_connectivity", reason="cache bypassed")
        try:
            online = await self._probe.check_connectivity()
        except Exception:
            log.exception("scan.probe_failed")
            return
        if online:
            return

        log.warning("scan.offline_without_cache", cache_enabled=settings.enable_cache)
        if not settings.enable_cache:
            raise ConnectivityError(OFFLINE_CACHE_DISABLED, remediation=ENABLE_CACHE_ACTIONS)
        raise ConnectivityError(OFFLINE_FORCED_REFRESH)

    async def _empty_workspace(self, trigger: ScanTrigger, settings: ScanSettings) -> ScanOutcome:
        log.info("scan.no_dependencies")
        self._observer.progress(100, EMPTY_WORKSPACE_LABEL)
        previous = await self._load_previous(settings, None)
        age = _age_minutes(previous.timestamp) if previous is not None else 0
        self._observer.empty_state(previous, age)
        return ScanOutcome(
            status=ScanStatus.EMPTY,
            trigger=trigger,
            result=previous,
            cached=previous is not None,
            cache_age_minutes=age,
            message="No dependencies found in workspace",
        )

    async def _load_previous(
        self,
        settings: ScanSettings,
        project: ProjectInfo | None,
    ) -> AnalysisResult | None:
        try:
            previous = await self._snapshots.load(settings.project_key)
        except SnapshotCorrupt as exc:
            log.warning("snapshot.corrupt", project_key=settings.project_key, error=str(exc))
            return None
        if previous is None or project is None:
            return previous
        return rehydrate_scopes(previous, project.dependencies)

    def _choose_strategy(
        self,
        project: ProjectInfo,
        previous: AnalysisResult | None,
        changes: ChangeSet,
        settings: ScanSettings,
        bypass: bool,
    ) -> tuple[ScanStrategy, CachePlan | None]:
        total = len(project.dependencies)
        if (
            not bypass
            and not changes.is_full_scan
            and 0 < len(changes.changed) < total
        ):
            log.info(
                "scan.strategy",
                strategy="incremental",
                changed=len(changes.changed),
                removed=len(changes.removed),
            )
            return ScanStrategy.INCREMENTAL, None

        if bypass or previous is None or changes.is_full_scan:
            reason = "cache bypassed" if bypass else "no previous result"
            log.info("scan.strategy", strategy="full", reason=reason)
            return ScanStrategy.FULL, None

        current_count, previous_count = dependency_counts(project, previous)
        plan = evaluate(
            previous,
            changes,
            current_count=current_count,
            previous_count=previous_count,
            staleness=settings.staleness,
        )
        if plan.decision is CacheDecision.REFRESH_EXPIRED:
            log.info("scan.cache_expired", age_minutes=plan.cache_age_minutes)
        elif plan.decision is CacheDecision.REFRESH_COUNT_MISMATCH:
            log.warning(
                "scan.count_mismatch",
                previous=previous_count,
                current=current_count,
            )
        elif plan.reuse:
            log.info(
                "scan.reusing_previous",
                dependencies=current_count,
                age_minutes=plan.cache_age_minutes,
            )
            return ScanStrategy.REUSE, plan
        log.info("scan.strategy", strategy="full", reason=plan.decision.value)
        return ScanStrategy.FULL, plan

    async def _analyze(
        self,
        project: ProjectInfo,
        previous: AnalysisResult | None,
        changes: ChangeSet,
        strategy: ScanStrategy,
        options: AnalysisOptions,
        settings: ScanSettings,
    ) -> AnalysisResult:
        incremental = strategy is ScanStrategy.INCREMENTAL
        to_analyze = len(changes.changed) if incremental else len(project.dependencies)
        estimator = ProgressEstimator(
            self._engine.status,
            self._observer.progress,
            dependency_count=to_analyze,
            label=analysis_label(project, changes, incremental, settings.include_transitive),
            settings=settings.progress,
        )
        async with estimator:
            try:
                if incremental:
                    partial = await self._engine.analyze_incremental(changes.changed, options)
                else:
                    result = await self._engine.analyze(project, options)
            except DepSentinelError:
                raise
            except Exception as exc:
                if is_network_error(exc):
                    raise ConnectivityError(
                        f"Network error during analysis: {exc}",
                        remediation=FAILURE_ACTIONS,
                    ) from exc
                raise AnalysisFailure(str(exc)) from exc

        if incremental:
            if previous is None:
                raise AnalysisFailure("incremental analysis needs a previous result")
            result = merge_results(previous, partial, changes, self._scorer)
        if result.network_status is None:
            result = dataclasses.replace(result, network_status=self._probe.snapshot())
        return result

    @staticmethod
    def _reconcile_cache_status(
        result: AnalysisResult,
        previous: AnalysisResult | None,
        strategy: ScanStrategy,
        plan: CachePlan | None,
        bypass: bool,
    ) -> tuple[bool, int]:
        """Return ``(cached, cache_age_minutes)`` as observers should see them."""
        if plan is not None and plan.decision is CacheDecision.REFRESH_EXPIRED:
            # Freshly fetched even though the result goes back into the cache.
            return False, 0
        if bypass:
            return False, 0
        if strategy is ScanStrategy.REUSE and previous is not None:
            return True, _age_minutes(previous.timestamp)
        meta = result.metadata
        if meta is not None and meta.cache_requests > 0 and meta.cache_hits >= meta.cache_requests:
            return True, 0
        return False, 0

    # ── failure reporting ────────────────────────────────────────────────

    def _report_failure(self, trigger: ScanTrigger, exc: Exception) -> ScanOutcome:
        """Runs after the lock is released: clear loading, then show one message."""
        self._observer.loading(False)

        if isinstance(exc, AuthError):
            log.error("scan.auth_failed", source=exc.source, error=str(exc))
            message = (
                f"{exc.source} authentication required. Configure API secrets "
                "to enable vulnerability scanning."
            )
            status, actions = ScanStatus.FAILED, AUTH_ACTIONS
        elif isinstance(exc, ConnectivityError):
            log.warning("scan.offline", error=str(exc))
            message, status, actions = str(exc), ScanStatus.ABORTED_OFFLINE, exc.remediation
        else:
            log.error("scan.failed", error=str(exc), exc_info=exc)
            message = f"Scan failed - {exc}"
            status, actions = ScanStatus.FAILED, FAILURE_ACTIONS

        self._observer.error(message, list(actions))
        return ScanOutcome(
            status=status,
            trigger=trigger,
            message=message,
            error=exc,
            remediation=list(actions),
        )


# ── helpers ──────────────────────────────────────────────────────────────


def analysis_label(
    project: ProjectInfo,
    changes: ChangeSet,
    incremental: bool,
    include_transitive: bool,
) -> str:
    if incremental:
        count = len(changes.changed)
        if include_transitive:
            return f"Analyzing {count} changed dependencies..."
        return f"Analyzing {count} changed dependencies (transitive disabled)..."

    direct = sum(1 for d in project.dependencies if not d.is_transitive)
    if not include_transitive:
        return f"Analyzing {direct} direct dependencies (transitive disabled)..."
    transitive = len(project.dependencies) - direct
    return f"Analyzing {direct} direct and {transitive} transitive dependencies..."


def completion_message(result: AnalysisResult) -> str:
    summary = result.summary
    message = f"Scan complete - Health Score: {result.health_score.overall:.1f}"
    if summary.failed_dependencies > 0:
        message += (
            f" ({summary.analyzed_dependencies}/{summary.total_dependencies} real packages,"
            f" {summary.failed_dependencies} not found in registry)"
        )

    issues = []
    if summary.critical_issues > 0:
        issues.append(f"{summary.critical_issues} critical")
    if summary.high_issues > 0:
        issues.append(f"{summary.high_issues} high")
    if issues:
        message += " - " + ", ".join(issues)
    elif summary.warnings > 0:
        message += f" - {summary.warnings} warnings"
    return message


def _age_minutes(ts: datetime) -> int:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return round((datetime.now(timezone.utc) - ts).total_seconds() / 60)
