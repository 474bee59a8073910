"""Collaborator interfaces consumed by the scan coordinator."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from depsentinel.engines.scan_coordinator.models import (
    AnalysisOptions,
    AnalysisResult,
    AnalysisStatus,
    Dependency,
    DependencyAnalysis,
    HealthScore,
    NetworkStatus,
    ProjectInfo,
    ScanCompletion,
)


@runtime_checkable
class WorkspaceScanner(Protocol):
    """Builds the raw dependency tree from manifests and lockfiles."""

    async def scan(self) -> ProjectInfo: ...


@runtime_checkable
class AnalysisEngine(Protocol):
    """Fetches registry/vulnerability data and produces findings."""

    async def analyze(self, project: ProjectInfo, options: AnalysisOptions) -> AnalysisResult: ...

    async def analyze_incremental(
        self, changed: list[Dependency], options: AnalysisOptions
    ) -> AnalysisResult: ...

    def status(self) -> AnalysisStatus: ...


@runtime_checkable
class CacheAccessor(Protocol):
    """Read-only view of the persisted per-package cache."""

    async def get_registry_metadata(self, name: str) -> Any | None: ...

    async def get_vulnerabilities(self, source: str, name: str, version: str) -> Any | None: ...


@runtime_checkable
class ConnectivityProbe(Protocol):
    def reset(self) -> None: ...

    async def check_connectivity(self) -> bool: ...

    def mark_healthy(self, channel: str) -> None: ...

    def mark_degraded(self, channel: str, message: str) -> None: ...

    def snapshot(self) -> NetworkStatus: ...


@runtime_checkable
class HealthScorer(Protocol):
    def calculate(self, dependencies: list[DependencyAnalysis]) -> HealthScore: ...


@runtime_checkable
class SnapshotStore(Protocol):
    """Durable home of the single current :class:`AnalysisResult` per project."""

    async def load(self, project_key: str) -> AnalysisResult | None: ...

    async def save(self, project_key: str, result: AnalysisResult) -> None: ...


@runtime_checkable
class ScanObserver(Protocol):
    """UI-facing sink for scan lifecycle events."""

    def progress(self, percent: int, label: str) -> None: ...

    def loading(self, is_loading: bool, text: str | None = None) -> None: ...

    def offline_status(self, mode: str, message: str) -> None: ...

    def empty_state(self, previous: AnalysisResult | None, cache_age_minutes: int) -> None: ...

    def scan_completed(self, completion: ScanCompletion) -> None: ...

    def error(self, message: str, actions: list[str]) -> None: ...

    def cache_status_changed(self, enabled: bool) -> None: ...
