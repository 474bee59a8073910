"""Data models for the scan coordinator engine.

These are pure data structures — no DB or network dependencies. The snapshot
store serializes :class:`AnalysisResult` through pydantic, so every field type
here must stay pydantic-compatible.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, NamedTuple

Severity = Literal["critical", "high", "medium", "low", "none"]
VersionGap = Literal["major", "minor", "patch", "current"]
ClassificationType = Literal["security", "unmaintained", "outdated", "healthy", "unknown"]


class DependencyKey(NamedTuple):
    """Identity of a dependency for diffing and merging: (name, scope)."""

    name: str
    scope: str | None = None

    def __str__(self) -> str:
        return self.name if self.scope is None else f"{self.scope}:{self.name}"


@dataclass
class Dependency:
    """A single declared or resolved package in the workspace."""

    name: str
    version: str
    version_constraint: str = ""
    is_dev: bool = False
    is_transitive: bool = False
    is_internal: bool = False
    resolved_version: str | None = None
    package_root: str | None = None
    workspace_folder: str | None = None
    children: list[Dependency] = field(default_factory=list)

    @property
    def scope(self) -> str | None:
        return self.package_root or self.workspace_folder

    @property
    def key(self) -> DependencyKey:
        return DependencyKey(self.name, self.scope)

    @property
    def identifier(self) -> str:
        """``name@version`` for display, or just the name when unversioned."""
        return f"{self.name}@{self.version}" if self.version else self.name


@dataclass
class ProjectInfo:
    """Raw dependency tree produced by the workspace scanner."""

    dependencies: list[Dependency]
    manifest_files: list[str] = field(default_factory=list)

    @property
    def is_monorepo(self) -> bool:
        return len(self.manifest_files) > 1


# ── findings ─────────────────────────────────────────────────────────────


@dataclass
class Vulnerability:
    id: str
    title: str
    severity: str
    affected_versions: str = ""
    patched_versions: str | None = None
    description: str = ""
    references: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    published_date: datetime | None = None
    last_modified_date: datetime | None = None


@dataclass
class SecurityFinding:
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    severity: Severity = "none"


@dataclass
class FreshnessFinding:
    current_version: str = ""
    latest_version: str = ""
    version_gap: VersionGap = "current"
    release_date: datetime | None = None
    is_outdated: bool = False
    is_unmaintained: bool = False


@dataclass
class LicenseFinding:
    license: str = "UNKNOWN"
    spdx_ids: list[str] = field(default_factory=list)
    is_compatible: bool = True
    license_type: Literal["permissive", "copyleft", "proprietary", "unknown"] = "unknown"


@dataclass
class MaintenanceSignals:
    is_long_term_unmaintained: bool
    last_checked: datetime
    reasons: list[str] = field(default_factory=list)


@dataclass
class Classification:
    """Primary issue of a dependency, as decided by the analysis engine."""

    primary: ClassificationType
    severity: Severity | None = None
    gap: VersionGap | None = None


@dataclass
class DependencyAnalysis:
    dependency: Dependency
    security: SecurityFinding = field(default_factory=SecurityFinding)
    freshness: FreshnessFinding = field(default_factory=FreshnessFinding)
    license: LicenseFinding = field(default_factory=LicenseFinding)
    classification: Classification | None = None
    maintenance: MaintenanceSignals | None = None
    is_failed: bool = False
    children: list[DependencyAnalysis] = field(default_factory=list)

    @property
    def key(self) -> DependencyKey:
        return self.dependency.key


# ── aggregate result ─────────────────────────────────────────────────────


@dataclass
class HealthScore:
    overall: float = 0.0
    security: float = 0.0
    freshness: float = 0.0
    compatibility: float = 100.0
    license: float = 100.0


@dataclass
class AnalysisSummary:
    total_dependencies: int = 0
    analyzed_dependencies: int = 0
    failed_dependencies: int = 0
    critical_issues: int = 0
    high_issues: int = 0
    warnings: int = 0
    healthy: int = 0


@dataclass
class FailedPackage:
    name: str
    version: str
    error: str
    error_code: str | None = None
    is_transitive: bool = False


@dataclass
class CacheMetadata:
    cache_hits: int = 0
    cache_requests: int = 0
    total_dependencies: int = 0


@dataclass
class NetworkStatus:
    is_online: bool = True
    degraded_features: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class MemoryUsage:
    current_bytes: int = 0
    peak_bytes: int = 0


@dataclass
class PerformanceMetrics:
    scan_duration_ms: int = 0
    memory: MemoryUsage = field(default_factory=MemoryUsage)
    dependency_count: int = 0
    valid_dependency_count: int = 0
    invalid_dependency_count: int = 0
    transitive_dependency_count: int = 0


@dataclass
class AnalysisResult:
    """The single persisted "current state" of a project's dependency health."""

    timestamp: datetime
    dependencies: list[DependencyAnalysis] = field(default_factory=list)
    health_score: HealthScore = field(default_factory=HealthScore)
    summary: AnalysisSummary = field(default_factory=AnalysisSummary)
    failed_packages: list[FailedPackage] = field(default_factory=list)
    performance_metrics: PerformanceMetrics | None = None
    metadata: CacheMetadata | None = None
    network_status: NetworkStatus | None = None


# ── engine I/O ───────────────────────────────────────────────────────────


@dataclass
class AnalysisOptions:
    bypass_cache: bool = False
    include_transitive: bool = True


@dataclass
class AnalysisStatus:
    is_running: bool = False
    progress: int = 0
    current_item: str | None = None


# ── coordinator decisions ────────────────────────────────────────────────


@dataclass
class ChangeSet:
    """Difference between the current dependency set and the stored result."""

    changed: list[Dependency] = field(default_factory=list)
    removed: list[DependencyKey] = field(default_factory=list)
    is_full_scan: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(self.changed or self.removed)


class Coverage(str, Enum):
    PROCEED_LIVE = "proceed-live"
    PROCEED_FULL_CACHE = "proceed-full-cache"
    ABORT_NO_CACHE = "abort-no-cache"
    ABORT_PARTIAL_CACHE = "abort-partial-cache"


@dataclass
class CacheCoverageVerdict:
    coverage: Coverage
    missing: list[str] = field(default_factory=list)
    message: str | None = None

    @property
    def should_continue(self) -> bool:
        return self.coverage in (Coverage.PROCEED_LIVE, Coverage.PROCEED_FULL_CACHE)

    @property
    def missing_count(self) -> int:
        return len(self.missing)


class ScanTrigger(str, Enum):
    COMMAND = "command"
    FILE_CHANGE = "file-change"
    CONFIG_CHANGE = "config-change"
    STARTUP = "startup"
    SCHEDULED = "scheduled"


class ScanStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED_BUSY = "skipped-busy"
    EMPTY = "empty"
    ABORTED_OFFLINE = "aborted-offline"
    ABORTED_CACHE = "aborted-cache"
    FAILED = "failed"


class ScanStrategy(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    REUSE = "reuse"
    NONE = "none"


@dataclass
class ScanCompletion:
    """Terminal event delivered to observers for a successful scan."""

    result: AnalysisResult
    cached: bool
    cache_age_minutes: int
    metrics: PerformanceMetrics
    message: str
    cache_enabled: bool = True
    include_transitive: bool = True


@dataclass
class ScanOutcome:
    """What a call to ``ScanCoordinator.run`` did."""

    status: ScanStatus
    trigger: ScanTrigger
    strategy: ScanStrategy = ScanStrategy.NONE
    result: AnalysisResult | None = None
    cached: bool = False
    cache_age_minutes: int = 0
    metrics: PerformanceMetrics | None = None
    message: str | None = None
    error: Exception | None = None
    remediation: list[str] = field(default_factory=list)
