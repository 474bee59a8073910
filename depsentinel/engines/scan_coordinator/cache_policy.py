"""Cache expiry policy — may a stored result be reused as-is?"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from depsentinel.engines.scan_coordinator.models import (
    AnalysisResult,
    ChangeSet,
    Dependency,
    ProjectInfo,
)

STALENESS_THRESHOLD = timedelta(hours=24)


class CacheDecision(str, Enum):
    ANALYZE = "analyze"  # changes exist (or nothing stored)
    REUSE = "reuse"
    REFRESH_EXPIRED = "refresh-expired"
    REFRESH_COUNT_MISMATCH = "refresh-count-mismatch"


@dataclass
class CachePlan:
    decision: CacheDecision
    cache_age: timedelta | None = None

    @property
    def reuse(self) -> bool:
        return self.decision is CacheDecision.REUSE

    @property
    def cache_age_minutes(self) -> int:
        if self.cache_age is None:
            return 0
        return round(self.cache_age.total_seconds() / 60)


def evaluate(
    previous: AnalysisResult | None,
    changes: ChangeSet,
    *,
    current_count: int,
    previous_count: int,
    now: datetime | None = None,
    staleness: timedelta = STALENESS_THRESHOLD,
) -> CachePlan:
    """Decide how the previous result may be used.

    Expiry is checked before the count mismatch so that an expired result is
    always reported as a TTL-triggered refetch.
    """
    if previous is None or changes.is_full_scan or changes.has_changes:
        return CachePlan(CacheDecision.ANALYZE)

    now = now or datetime.now(timezone.utc)
    age = now - _aware(previous.timestamp)

    if age > staleness:
        return CachePlan(CacheDecision.REFRESH_EXPIRED, cache_age=age)
    if current_count != previous_count:
        return CachePlan(CacheDecision.REFRESH_COUNT_MISMATCH, cache_age=age)
    return CachePlan(CacheDecision.REUSE, cache_age=age)


def dependency_counts(project: ProjectInfo, previous: AnalysisResult) -> tuple[int, int]:
    """Return ``(current, previous)`` dependency counts for the count check.

    Monorepos list the same package once per workspace, so counts there are
    taken over distinct external ``name@version`` keys.
    """
    if not project.is_monorepo:
        return len(project.dependencies), len(previous.dependencies)
    current = {_count_key(d) for d in project.dependencies if not d.is_internal}
    before = {
        _count_key(a.dependency) for a in previous.dependencies if not a.dependency.is_internal
    }
    return len(current), len(before)


def _count_key(dep: Dependency) -> str:
    return f"{dep.name}@{dep.resolved_version or dep.version or ''}"


def _aware(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts
