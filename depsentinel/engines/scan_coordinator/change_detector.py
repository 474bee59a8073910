"""Change detection — diff the current dependency set against the stored result."""

from __future__ import annotations

from dataclasses import replace

import structlog

from depsentinel.engines.scan_coordinator.models import (
    AnalysisResult,
    ChangeSet,
    Dependency,
    DependencyAnalysis,
    DependencyKey,
)

log = structlog.get_logger("depsentinel.engine")


def detect_changes(
    current: list[Dependency],
    previous: AnalysisResult | None,
) -> ChangeSet:
    """Return the dependencies that are new or re-versioned, and those removed.

    Internal packages never take part in the comparison. Without a previous
    result every external dependency counts as changed.
    """
    external = [d for d in current if not d.is_internal]

    if previous is None:
        return ChangeSet(changed=_unique(external), removed=[], is_full_scan=True)

    current_map: dict[DependencyKey, Dependency] = {}
    for dep in external:
        current_map.setdefault(dep.key, dep)

    previous_map: dict[DependencyKey, DependencyAnalysis] = {}
    for analysis in previous.dependencies:
        if analysis.dependency.is_internal:
            continue
        previous_map.setdefault(analysis.key, analysis)

    changed: list[Dependency] = []
    for key, dep in current_map.items():
        before = previous_map.get(key)
        if before is None:
            changed.append(dep)
        elif before.dependency.version != dep.version:
            log.debug(
                "changes.version_changed",
                dependency=str(key),
                previous=before.dependency.version,
                current=dep.version,
            )
            changed.append(dep)

    removed = [key for key in previous_map if key not in current_map]

    return ChangeSet(changed=changed, removed=removed, is_full_scan=False)


def rehydrate_scopes(
    previous: AnalysisResult,
    current: list[Dependency],
) -> AnalysisResult:
    """Fill scope fields missing from a stored result.

    Older snapshots may lack ``package_root``/``workspace_folder``. An entry
    takes them from the current dependency list when exactly one dependency
    shares its ``name@version``; ambiguous entries are left untouched.
    """
    if not current:
        return previous

    by_name_version: dict[str, list[Dependency]] = {}
    for dep in current:
        by_name_version.setdefault(f"{dep.name}@{dep.version}", []).append(dep)

    updated = False
    enriched: list[DependencyAnalysis] = []
    for analysis in previous.dependencies:
        dep = analysis.dependency
        matches = by_name_version.get(f"{dep.name}@{dep.version}")
        if dep.scope is None and matches and len(matches) == 1 and matches[0].scope:
            updated = True
            dep = replace(
                dep,
                package_root=matches[0].package_root,
                workspace_folder=matches[0].workspace_folder,
            )
            analysis = replace(analysis, dependency=dep)
        enriched.append(analysis)

    if not updated:
        return previous
    return replace(previous, dependencies=enriched)


def _unique(deps: list[Dependency]) -> list[Dependency]:
    seen: set[DependencyKey] = set()
    out: list[Dependency] = []
    for dep in deps:
        if dep.key in seen:
            continue
        seen.add(dep.key)
        out.append(dep)
    return out
