"""Offline preflight — can a scan proceed without the network?"""

from __future__ import annotations

import structlog

from depsentinel.engines.scan_coordinator.models import (
    AnalysisResult,
    CacheCoverageVerdict,
    ChangeSet,
    Coverage,
    Dependency,
)
from depsentinel.engines.scan_coordinator.ports import (
    CacheAccessor,
    ConnectivityProbe,
    ScanObserver,
)

log = structlog.get_logger("depsentinel.engine")

REGISTRY_CHANNEL = "registry"
MISSING_PREVIEW_LIMIT = 3

NO_CACHE_MESSAGE = "Offline detected and cache unavailable. Connect to the internet to scan."
FULL_CACHE_MESSAGE = (
    "Offline detected. Serving analysis from cache. "
    "Connect to internet and refresh for the most accurate results."
)
PARTIAL_CACHE_ALERT = (
    "Network is offline and required data is not cached. "
    "Connect to the internet and rerun the scan."
)


class OfflinePreflight:
    """Checks connectivity and, when offline, per-dependency cache coverage."""

    def __init__(
        self,
        probe: ConnectivityProbe,
        cache: CacheAccessor | None,
        observer: ScanObserver,
        *,
        vulnerability_source: str = "osv",
    ) -> None:
        self._probe = probe
        self._cache = cache
        self._observer = observer
        self.vulnerability_source = vulnerability_source

    @property
    def channels(self) -> tuple[str, str]:
        return (REGISTRY_CHANNEL, self.vulnerability_source)

    async def check(
        self,
        *,
        bypass_cache: bool,
        previous: AnalysisResult | None,
        changes: ChangeSet,
        dependencies: list[Dependency],
    ) -> CacheCoverageVerdict:
        if bypass_cache:
            # The caller already required live data before getting here.
            return CacheCoverageVerdict(Coverage.PROCEED_LIVE)

        self._probe.reset()
        log.info("preflight.checking_connectivity")
        try:
            online = await self._probe.check_connectivity()
        except Exception:
            # A broken probe must not block scans.
            log.exception("preflight.probe_failed")
            return CacheCoverageVerdict(Coverage.PROCEED_LIVE)

        if online:
            for channel in self.channels:
                self._probe.mark_healthy(channel)
            return CacheCoverageVerdict(Coverage.PROCEED_LIVE)

        log.warning("preflight.offline")

        if self._cache is None:
            self._degrade(NO_CACHE_MESSAGE)
            self._observer.offline_status("partial", NO_CACHE_MESSAGE)
            self._observer.loading(False)
            return CacheCoverageVerdict(Coverage.ABORT_NO_CACHE, message=NO_CACHE_MESSAGE)

        trusted = (
            previous is not None
            and not changes.is_full_scan
            and not changes.has_changes
            and len(dependencies) == len(previous.dependencies)
        )
        log.debug("preflight.previous_result", trusted=trusted, dependencies=len(dependencies))

        missing = await self._missing_entries(self._cache, dependencies)

        if not missing:
            self._degrade(FULL_CACHE_MESSAGE)
            self._observer.offline_status("full-cache", FULL_CACHE_MESSAGE)
            log.info("preflight.full_cache_coverage", trusted=trusted)
            return CacheCoverageVerdict(Coverage.PROCEED_FULL_CACHE, message=FULL_CACHE_MESSAGE)

        preview = ", ".join(missing[:MISSING_PREVIEW_LIMIT])
        message = (
            f"Offline detected. Missing cached data for {len(missing)} packages"
            f" (e.g., {preview}). Connect to the internet and re-run the scan."
        )
        self._degrade(message)
        self._observer.offline_status("partial", message)
        self._observer.loading(False)
        self._observer.error(PARTIAL_CACHE_ALERT, [])
        log.warning("preflight.partial_cache_coverage", missing=len(missing), preview=preview)
        return CacheCoverageVerdict(Coverage.ABORT_PARTIAL_CACHE, missing=missing, message=message)

    async def _missing_entries(
        self, cache: CacheAccessor, dependencies: list[Dependency]
    ) -> list[str]:
        """Identifiers of direct dependencies lacking registry or vulnerability data."""
        missing: list[str] = []
        for dep in dependencies:
            if dep.is_transitive:
                continue
            try:
                metadata = await cache.get_registry_metadata(dep.name)
                vulns = await cache.get_vulnerabilities(
                    self.vulnerability_source, dep.name, dep.version
                )
            except Exception:
                log.warning(
                    "preflight.cache_lookup_failed", dependency=dep.identifier, exc_info=True
                )
                metadata = vulns = None
            if metadata is None or vulns is None:
                missing.append(dep.identifier)
        return missing

    def _degrade(self, message: str) -> None:
        for channel in self.channels:
            self._probe.mark_degraded(channel, message)
