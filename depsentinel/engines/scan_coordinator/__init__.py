"""Scan coordinator engine — single-flight scans with cache-aware strategy selection."""

from depsentinel.engines.scan_coordinator.change_detector import detect_changes
from depsentinel.engines.scan_coordinator.coordinator import ScanCoordinator
from depsentinel.engines.scan_coordinator.lock import ScanLock, ScanTicket
from depsentinel.engines.scan_coordinator.merger import merge_results
from depsentinel.engines.scan_coordinator.models import (
    AnalysisResult,
    ScanOutcome,
    ScanStatus,
    ScanStrategy,
    ScanTrigger,
)
from depsentinel.engines.scan_coordinator.offline_preflight import OfflinePreflight
from depsentinel.engines.scan_coordinator.progress import ProgressEstimator

__all__ = [
    "AnalysisResult",
    "OfflinePreflight",
    "ProgressEstimator",
    "ScanCoordinator",
    "ScanLock",
    "ScanOutcome",
    "ScanStatus",
    "ScanStrategy",
    "ScanTicket",
    "ScanTrigger",
    "detect_changes",
    "merge_results",
]
