"""Scan performance measurement — wall clock and, on request, traced memory."""

from __future__ import annotations

import time
import tracemalloc

from depsentinel.engines.scan_coordinator.models import (
    AnalysisResult,
    MemoryUsage,
    PerformanceMetrics,
)


class ScanProfiler:
    """Measures one scan.

    Memory is only measured with *trace_memory*: tracing slows every
    allocation, so it stays off unless asked for. The profiler starts and
    stops ``tracemalloc`` itself; tracing started elsewhere is read but never
    reset or stopped, so its peak covers more than this scan.
    """

    def __init__(self, *, trace_memory: bool = False) -> None:
        self.trace_memory = trace_memory
        self._started_at = 0.0
        self._owns_tracing = False

    def start(self) -> None:
        self._started_at = time.perf_counter()
        if self.trace_memory and not tracemalloc.is_tracing():
            tracemalloc.start()
            self._owns_tracing = True

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._started_at) * 1000)

    def memory(self) -> MemoryUsage:
        if not self.trace_memory or not tracemalloc.is_tracing():
            return MemoryUsage()
        current, peak = tracemalloc.get_traced_memory()
        return MemoryUsage(current_bytes=current, peak_bytes=peak)

    def finish(self, result: AnalysisResult) -> PerformanceMetrics:
        """Snapshot metrics for *result* and stop tracing if we started it."""
        transitive = 0
        if result.performance_metrics is not None:
            transitive = result.performance_metrics.transitive_dependency_count
        metrics = PerformanceMetrics(
            scan_duration_ms=self.elapsed_ms(),
            memory=self.memory(),
            dependency_count=result.summary.total_dependencies,
            valid_dependency_count=result.summary.analyzed_dependencies,
            invalid_dependency_count=result.summary.failed_dependencies,
            transitive_dependency_count=transitive,
        )
        self.stop()
        return metrics

    def stop(self) -> None:
        if self._owns_tracing:
            tracemalloc.stop()
            self._owns_tracing = False
