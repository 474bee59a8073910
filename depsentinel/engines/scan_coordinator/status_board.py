"""In-memory observer that remembers the latest scan state for the API."""

from __future__ import annotations

from typing import Any

from depsentinel.engines.scan_coordinator.models import AnalysisResult, ScanCompletion
from depsentinel.engines.scan_coordinator.ports import ScanObserver


class ScanStatusBoard:
    """Records every observer event and forwards it to optional listeners."""

    def __init__(self, listeners: list[ScanObserver] | None = None) -> None:
        self.listeners: list[ScanObserver] = list(listeners or [])
        self.progress_percent = 0
        self.label = ""
        self.is_loading = False
        self.offline_mode: str | None = None
        self.offline_message: str | None = None
        self.last_completion: ScanCompletion | None = None
        self.last_error: str | None = None
        self.remediation: list[str] = []
        self.cache_enabled: bool | None = None
        self.empty_workspace = False

    # ── ScanObserver ─────────────────────────────────────────────────────

    def progress(self, percent: int, label: str) -> None:
        self.progress_percent = percent
        self.label = label
        self._forward("progress", percent, label)

    def loading(self, is_loading: bool, text: str | None = None) -> None:
        if is_loading and not self.is_loading:
            # A new scan starts with a clean slate.
            self.progress_percent = 0
            self.label = text or ""
            self.offline_mode = self.offline_message = None
            self.last_error = None
            self.remediation = []
            self.empty_workspace = False
        self.is_loading = is_loading
        self._forward("loading", is_loading, text)

    def offline_status(self, mode: str, message: str) -> None:
        self.offline_mode = mode
        self.offline_message = message
        self._forward("offline_status", mode, message)

    def empty_state(self, previous: AnalysisResult | None, cache_age_minutes: int) -> None:
        self.is_loading = False
        self.empty_workspace = True
        self._forward("empty_state", previous, cache_age_minutes)

    def scan_completed(self, completion: ScanCompletion) -> None:
        self.is_loading = False
        self.progress_percent = 100
        self.last_completion = completion
        self._forward("scan_completed", completion)

    def error(self, message: str, actions: list[str]) -> None:
        self.is_loading = False
        self.last_error = message
        self.remediation = list(actions)
        self._forward("error", message, actions)

    def cache_status_changed(self, enabled: bool) -> None:
        self.cache_enabled = enabled
        self._forward("cache_status_changed", enabled)

    # ── helpers ──────────────────────────────────────────────────────────

    def _forward(self, event: str, *args: Any) -> None:
        for listener in self.listeners:
            getattr(listener, event)(*args)
