"""Configuration — scan settings read from ``DEPSENTINEL_*`` environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///.depsentinel/state.db"
DEFAULT_CONNECTIVITY_URL = "https://registry.npmjs.org/"
VULNERABILITY_SOURCES = ("osv", "github")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ProgressSettings:
    """Polling constants for the progress estimator (seconds unless noted)."""

    active_interval: float = 0.15
    idle_interval: float = 1.0
    idle_threshold: float = 2.0
    heartbeat: float = 2.0
    max_duration: float = 300.0
    lead: int = 5  # percent the projection may run ahead of work
    per_dependency: float = 0.2
    min_estimate: float = 5.0
    slow_after: float = 10.0


@dataclass(frozen=True)
class ScanSettings:
    enable_cache: bool = True
    include_transitive: bool = True
    vulnerability_source: str = "osv"
    staleness_hours: float = 24.0
    auto_scan_on_startup: bool = True
    startup_delay: float = 2.0
    scan_on_save: bool = True
    watch_debounce: float = 1.0
    workspace_root: str = "."
    rescan_interval: float = 0.0  # 0 disables periodic rescans
    database_url: str = DEFAULT_DATABASE_URL
    project_key: str = field(default_factory=lambda: Path.cwd().name)
    connectivity_url: str = DEFAULT_CONNECTIVITY_URL
    connectivity_timeout: float = 5.0
    profile_memory: bool = False
    progress: ProgressSettings = field(default_factory=ProgressSettings)

    def __post_init__(self) -> None:
        if self.vulnerability_source not in VULNERABILITY_SOURCES:
            raise ValueError(
                f"vulnerability_source must be one of {VULNERABILITY_SOURCES}, "
                f"got {self.vulnerability_source!r}"
            )
        if self.staleness_hours <= 0:
            raise ValueError("staleness_hours must be positive")

    @property
    def staleness(self) -> timedelta:
        return timedelta(hours=self.staleness_hours)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ScanSettings:
        """Build settings from the environment; unset keys keep their defaults."""
        env = os.environ if environ is None else environ
        return cls(
            enable_cache=_env_bool(env, "DEPSENTINEL_ENABLE_CACHE", True),
            include_transitive=_env_bool(env, "DEPSENTINEL_INCLUDE_TRANSITIVE", True),
            vulnerability_source=env.get("DEPSENTINEL_VULN_SOURCE", "osv").strip().lower(),
            staleness_hours=_env_float(env, "DEPSENTINEL_STALENESS_HOURS", 24.0),
            auto_scan_on_startup=_env_bool(env, "DEPSENTINEL_AUTO_SCAN_ON_STARTUP", True),
            startup_delay=_env_float(env, "DEPSENTINEL_STARTUP_DELAY", 2.0),
            scan_on_save=_env_bool(env, "DEPSENTINEL_SCAN_ON_SAVE", True),
            watch_debounce=_env_float(env, "DEPSENTINEL_WATCH_DEBOUNCE", 1.0),
            workspace_root=env.get("DEPSENTINEL_WORKSPACE", "."),
            rescan_interval=_env_float(env, "DEPSENTINEL_RESCAN_INTERVAL", 0.0),
            database_url=env.get("DEPSENTINEL_DATABASE_URL", DEFAULT_DATABASE_URL),
            project_key=env.get("DEPSENTINEL_PROJECT_KEY") or Path.cwd().name,
            connectivity_url=env.get("DEPSENTINEL_CONNECTIVITY_URL", DEFAULT_CONNECTIVITY_URL),
            connectivity_timeout=_env_float(env, "DEPSENTINEL_CONNECTIVITY_TIMEOUT", 5.0),
            profile_memory=_env_bool(env, "DEPSENTINEL_PROFILE_MEMORY", False),
        )


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    return float(env.get(key, default))


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{key} must be a boolean, got {raw!r}")
