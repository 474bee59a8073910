"""Network status tracking — one HEAD request decides online vs offline."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import structlog

from depsentinel.core.config import DEFAULT_CONNECTIVITY_URL
from depsentinel.engines.connectivity.errors import is_network_error
from depsentinel.engines.scan_coordinator.models import NetworkStatus

log = structlog.get_logger("depsentinel.engine")

REGISTRY_CHANNEL = "registry"
MAX_ERRORS = 5

_CHANNEL_NAMES = {
    "registry": "Package registry",
    "osv": "OSV vulnerability database",
    "github": "GitHub Advisory",
}


class NetworkStatusService:
    """Tracks which data channels are reachable during one scan.

    Implements the connectivity probe consumed by the scan coordinator.
    """

    def __init__(
        self,
        url: str = DEFAULT_CONNECTIVITY_URL,
        *,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.simulate_offline = False
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._online = True
        self._degraded: list[str] = []
        self._errors: list[str] = []
        self.last_checked: datetime | None = None

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> NetworkStatusService:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── probe ──────────────────────────────────────────────────────────────

    def reset(self) -> None:
        self._online = True
        self._degraded = []
        self._errors = []
        self.last_checked = datetime.now(timezone.utc)

    async def check_connectivity(self) -> bool:
        """HEAD the registry. Any HTTP response at all counts as online."""
        if self.simulate_offline:
            self.mark_degraded(REGISTRY_CHANNEL, "Simulated offline mode (development)")
            return False

        try:
            await self._client.head(self.url)
        except httpx.TimeoutException:
            self.mark_degraded(REGISTRY_CHANNEL, "Connection to package registry timed out")
            return False
        except httpx.HTTPError as exc:
            log.debug("connectivity.unreachable", url=self.url, error=str(exc))
            self.mark_degraded(REGISTRY_CHANNEL, "Unable to reach package registry")
            return False
        self.last_checked = datetime.now(timezone.utc)
        return True

    def mark_healthy(self, channel: str) -> None:
        if channel in self._degraded:
            self._degraded.remove(channel)
        if not self._degraded:
            self._online = True
        self.last_checked = datetime.now(timezone.utc)

    def mark_degraded(self, channel: str, message: str) -> None:
        self._online = False
        if channel not in self._degraded:
            self._degraded.append(channel)
        if len(self._errors) < MAX_ERRORS:
            self._errors.append(message)
        self.last_checked = datetime.now(timezone.utc)

    def snapshot(self) -> NetworkStatus:
        return NetworkStatus(
            is_online=self._online,
            degraded_features=list(self._degraded),
            errors=list(self._errors),
        )

    # ── reporting ──────────────────────────────────────────────────────────

    def has_issues(self) -> bool:
        return not self._online or bool(self._degraded)

    def user_message(self) -> str:
        if not self.has_issues():
            return ""
        if not self._degraded:
            return "Unable to reach external services."
        names = [_CHANNEL_NAMES.get(c, c) for c in self._degraded]
        if len(names) == 1:
            return f"{names[0]} is unavailable due to network issues."
        return f"{', '.join(names[:-1])} and {names[-1]} are unavailable due to network issues."

    is_network_error = staticmethod(is_network_error)
