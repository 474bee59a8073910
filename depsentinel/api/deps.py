"""Dependency injection — runtime, session, and service getters."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from depsentinel.core.config import ScanSettings
from depsentinel.engines.scan_coordinator.status_board import ScanStatusBoard
from depsentinel.runtime import Runtime
from depsentinel.services.snapshot_service import SnapshotService

# ---------------------------------------------------------------------------
# Runtime (set by create_app)
# ---------------------------------------------------------------------------
_runtime: Runtime | None = None


def set_runtime(runtime: Runtime | None) -> None:
    global _runtime  # noqa: PLW0603
    _runtime = runtime


def get_runtime() -> Runtime:
    if _runtime is None:
        raise RuntimeError("call set_runtime() before handling requests")
    return _runtime


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a per-request session with automatic commit/rollback."""
    async with get_runtime().session_factory() as session:
        async with session.begin():
            yield session


# ---------------------------------------------------------------------------
# Getters (for Depends())
# ---------------------------------------------------------------------------


def get_settings() -> ScanSettings:
    return get_runtime().coordinator.settings


def get_status_board() -> ScanStatusBoard:
    return get_runtime().board


def get_snapshot_service() -> SnapshotService:
    return get_runtime().snapshot_service
