"""Database-backed snapshot store used by the scan coordinator."""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from depsentinel.engines.scan_coordinator.models import AnalysisResult
from depsentinel.exceptions import SnapshotCorrupt
from depsentinel.services import NotFoundError
from depsentinel.services.snapshot_service import SnapshotService

log = structlog.get_logger("depsentinel.engine")


class DatabaseSnapshotStore:
    """Opens one short transaction per load/save.

    A corrupt snapshot is logged and reported as "no previous result" so the
    next scan simply starts from scratch.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        snapshot_service: SnapshotService,
    ) -> None:
        self._session_factory = session_factory
        self._snapshot_service = snapshot_service

    async def load(self, project_key: str) -> AnalysisResult | None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    return await self._snapshot_service.get(session, project_key)
        except NotFoundError:
            return None
        except SnapshotCorrupt as exc:
            log.warning("snapshot.corrupt", project_key=project_key, error=str(exc))
            return None

    async def save(self, project_key: str, result: AnalysisResult) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await self._snapshot_service.save(session, project_key, result)
        log.info(
            "snapshot.saved",
            project_key=project_key,
            dependencies=len(result.dependencies),
            timestamp=result.timestamp.isoformat(),
        )

    async def clear(self, project_key: str) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await self._snapshot_service.delete(session, project_key)
        except NotFoundError:
            return False
        return True
