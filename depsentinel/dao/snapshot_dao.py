"""SnapshotDAO — analysis_snapshots table operations."""

from sqlalchemy.ext.asyncio import AsyncSession

from depsentinel.dao.base import BaseDAO
from depsentinel.models.analysis_snapshot import AnalysisSnapshot


class SnapshotDAO(BaseDAO[AnalysisSnapshot]):
    model = AnalysisSnapshot

    # ── read ──────────────────────────────────────────────────────────────

    async def get_by_project(
        self, session: AsyncSession, project_key: str
    ) -> AnalysisSnapshot | None:
        return await self.get_by_id(session, project_key)

    # ── write ─────────────────────────────────────────────────────────────

    async def upsert(
        self,
        session: AsyncSession,
        project_key: str,
        *,
        schema_version: int,
        payload: str,
    ) -> AnalysisSnapshot:
        """Replace the project's snapshot wholesale, creating the row if needed."""
        updated = await self.update(
            session, project_key, schema_version=schema_version, payload=payload
        )
        if updated is not None:
            return updated
        return await self.create(
            session,
            project_key=project_key,
            schema_version=schema_version,
            payload=payload,
        )

    async def delete_by_project(self, session: AsyncSession, project_key: str) -> bool:
        return await self.delete(session, project_key)
