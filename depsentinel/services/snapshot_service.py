"""SnapshotService — versioned (de)serialization of the persisted analysis."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import pydantic
import structlog
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from depsentinel.dao.snapshot_dao import SnapshotDAO
from depsentinel.engines.scan_coordinator.models import AnalysisResult
from depsentinel.exceptions import SnapshotCorrupt
from depsentinel.models.analysis_snapshot import AnalysisSnapshot
from depsentinel.services import NotFoundError

log = structlog.get_logger("depsentinel.service")

SNAPSHOT_SCHEMA_VERSION = 1


class SnapshotEnvelope(BaseModel):
    """On-disk format. Datetimes are written as ISO-8601 strings."""

    schema_version: int = SNAPSHOT_SCHEMA_VERSION
    project_key: str
    saved_at: datetime
    result: AnalysisResult


def encode_snapshot(project_key: str, result: AnalysisResult) -> str:
    envelope = SnapshotEnvelope(
        project_key=project_key,
        saved_at=datetime.now(timezone.utc),
        result=result,
    )
    return envelope.model_dump_json()


def decode_snapshot(payload: str, project_key: str) -> SnapshotEnvelope:
    """Parse and migrate a stored payload.

    Version 0 is the legacy format: a bare result object with no envelope.
    Raises :class:`SnapshotCorrupt` for invalid JSON, an unknown version or
    a payload that fails validation.
    """
    try:
        raw = json.loads(payload)
    except (json.JSONDecodeError, TypeError) as exc:
        raise SnapshotCorrupt(f"snapshot for {project_key!r} is not valid JSON") from exc
    if not isinstance(raw, dict):
        raise SnapshotCorrupt(f"snapshot for {project_key!r} is not an object")

    version = raw.get("schema_version", 0)
    if version == 0:
        raw = _migrate_v0(raw, project_key)
    elif version != SNAPSHOT_SCHEMA_VERSION:
        raise SnapshotCorrupt(
            f"snapshot for {project_key!r} has unsupported schema_version {version!r}"
        )

    try:
        return SnapshotEnvelope.model_validate(raw)
    except pydantic.ValidationError as exc:
        raise SnapshotCorrupt(
            f"snapshot for {project_key!r} failed validation ({exc.error_count()} errors)"
        ) from exc


def _migrate_v0(raw: dict[str, Any], project_key: str) -> dict[str, Any]:
    log.info("snapshot.migrating", project_key=project_key, from_version=0)
    return {
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "project_key": project_key,
        "saved_at": raw.get("timestamp") or datetime.now(timezone.utc).isoformat(),
        "result": raw,
    }


class SnapshotService:
    """Stateless service for the one-row-per-project analysis snapshot."""

    def __init__(self, snapshot_dao: SnapshotDAO) -> None:
        self._snapshot_dao = snapshot_dao

    async def get(self, session: AsyncSession, project_key: str) -> AnalysisResult:
        """Return the stored result.

        Raises :class:`NotFoundError` if nothing is stored and
        :class:`SnapshotCorrupt` if the stored payload cannot be read.
        """
        return (await self.get_envelope(session, project_key)).result

    async def get_envelope(self, session: AsyncSession, project_key: str) -> SnapshotEnvelope:
        row = await self._snapshot_dao.get_by_project(session, project_key)
        if row is None:
            raise NotFoundError(f"no analysis stored for {project_key!r}")
        return decode_snapshot(row.payload, project_key)

    async def save(
        self, session: AsyncSession, project_key: str, result: AnalysisResult
    ) -> AnalysisSnapshot:
        """Replace the stored result for *project_key*."""
        return await self._snapshot_dao.upsert(
            session,
            project_key,
            schema_version=SNAPSHOT_SCHEMA_VERSION,
            payload=encode_snapshot(project_key, result),
        )

    async def delete(self, session: AsyncSession, project_key: str) -> None:
        """Raises :class:`NotFoundError` if nothing is stored."""
        deleted = await self._snapshot_dao.delete_by_project(session, project_key)
        if not deleted:
            raise NotFoundError(f"no analysis stored for {project_key!r}")
