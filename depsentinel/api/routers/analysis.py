"""Analysis router — the persisted current result."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from depsentinel.api.deps import get_runtime, get_session, get_snapshot_service
from depsentinel.api.schemas.scan import AnalysisResponse
from depsentinel.runtime import Runtime
from depsentinel.services import ConflictError
from depsentinel.services.snapshot_service import SnapshotService

router = APIRouter()


@router.get("", response_model=AnalysisResponse)
async def get_analysis(
    session: AsyncSession = Depends(get_session),
    runtime: Runtime = Depends(get_runtime),
    svc: SnapshotService = Depends(get_snapshot_service),
) -> AnalysisResponse:
    project_key = runtime.coordinator.settings.project_key
    envelope = await svc.get_envelope(session, project_key)

    completion = runtime.board.last_completion
    if completion is not None and completion.result.timestamp == envelope.result.timestamp:
        cached, age = completion.cached, completion.cache_age_minutes
    else:
        # Stored by an earlier process: whatever we serve now comes from cache.
        ts = envelope.result.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        cached = True
        age = round((datetime.now(timezone.utc) - ts).total_seconds() / 60)

    return AnalysisResponse(
        project_key=envelope.project_key,
        schema_version=envelope.schema_version,
        saved_at=envelope.saved_at,
        cached=cached,
        cache_age_minutes=age,
        result=envelope.result,
    )


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_analysis(
    session: AsyncSession = Depends(get_session),
    runtime: Runtime = Depends(get_runtime),
    svc: SnapshotService = Depends(get_snapshot_service),
) -> Response:
    if runtime.coordinator.is_running:
        raise ConflictError("a scan is in progress")
    await svc.delete(session, runtime.coordinator.settings.project_key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
