"""Scans router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from depsentinel.api.deps import get_runtime, get_status_board
from depsentinel.api.schemas.scan import (
    LastOutcome,
    ScanAccepted,
    ScanRequest,
    ScanStatusResponse,
)
from depsentinel.engines.scan_coordinator.models import ScanTrigger
from depsentinel.engines.scan_coordinator.status_board import ScanStatusBoard
from depsentinel.runtime import Runtime

router = APIRouter()


@router.post("", response_model=ScanAccepted, status_code=status.HTTP_202_ACCEPTED)
async def start_scan(
    body: ScanRequest | None = None,
    runtime: Runtime = Depends(get_runtime),
) -> ScanAccepted:
    bypass = body.bypass_cache if body is not None else None
    accepted = runtime.request_scan(ScanTrigger.COMMAND, bypass_cache=bypass)
    return ScanAccepted(accepted=accepted, running=True)


@router.get("/status", response_model=ScanStatusResponse)
async def scan_status(
    runtime: Runtime = Depends(get_runtime),
    board: ScanStatusBoard = Depends(get_status_board),
) -> ScanStatusResponse:
    coordinator = runtime.coordinator
    outcome = coordinator.last_outcome
    last = LastOutcome.from_outcome(outcome) if outcome is not None else None
    return ScanStatusResponse(
        running=coordinator.is_running,
        loading=board.is_loading,
        progress=board.progress_percent,
        label=board.label,
        offline_mode=board.offline_mode,
        offline_message=board.offline_message,
        cache_enabled=coordinator.settings.enable_cache,
        last_error=board.last_error,
        remediation=board.remediation,
        last_outcome=last,
    )
