"""Settings router — read and change scan settings at runtime."""

from __future__ import annotations

import dataclasses

from fastapi import APIRouter, Depends

from depsentinel.api.deps import get_runtime, get_settings
from depsentinel.api.schemas.scan import LastOutcome
from depsentinel.api.schemas.settings import (
    SettingsResponse,
    UpdateSettingsRequest,
    UpdateSettingsResponse,
)
from depsentinel.core.config import ScanSettings
from depsentinel.runtime import Runtime

router = APIRouter()


@router.get("", response_model=SettingsResponse)
async def read_settings(settings: ScanSettings = Depends(get_settings)) -> SettingsResponse:
    return SettingsResponse.model_validate(settings)


@router.patch("", response_model=UpdateSettingsResponse)
async def update_settings(
    body: UpdateSettingsRequest,
    runtime: Runtime = Depends(get_runtime),
) -> UpdateSettingsResponse:
    """Apply the fields sent; waits for the rescan when the change needs one.

    A refused change (GitHub Advisory while offline) leaves the setting as it
    was and shows up in ``/api/v1/scans/status`` as the last error.
    """
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    new = dataclasses.replace(runtime.coordinator.settings, **changes)
    outcome = await runtime.config_handler.apply(new)
    return UpdateSettingsResponse(
        settings=SettingsResponse.model_validate(runtime.coordinator.settings),
        rescan=LastOutcome.from_outcome(outcome) if outcome is not None else None,
    )
