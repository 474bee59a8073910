"""Settings request/response schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from depsentinel.api.schemas.scan import LastOutcome


class SettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    project_key: str
    enable_cache: bool
    include_transitive: bool
    vulnerability_source: str
    staleness_hours: float
    scan_on_save: bool
    watch_debounce: float
    workspace_root: str
    rescan_interval: float


class UpdateSettingsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enable_cache: bool | None = None
    include_transitive: bool | None = None
    vulnerability_source: Literal["osv", "github"] | None = None
    staleness_hours: float | None = Field(default=None, gt=0)
    scan_on_save: bool | None = None
    watch_debounce: float | None = Field(default=None, ge=0)


class UpdateSettingsResponse(BaseModel):
    settings: SettingsResponse
    rescan: LastOutcome | None
