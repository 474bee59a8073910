"""Scan request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from depsentinel.engines.scan_coordinator.models import AnalysisResult, ScanOutcome


class ScanRequest(BaseModel):
    bypass_cache: bool | None = None


class ScanAccepted(BaseModel):
    accepted: bool
    running: bool


class LastOutcome(BaseModel):
    status: str
    trigger: str
    strategy: str
    cached: bool
    cache_age_minutes: int
    message: str | None
    remediation: list[str]

    @classmethod
    def from_outcome(cls, outcome: ScanOutcome) -> LastOutcome:
        return cls(
            status=outcome.status.value,
            trigger=outcome.trigger.value,
            strategy=outcome.strategy.value,
            cached=outcome.cached,
            cache_age_minutes=outcome.cache_age_minutes,
            message=outcome.message,
            remediation=outcome.remediation,
        )


class ScanStatusResponse(BaseModel):
    running: bool
    loading: bool
    progress: int
    label: str
    offline_mode: str | None
    offline_message: str | None
    cache_enabled: bool
    last_error: str | None
    remediation: list[str]
    last_outcome: LastOutcome | None


class AnalysisResponse(BaseModel):
    project_key: str
    schema_version: int
    saved_at: datetime
    cached: bool
    cache_age_minutes: int
    result: AnalysisResult
