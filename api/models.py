"""Pydantic schemas for the GrowthLog backup API."""
from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, Field

from backup.types import (
    ArtifactInfo,
    BackupLogEntry,
    BackupOutcome,
    RestoreOutcome,
    SchedulerConfig,
)


class StatusResponse(BaseModel):
    """Service status including the scheduler state."""

    ok: bool = Field(True, description="Indicates the API server is reachable.")
    version: str = Field(..., description="Application version string.")
    time_utc: str = Field(..., description="Current UTC timestamp in ISO8601 format.")
    scheduler_state: str = Field(..., description="stopped, armed_interval or armed_schedule.")
    next_run: Optional[str] = Field(None, description="Local time of the next automatic backup.")


class BackupSettingsRequest(BaseModel):
    """Partial update of the automatic backup settings; omitted fields stay unchanged."""

    enabled: Optional[bool] = None
    mode: Optional[str] = Field(None, description="interval or schedule.")
    interval_hours: Optional[int] = Field(None, description="Hours between interval backups.")
    schedule_time: Optional[str] = Field(None, description="Wall-clock HH:MM for schedule mode.")
    schedule_day: Optional[Union[int, str]] = Field(
        None, description="'daily' or a weekday number, 0 = Sunday ... 6 = Saturday."
    )
    storage_path: Optional[str] = Field(None, description="Existing writable directory for artifacts.")
    max_count: Optional[int] = Field(None, description="Number of artifacts kept by retention.")


class BackupSettingsResponse(BaseModel):
    enabled: bool
    mode: str
    interval_hours: int
    schedule_time: str
    schedule_day: Union[int, str]
    storage_path: str
    max_count: int
    next_run: Optional[str] = None

    @classmethod
    def from_config(cls, config: SchedulerConfig, next_run: Optional[str] = None) -> "BackupSettingsResponse":
        return cls(
            enabled=config.enabled,
            mode=config.mode,
            interval_hours=config.interval_hours,
            schedule_time=config.schedule_time,
            schedule_day=config.schedule_day,
            storage_path=config.storage_path,
            max_count=config.max_count,
            next_run=next_run,
        )


class BackupNowResponse(BaseModel):
    success: bool
    filename: Optional[str] = None
    size: int = Field(0, description="Artifact size in bytes.")
    record_count: int = 0
    media_count: int = 0
    pruned: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: BackupOutcome) -> "BackupNowResponse":
        return cls(
            success=outcome.success,
            filename=outcome.filename,
            size=outcome.size_bytes,
            record_count=outcome.record_count,
            media_count=outcome.media_count,
            pruned=list(outcome.pruned),
            error=outcome.error,
        )


class ArtifactResponse(BaseModel):
    filename: str
    size: int
    created: str = Field(..., description="Modification time in ISO8601 UTC.")

    @classmethod
    def from_info(cls, info: ArtifactInfo) -> "ArtifactResponse":
        return cls(filename=info.filename, size=info.size_bytes, created=info.created)


class ArtifactListResponse(BaseModel):
    files: List[ArtifactResponse]


class LogEntryResponse(BaseModel):
    id: int
    timestamp: str
    filename: str
    size: int
    record_count: int
    media_count: int
    status: str

    @classmethod
    def from_entry(cls, entry: BackupLogEntry) -> "LogEntryResponse":
        return cls(
            id=entry.id,
            timestamp=entry.timestamp,
            filename=entry.filename,
            size=entry.size_bytes,
            record_count=entry.record_count,
            media_count=entry.media_count,
            status=entry.status,
        )


class LogListResponse(BaseModel):
    logs: List[LogEntryResponse]


class UploadResponse(BaseModel):
    success: bool = True
    filename: str


class DeleteResponse(BaseModel):
    success: bool = True
    deleted: bool = Field(..., description="False when the file was already absent.")


class RestoreResponse(BaseModel):
    success: bool = True
    record_count: int
    linked_media_count: int
    media_restored: int

    @classmethod
    def from_outcome(cls, outcome: RestoreOutcome) -> "RestoreResponse":
        return cls(
            record_count=outcome.record_count,
            linked_media_count=outcome.linked_media_count,
            media_restored=outcome.media_restored,
        )


__all__ = [
    "ArtifactListResponse",
    "ArtifactResponse",
    "BackupNowResponse",
    "BackupSettingsRequest",
    "BackupSettingsResponse",
    "DeleteResponse",
    "LogEntryResponse",
    "LogListResponse",
    "RestoreResponse",
    "StatusResponse",
    "UploadResponse",
]
