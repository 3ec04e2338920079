"""Common dataclasses shared across backup modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

DAILY = "daily"
MODE_INTERVAL = "interval"
MODE_SCHEDULE = "schedule"


@dataclass(slots=True)
class ArchiveEntry:
    """Single named payload stored inside a TAR stream."""

    name: str
    content: bytes = b""


@dataclass(slots=True)
class SnapshotDocument:
    export_time: str
    version: str
    baby_profile: Dict[str, Any]
    growth_records: List[Dict[str, Any]]
    media_metadata: List[Dict[str, Any]]
    linked_media_count: int

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "exportTime": self.export_time,
            "version": self.version,
            "baby": self.baby_profile,
            "records": self.growth_records,
            "mediaMeta": self.media_metadata,
            "linkedMediaCount": self.linked_media_count,
        }


@dataclass(slots=True)
class SnapshotBundle:
    """Compressed archive bytes ready to persist or stream."""

    payload: bytes
    record_count: int
    linked_media_count: int
    packed_media_count: int


@dataclass(slots=True)
class BackupOutcome:
    success: bool
    filename: Optional[str] = None
    size_bytes: int = 0
    record_count: int = 0
    media_count: int = 0
    error: Optional[str] = None
    pruned: List[str] = field(default_factory=list)


@dataclass(slots=True)
class RestoreOutcome:
    record_count: int
    linked_media_count: int
    media_restored: int
    source: Optional[str] = None


@dataclass(slots=True)
class ArtifactInfo:
    filename: str
    size_bytes: int
    created: str
    path: Path


@dataclass(slots=True)
class BackupLogEntry:
    id: int
    timestamp: str
    filename: str
    size_bytes: int
    record_count: int
    media_count: int
    status: str


@dataclass(slots=True)
class RetentionSummary:
    removed: List[str]
    kept: List[str]
    freed_bytes: int


@dataclass(slots=True)
class SchedulerConfig:
    """Persisted cadence and storage settings for automatic backups."""

    enabled: bool = True
    mode: str = MODE_SCHEDULE
    interval_hours: int = 24
    schedule_time: str = "02:00"
    schedule_day: Union[str, int] = DAILY
    storage_path: str = "backups"
    max_count: int = 10


__all__ = [
    "ArchiveEntry",
    "ArtifactInfo",
    "BackupLogEntry",
    "BackupOutcome",
    "DAILY",
    "MODE_INTERVAL",
    "MODE_SCHEDULE",
    "RestoreOutcome",
    "RetentionSummary",
    "SchedulerConfig",
    "SnapshotBundle",
    "SnapshotDocument",
]
