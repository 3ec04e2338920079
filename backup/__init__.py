"""Backup and restore orchestration for GrowthLog."""
from __future__ import annotations

from .api import BackupService
from .errors import BackupError
from .scheduler import BackupScheduler, next_occurrence
from .types import BackupOutcome, RestoreOutcome, RetentionSummary, SchedulerConfig

__all__ = [
    "BackupError",
    "BackupOutcome",
    "BackupScheduler",
    "BackupService",
    "RestoreOutcome",
    "RetentionSummary",
    "SchedulerConfig",
    "next_occurrence",
]
