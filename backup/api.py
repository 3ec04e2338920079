"""Public API for backup operations."""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from core.paths import AppPaths
from core.settings import settings_section
from core.state import AppState, SettingsStore, SQLiteDatabase

from .compression import decompress
from .config import default_config, load_config, save_config, validate_changes
from .create import build_snapshot, create_backup, write_artifact
from .errors import ArtifactExists, BackupError, BackupFileNotFound, BackupRestoreError
from .logs import STATUS_DELETED, STATUS_SUCCESS, BackupLog, BackupLogger, error_status
from .naming import backup_filename, export_filename, require_backup_filename
from .restore import apply_snapshot
from .retention import list_artifacts as _list_artifacts, prune_artifacts
from .scheduler import BackupScheduler, TimerFactory
from .types import (
    ArtifactInfo,
    BackupLogEntry,
    BackupOutcome,
    RestoreOutcome,
    SchedulerConfig,
)

LOGGER = logging.getLogger("growthlog.backup")


class BackupService:
    """Coordinate backup, restore, retention and scheduling.

    Every operation that writes to the storage directory, the media root or
    the database goes through one re-entrant lock, so a scheduled firing,
    a manual backup and a restore never interleave.
    """

    def __init__(
        self,
        paths: AppPaths,
        *,
        settings: Optional[Mapping[str, Any]] = None,
        timer_factory: Optional[TimerFactory] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._paths = paths
        self._settings = dict(settings or {})
        self._clock = clock or datetime.now
        self._lock = threading.RLock()
        database = SQLiteDatabase(paths.database)
        self._state = AppState(database)
        self._store = SettingsStore(database)
        self._history = BackupLog(database)
        self._logger = BackupLogger(paths.logs)
        backup_section = settings_section(self._settings, "backup")
        self._fallback = default_config(paths.backups, backup_section.get("defaults"))
        try:
            self._log_limit = int(backup_section.get("log_limit", 50) or 50)
        except (TypeError, ValueError):
            self._log_limit = 50
        self._scheduler = BackupScheduler(
            self.run_scheduled_backup,
            timer_factory=timer_factory,
            clock=self._clock,
            logger=self._logger,
        )

    # ------------------------------------------------------------------
    @property
    def state(self) -> AppState:
        return self._state

    @property
    def scheduler(self) -> BackupScheduler:
        return self._scheduler

    @property
    def media_root(self) -> Path:
        return self._paths.media

    def storage_dir(self) -> Path:
        return Path(self.get_config().storage_path)

    # ------------------------------------------------------------------
    def start(self) -> None:
        self._scheduler.configure(self.get_config())

    def stop(self) -> None:
        self._scheduler.stop()

    def get_config(self) -> SchedulerConfig:
        return load_config(self._store, self._fallback)

    def update_config(self, changes: Mapping[str, Any]) -> SchedulerConfig:
        """Validate and persist *changes*, then re-arm the scheduler."""

        with self._lock:
            config = validate_changes(self.get_config(), changes)
            save_config(self._store, config)
            self._logger.info("settings_updated", **{key: value for key, value in changes.items() if value is not None})
            self._scheduler.configure(config)
            return config

    # ------------------------------------------------------------------
    def backup_now(self) -> BackupOutcome:
        with self._lock:
            config = self.get_config()
            storage = Path(config.storage_path)
            try:
                path, bundle = create_backup(
                    self._state,
                    self._paths.media,
                    storage,
                    logger=self._logger,
                    now=self._clock(),
                )
            except Exception as exc:
                LOGGER.error("Backup failed: %s", exc)
                self._logger.event(event="backup_failed", phase="create", ok=False, error=str(exc))
                self._history.append(filename="", status=error_status(str(exc)))
                return BackupOutcome(success=False, error=str(exc))

            size = len(bundle.payload)
            self._history.append(
                filename=path.name,
                status=STATUS_SUCCESS,
                size_bytes=size,
                record_count=bundle.record_count,
                media_count=bundle.linked_media_count,
            )
            LOGGER.info("Backup written: %s (%.1f KB)", path.name, size / 1024)
            pruned: List[str] = []
            try:
                pruned = prune_artifacts(storage, config.max_count, logger=self._logger).removed
            except OSError as exc:
                self._logger.error("retention_failed", error=str(exc))
            return BackupOutcome(
                success=True,
                filename=path.name,
                size_bytes=size,
                record_count=bundle.record_count,
                media_count=bundle.linked_media_count,
                pruned=pruned,
            )

    def run_scheduled_backup(self) -> BackupOutcome:
        outcome = self.backup_now()
        if not outcome.success:
            LOGGER.warning("Scheduled backup did not complete: %s", outcome.error)
        return outcome

    # ------------------------------------------------------------------
    def list_artifacts(self) -> List[ArtifactInfo]:
        return _list_artifacts(self.storage_dir())

    def artifact_path(self, filename: str) -> Path:
        require_backup_filename(filename)
        path = self.storage_dir() / filename
        if not path.is_file():
            raise BackupFileNotFound(f"backup file not found: {filename}")
        return path

    def delete_artifact(self, filename: str) -> bool:
        require_backup_filename(filename)
        with self._lock:
            path = self.storage_dir() / filename
            if not path.is_file():
                return False
            path.unlink()
            self._history.append(filename=filename, status=STATUS_DELETED)
            self._logger.info("backup_deleted", filename=filename)
            return True

    def upload_artifact(self, payload: bytes) -> str:
        """Store an externally produced artifact after checking it is gzip data."""

        decompress(payload)
        with self._lock:
            filename = backup_filename(self._clock(), imported=True)
            try:
                write_artifact(payload, self.storage_dir(), filename)
            except ArtifactExists:
                self._logger.warning("upload_rejected", filename=filename, error="name already in use")
                raise
            self._logger.info("backup_uploaded", filename=filename, size=len(payload))
            return filename

    # ------------------------------------------------------------------
    def restore_artifact(self, filename: str) -> RestoreOutcome:
        with self._lock:
            payload = self.artifact_path(filename).read_bytes()
            return self._apply(payload, source=filename)

    def import_snapshot(self, payload: bytes) -> RestoreOutcome:
        with self._lock:
            return self._apply(payload, source="upload")

    def _apply(self, payload: bytes, *, source: str) -> RestoreOutcome:
        try:
            outcome = apply_snapshot(payload, self._state, self._paths.media, logger=self._logger, source=source)
        except BackupRestoreError as exc:
            self._history.append(filename=source, status=error_status(str(exc)))
            raise
        except BackupError as exc:
            self._logger.warning("restore_rejected", source=source, error=str(exc))
            raise
        LOGGER.info("Restored %d records from %s", outcome.record_count, source)
        return outcome

    def export_snapshot(self) -> Tuple[str, bytes]:
        """Build a snapshot for download without persisting it."""

        with self._lock:
            bundle = build_snapshot(self._state, self._paths.media, logger=self._logger)
        return export_filename(self._clock()), bundle.payload

    # ------------------------------------------------------------------
    def list_logs(self, limit: Optional[int] = None) -> List[BackupLogEntry]:
        return self._history.recent(limit or self._log_limit)

    def status(self) -> Dict[str, Any]:
        next_run = self._scheduler.next_run
        return {
            "state": self._scheduler.state,
            "next_run": next_run.isoformat() if next_run else None,
        }


__all__ = ["BackupService"]
