"""Structured logging helpers and the persistent backup history."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List

from core.db import transaction
from core.state import SQLiteDatabase

from .types import BackupLogEntry

LOGGER = logging.getLogger("growthlog.backup")

STATUS_SUCCESS = "success"
STATUS_DELETED = "deleted"


def error_status(message: str) -> str:
    return f"error: {message}"


class BackupLogger:
    """Write structured JSONL entries for backup related events."""

    def __init__(self, logs_dir: Path) -> None:
        self._log_path = Path(logs_dir) / "backup.jsonl"
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()

    # ------------------------------------------------------------------
    def _write(self, payload: Dict[str, Any], *, level: int) -> None:
        payload.setdefault("ts", datetime.now(timezone.utc).isoformat())
        line = json.dumps(payload, sort_keys=True, default=str)
        with self._lock:
            with self._log_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        LOGGER.log(level, "%s", line)

    def event(self, *, event: str, phase: str, ok: bool, **extra: Any) -> None:
        payload = {
            "event": event,
            "phase": phase,
            "ok": bool(ok),
        }
        if extra:
            payload.update(extra)
        level = logging.INFO if ok else logging.ERROR
        self._write(payload, level=level)

    def info(self, event: str, **extra: Any) -> None:
        self._write({"event": event, **extra, "ok": True}, level=logging.INFO)

    def warning(self, event: str, **extra: Any) -> None:
        self._write({"event": event, **extra, "ok": False}, level=logging.WARNING)

    def error(self, event: str, **extra: Any) -> None:
        self._write({"event": event, **extra, "ok": False}, level=logging.ERROR)


class BackupLog:
    """Append-only ``backup_logs`` table shown in the backup history view."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def append(
        self,
        *,
        filename: str,
        status: str,
        size_bytes: int = 0,
        record_count: int = 0,
        media_count: int = 0,
        timestamp: str | None = None,
    ) -> None:
        stamp = timestamp or datetime.now(timezone.utc).isoformat()
        conn = self._db.connect()
        try:
            with transaction(conn):
                conn.execute(
                    "INSERT INTO backup_logs (timestamp, filename, size, recordCount, mediaCount, status) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (stamp, filename, int(size_bytes), int(record_count), int(media_count), status),
                )
        finally:
            conn.close()

    def recent(self, limit: int = 50) -> List[BackupLogEntry]:
        conn = self._db.connect()
        try:
            rows = conn.execute(
                "SELECT * FROM backup_logs ORDER BY timestamp DESC, id DESC LIMIT ?",
                (int(limit),),
            ).fetchall()
        finally:
            conn.close()
        return [
            BackupLogEntry(
                id=int(row["id"]),
                timestamp=str(row["timestamp"] or ""),
                filename=str(row["filename"] or ""),
                size_bytes=int(row["size"] or 0),
                record_count=int(row["recordCount"] or 0),
                media_count=int(row["mediaCount"] or 0),
                status=str(row["status"] or ""),
            )
            for row in rows
        ]


__all__ = [
    "BackupLog",
    "BackupLogger",
    "STATUS_DELETED",
    "STATUS_SUCCESS",
    "error_status",
]
