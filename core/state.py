"""SQLite backed application state consumed by the backup subsystem.

The backup core only ever reads whole collections or replaces them wholesale;
there is no partial update API here.
"""
from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .db import connect, ensure_schema, transaction

__all__ = [
    "AppState",
    "MEDIA_META_COLUMNS",
    "PROFILE_COLUMNS",
    "RECORD_COLUMNS",
    "SettingsStore",
    "SQLiteDatabase",
]

PROFILE_COLUMNS = ("name", "birthDate", "gender", "bloodType")
RECORD_COLUMNS = (
    "date",
    "time",
    "height",
    "weight",
    "head",
    "milk_amount",
    "poop",
    "pee",
    "note",
    "mediaIds",
)
MEDIA_META_COLUMNS = ("filename", "title", "description", "customDate")

_RECORD_DEFAULTS: Dict[str, Any] = {
    "time": "",
    "milk_amount": 0,
    "poop": "",
    "pee": "",
    "mediaIds": "",
}


def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    return {key: row[key] for key in row.keys()}


class SQLiteDatabase:
    """Shared connection factory ensuring the schema exists exactly once."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._db_path

    def connect(self) -> sqlite3.Connection:
        conn = connect(self._db_path)
        if not self._schema_ready:
            with self._schema_lock:
                if not self._schema_ready:
                    ensure_schema(conn)
                    self._schema_ready = True
        return conn


class AppState:
    """Profile, growth records and media metadata with full-replace semantics."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    # ------------------------------------------------------------------
    def read_profile(self) -> Dict[str, Any]:
        conn = self._db.connect()
        try:
            row = conn.execute("SELECT * FROM baby WHERE id = 1").fetchone()
            return _row_to_dict(row) if row else {}
        finally:
            conn.close()

    def read_all_records(self) -> List[Dict[str, Any]]:
        conn = self._db.connect()
        try:
            rows = conn.execute("SELECT * FROM records ORDER BY date DESC, id DESC").fetchall()
            return [_row_to_dict(row) for row in rows]
        finally:
            conn.close()

    def read_all_media_metadata(self) -> List[Dict[str, Any]]:
        conn = self._db.connect()
        try:
            rows = conn.execute("SELECT * FROM media_meta ORDER BY filename").fetchall()
            return [_row_to_dict(row) for row in rows]
        finally:
            conn.close()

    # ------------------------------------------------------------------
    def replace_profile(self, profile: Mapping[str, Any]) -> None:
        self._run(lambda conn: self._write_profile(conn, profile))

    def replace_all_records(self, records: Sequence[Mapping[str, Any]]) -> None:
        self._run(lambda conn: self._write_records(conn, records))

    def replace_all_media_metadata(self, rows: Sequence[Mapping[str, Any]]) -> None:
        self._run(lambda conn: self._write_media_metadata(conn, rows))

    def replace_snapshot(
        self,
        profile: Mapping[str, Any],
        records: Sequence[Mapping[str, Any]],
        media_metadata: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> None:
        """Replace profile, records and (optionally) metadata in one transaction."""

        def _apply(conn: sqlite3.Connection) -> None:
            self._write_profile(conn, profile)
            self._write_records(conn, records)
            if media_metadata is not None:
                self._write_media_metadata(conn, media_metadata)

        self._run(_apply)

    # ------------------------------------------------------------------
    def _run(self, action) -> None:
        conn = self._db.connect()
        try:
            with transaction(conn):
                action(conn)
        finally:
            conn.close()

    @staticmethod
    def _write_profile(conn: sqlite3.Connection, profile: Mapping[str, Any]) -> None:
        columns = list(PROFILE_COLUMNS)
        if "avatar" in profile:
            columns.append("avatar")
        values = [profile.get(column) for column in columns]
        conn.execute("INSERT OR IGNORE INTO baby (id) VALUES (1)")
        assignments = ", ".join(f"{column} = ?" for column in columns)
        conn.execute(f"UPDATE baby SET {assignments} WHERE id = 1", values)

    @staticmethod
    def _write_records(conn: sqlite3.Connection, records: Iterable[Mapping[str, Any]]) -> None:
        conn.execute("DELETE FROM records")
        for record in records:
            columns = list(RECORD_COLUMNS)
            values = []
            for column in RECORD_COLUMNS:
                value = record.get(column)
                if value is None:
                    value = _RECORD_DEFAULTS.get(column)
                values.append(value)
            if record.get("id") is not None:
                columns.insert(0, "id")
                values.insert(0, record["id"])
            placeholders = ", ".join("?" for _ in columns)
            conn.execute(
                f"INSERT INTO records ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )

    @staticmethod
    def _write_media_metadata(conn: sqlite3.Connection, rows: Iterable[Mapping[str, Any]]) -> None:
        conn.execute("DELETE FROM media_meta")
        conn.executemany(
            "INSERT OR REPLACE INTO media_meta (filename, title, description, customDate) VALUES (?, ?, ?, ?)",
            ([row.get(column) for column in MEDIA_META_COLUMNS] for row in rows),
        )


class SettingsStore:
    """String key/value persistence backed by the ``settings`` table."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        conn = self._db.connect()
        try:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else default
        finally:
            conn.close()

    def all(self) -> Dict[str, str]:
        conn = self._db.connect()
        try:
            rows = conn.execute("SELECT key, value FROM settings").fetchall()
            return {row["key"]: row["value"] for row in rows}
        finally:
            conn.close()

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, str]) -> None:
        conn = self._db.connect()
        try:
            with transaction(conn):
                conn.executemany(
                    "INSERT INTO settings(key, value) VALUES(?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                    [(key, str(value)) for key, value in values.items()],
                )
        finally:
            conn.close()
