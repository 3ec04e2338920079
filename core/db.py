from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Iterator, Optional

__all__ = [
    "DEFAULT_BUSY_TIMEOUT_MS",
    "connect",
    "configure_connection",
    "ensure_schema",
    "transaction",
]

LOGGER = logging.getLogger("growthlog.db")

DEFAULT_BUSY_TIMEOUT_MS = 5000

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS baby (
  id INTEGER PRIMARY KEY CHECK (id = 1),
  name TEXT,
  birthDate TEXT,
  gender TEXT,
  bloodType TEXT,
  avatar TEXT
);
CREATE TABLE IF NOT EXISTS records (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  date TEXT,
  time TEXT DEFAULT '',
  height REAL,
  weight REAL,
  head REAL,
  milk_amount REAL DEFAULT 0,
  poop TEXT DEFAULT '',
  pee TEXT DEFAULT '',
  note TEXT,
  mediaIds TEXT DEFAULT ''
);
CREATE TABLE IF NOT EXISTS media_meta (
  filename TEXT PRIMARY KEY,
  title TEXT,
  description TEXT,
  customDate TEXT
);
CREATE TABLE IF NOT EXISTS settings (
  key TEXT PRIMARY KEY,
  value TEXT
);
CREATE TABLE IF NOT EXISTS backup_logs (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  timestamp TEXT,
  filename TEXT,
  size INTEGER,
  recordCount INTEGER,
  mediaCount INTEGER,
  status TEXT
);
"""


def connect(
    db_path: str | Path,
    *,
    timeout: float = 5.0,
    isolation_level: Optional[str] = None,
    check_same_thread: bool = False,
) -> sqlite3.Connection:
    """Return a configured SQLite connection with sane defaults."""

    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(path),
        timeout=timeout,
        isolation_level=isolation_level,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    configure_connection(conn)
    return conn


def configure_connection(conn: sqlite3.Connection) -> None:
    conn.execute(f"PRAGMA busy_timeout={int(DEFAULT_BUSY_TIMEOUT_MS)}")
    try:
        conn.execute("PRAGMA journal_mode=WAL")
    except sqlite3.DatabaseError as exc:
        LOGGER.debug("WAL journal unavailable for %s: %s", conn, exc)


def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(_SCHEMA_SQL)
    conn.execute(
        "INSERT OR IGNORE INTO baby (id, name, birthDate, gender, bloodType) VALUES (1, ?, ?, ?, ?)",
        ("Baby", date.today().isoformat(), "male", "Unknown"),
    )


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
    except Exception:
        conn.rollback()
        raise
    else:
        conn.commit()
