from __future__ import annotations

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

__all__ = [
    "AppPaths",
    "ensure_working_dir_structure",
    "get_backups_dir",
    "get_data_dir",
    "get_database_path",
    "get_default_settings_paths",
    "get_logs_dir",
    "get_media_dir",
    "is_writable_dir",
    "resolve_app_paths",
    "resolve_working_dir",
]

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _expand_path(value: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(value))
    return Path(expanded).resolve()


def _ensure_writable_dir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    return is_writable_dir(path)


def is_writable_dir(path: Path) -> bool:
    """Probe *path* with a throwaway file; the directory is never created."""

    if not path.is_dir():
        return False
    test_file = path / f".write-test-{os.getpid()}-{int(time.time() * 1000)}"
    try:
        with open(test_file, "w", encoding="utf-8") as handle:
            handle.write("test")
        test_file.unlink(missing_ok=True)
        return True
    except OSError:
        try:
            if test_file.exists():
                test_file.unlink()
        except OSError:  # pragma: no cover - cleanup
            pass
        return False


def resolve_working_dir() -> Path:
    """Resolve the GrowthLog working directory, creating it if required."""

    env_home = os.environ.get("GROWTHLOG_HOME")
    if env_home:
        candidate = _expand_path(env_home)
        if _ensure_writable_dir(candidate):
            return candidate

    local_base = Path.home() / ".growthlog"
    if _ensure_writable_dir(local_base):
        return local_base

    fallback = _PROJECT_ROOT
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def get_data_dir(working_dir: Path) -> Path:
    return working_dir / "data"


def get_database_path(working_dir: Path) -> Path:
    return get_data_dir(working_dir) / "baby.db"


def get_media_dir(working_dir: Path) -> Path:
    return working_dir / "media"


def get_backups_dir(working_dir: Path) -> Path:
    return working_dir / "backups"


def get_logs_dir(working_dir: Path) -> Path:
    return working_dir / "logs"


def ensure_working_dir_structure(working_dir: Path) -> None:
    for directory in (
        working_dir,
        get_data_dir(working_dir),
        get_media_dir(working_dir),
        get_logs_dir(working_dir),
    ):
        directory.mkdir(parents=True, exist_ok=True)


def get_default_settings_paths(working_dir: Path) -> list[Path]:
    """Return the search order for settings.json files."""

    return [working_dir / "settings.json", _PROJECT_ROOT / "settings.json"]


@dataclass(slots=True)
class AppPaths:
    working_dir: Path
    database: Path
    media: Path
    backups: Path
    logs: Path


def _pick(env_key: str, configured: Optional[Any], default: Path, working_dir: Path) -> Path:
    value = os.environ.get(env_key) or configured
    if not value:
        return default
    path = Path(os.path.expandvars(os.path.expanduser(str(value))))
    if not path.is_absolute():
        path = working_dir / path
    return path


def resolve_app_paths(working_dir: Path, settings: Mapping[str, Any]) -> AppPaths:
    """Combine ``DB_PATH``/``MEDIA_PATH``/``BACKUP_PATH`` overrides with settings.json."""

    section = settings.get("paths") if isinstance(settings.get("paths"), Mapping) else {}
    return AppPaths(
        working_dir=working_dir,
        database=_pick("DB_PATH", section.get("database"), get_database_path(working_dir), working_dir),
        media=_pick("MEDIA_PATH", section.get("media"), get_media_dir(working_dir), working_dir),
        backups=_pick("BACKUP_PATH", section.get("backups"), get_backups_dir(working_dir), working_dir),
        logs=get_logs_dir(working_dir),
    )
