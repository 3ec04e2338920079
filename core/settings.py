"""settings.json handling.

The file only carries deployment level choices (bind address, session token,
storage locations and the defaults for automatic backups). Runtime scheduler
settings edited from the UI live in the SQLite ``settings`` table instead.
"""
from __future__ import annotations

import copy
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Mapping

from .paths import get_default_settings_paths
from .settings_schema import SETTINGS_VALIDATOR

__all__ = [
    "DEFAULT_SETTINGS",
    "SETTINGS_VERSION",
    "load_settings",
    "merge_defaults",
    "settings_section",
]

LOGGER = logging.getLogger("growthlog.settings")

SETTINGS_VERSION = 1


DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": SETTINGS_VERSION,
    "server": {
        "host": "127.0.0.1",
        "port": 3000,
        "lan_refuse": True,
    },
    "api": {
        "session_token": None,
        "cors_origins": ["http://localhost", "http://127.0.0.1"],
        "max_upload_mb": 500,
    },
    "paths": {
        "database": None,
        "media": None,
        "backups": None,
    },
    "backup": {
        "defaults": {
            "enabled": True,
            "mode": "schedule",
            "interval_hours": 24,
            "schedule_time": "02:00",
            "schedule_day": "daily",
            "max_count": 10,
        },
        "log_limit": 50,
    },
}


def _overlay(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict):
            # a scalar where a section is expected keeps the default section
            if isinstance(value, Mapping):
                result[key] = _overlay(current, value)
        elif isinstance(current, list):
            result[key] = list(value) if isinstance(value, list) else current
        else:
            result[key] = copy.deepcopy(value)
    return result


def merge_defaults(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Return ``DEFAULT_SETTINGS`` overlaid with *data*; unknown keys are kept."""

    merged = _overlay(DEFAULT_SETTINGS, data or {})
    try:
        version = int(merged.get("version") or 0)
    except (TypeError, ValueError):
        version = 0
    merged["version"] = max(version, SETTINGS_VERSION)
    return merged


def settings_section(settings: Mapping[str, Any], name: str) -> Dict[str, Any]:
    section = settings.get(name)
    return dict(section) if isinstance(section, Mapping) else {}


def _report_unknown_keys(settings: Mapping[str, Any], working_dir: Path) -> None:
    unknown = list(SETTINGS_VALIDATOR.unknown_keys(settings))
    if not unknown:
        return
    LOGGER.warning("Ignoring unknown settings keys: %s", ", ".join(unknown))
    target = working_dir / "logs" / "settings_unknown.json"
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            json.dumps({"ts": time.time(), "unknown": unknown}, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
    except OSError as exc:
        LOGGER.debug("Could not write unknown settings report: %s", exc)


def _read_first(working_dir: Path) -> Dict[str, Any]:
    for candidate in get_default_settings_paths(working_dir):
        if not candidate.is_file():
            continue
        try:
            loaded = json.loads(candidate.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Skipping unreadable settings file %s: %s", candidate, exc)
            continue
        if isinstance(loaded, dict):
            return loaded
    return {}


def load_settings(working_dir: Path) -> Dict[str, Any]:
    merged = merge_defaults(_read_first(working_dir))
    merged.setdefault("working_dir", str(working_dir))
    _report_unknown_keys(merged, working_dir)
    return merged
