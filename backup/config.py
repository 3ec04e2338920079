"""Scheduler configuration persisted in the key/value settings table."""
from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from core.paths import is_writable_dir
from core.state import SettingsStore

from .errors import InvalidSettings, StorageUnwritable
from .scheduler import parse_schedule_day, parse_schedule_time
from .types import DAILY, MODE_INTERVAL, MODE_SCHEDULE, SchedulerConfig

KEY_ENABLED = "backup_enabled"
KEY_MODE = "backup_mode"
KEY_INTERVAL = "backup_interval"
KEY_SCHEDULE_TIME = "backup_schedule_time"
KEY_SCHEDULE_DAY = "backup_schedule_day"
KEY_PATH = "backup_path"
KEY_MAX_COUNT = "backup_max_count"

_MODES = (MODE_INTERVAL, MODE_SCHEDULE)


def default_config(storage_path: Path, defaults: Optional[Mapping[str, Any]] = None) -> SchedulerConfig:
    base = SchedulerConfig(storage_path=str(storage_path))
    if not defaults:
        return base
    try:
        return validate_changes(base, defaults, check_storage=False)
    except InvalidSettings:
        return base


def _positive_int(raw: Optional[str], fallback: int) -> int:
    try:
        value = int(str(raw))
    except (TypeError, ValueError):
        return fallback
    return value if value >= 1 else fallback


def load_config(store: SettingsStore, fallback: SchedulerConfig) -> SchedulerConfig:
    """Read the scheduler configuration; missing or garbled keys fall back to *fallback*."""

    values = store.all()
    enabled_raw = values.get(KEY_ENABLED)
    mode = values.get(KEY_MODE, fallback.mode)
    schedule_time = values.get(KEY_SCHEDULE_TIME, fallback.schedule_time)
    try:
        parse_schedule_time(schedule_time)
    except ValueError:
        schedule_time = fallback.schedule_time
    try:
        schedule_day = parse_schedule_day(values.get(KEY_SCHEDULE_DAY, fallback.schedule_day))
    except ValueError:
        schedule_day = fallback.schedule_day
    return SchedulerConfig(
        enabled=fallback.enabled if enabled_raw is None else enabled_raw == "true",
        mode=mode if mode in _MODES else fallback.mode,
        interval_hours=_positive_int(values.get(KEY_INTERVAL), fallback.interval_hours),
        schedule_time=schedule_time,
        schedule_day=schedule_day,
        storage_path=values.get(KEY_PATH) or fallback.storage_path,
        max_count=_positive_int(values.get(KEY_MAX_COUNT), fallback.max_count),
    )


def check_storage_path(path: str) -> str:
    candidate = Path(str(path)).expanduser()
    if not candidate.exists():
        raise StorageUnwritable(f"backup path does not exist, create it first: {path}")
    if not candidate.is_dir():
        raise StorageUnwritable(f"backup path is not a directory: {path}")
    if not is_writable_dir(candidate):
        raise StorageUnwritable(f"backup path is not writable: {path}")
    return str(candidate)


def validate_changes(
    current: SchedulerConfig,
    changes: Mapping[str, Any],
    *,
    check_storage: bool = True,
) -> SchedulerConfig:
    """Return *current* with *changes* applied, rejecting any invalid value.

    ``None`` values mean "leave unchanged".
    """

    updates: Dict[str, Any] = {}
    unknown = sorted(set(changes) - set(SchedulerConfig.__dataclass_fields__))
    if unknown:
        raise InvalidSettings(f"unknown backup settings: {', '.join(unknown)}")

    enabled = changes.get("enabled")
    if enabled is not None:
        if not isinstance(enabled, bool):
            raise InvalidSettings("enabled must be a boolean")
        updates["enabled"] = enabled

    mode = changes.get("mode")
    if mode is not None:
        if mode not in _MODES:
            raise InvalidSettings(f"mode must be one of {', '.join(_MODES)}")
        updates["mode"] = mode

    for key in ("interval_hours", "max_count"):
        value = changes.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidSettings(f"{key} must be a positive integer")
        updates[key] = value

    schedule_time = changes.get("schedule_time")
    if schedule_time is not None:
        try:
            parse_schedule_time(schedule_time)
        except ValueError as exc:
            raise InvalidSettings(str(exc)) from exc
        updates["schedule_time"] = schedule_time

    schedule_day = changes.get("schedule_day")
    if schedule_day is not None:
        try:
            updates["schedule_day"] = parse_schedule_day(schedule_day)
        except ValueError as exc:
            raise InvalidSettings(str(exc)) from exc

    storage_path = changes.get("storage_path")
    if storage_path:
        updates["storage_path"] = check_storage_path(storage_path) if check_storage else str(storage_path)

    return replace(current, **updates)


def to_settings(config: SchedulerConfig) -> Dict[str, str]:
    day = config.schedule_day
    return {
        KEY_ENABLED: "true" if config.enabled else "false",
        KEY_MODE: config.mode,
        KEY_INTERVAL: str(config.interval_hours),
        KEY_SCHEDULE_TIME: config.schedule_time,
        KEY_SCHEDULE_DAY: DAILY if day == DAILY else str(day),
        KEY_PATH: config.storage_path,
        KEY_MAX_COUNT: str(config.max_count),
    }


def save_config(store: SettingsStore, config: SchedulerConfig) -> None:
    store.set_many(to_settings(config))


__all__ = [
    "check_storage_path",
    "default_config",
    "load_config",
    "save_config",
    "to_settings",
    "validate_changes",
]
