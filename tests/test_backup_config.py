import pytest

from backup.config import (
    KEY_ENABLED,
    KEY_MODE,
    KEY_SCHEDULE_DAY,
    default_config,
    load_config,
    save_config,
    validate_changes,
)
from backup.errors import InvalidSettings, StorageUnwritable
from backup.types import SchedulerConfig
from core.state import SettingsStore, SQLiteDatabase


@pytest.fixture()
def store(tmp_path):
    return SettingsStore(SQLiteDatabase(tmp_path / "baby.db"))


def test_missing_keys_fall_back_to_defaults(store, tmp_path):
    fallback = default_config(tmp_path / "backups")

    config = load_config(store, fallback)

    assert config == SchedulerConfig(storage_path=str(tmp_path / "backups"))
    assert config.enabled is True
    assert config.mode == "schedule"
    assert config.max_count == 10


def test_settings_defaults_override_builtin_values(tmp_path):
    config = default_config(tmp_path, {"mode": "interval", "interval_hours": 6, "max_count": 3})

    assert (config.mode, config.interval_hours, config.max_count) == ("interval", 6, 3)


def test_save_and_load_round_trip(store, tmp_path):
    fallback = default_config(tmp_path)
    config = SchedulerConfig(
        enabled=False,
        mode="interval",
        interval_hours=12,
        schedule_time="04:45",
        schedule_day=3,
        storage_path=str(tmp_path),
        max_count=4,
    )

    save_config(store, config)

    assert store.get(KEY_ENABLED) == "false"
    assert store.get(KEY_SCHEDULE_DAY) == "3"
    assert load_config(store, fallback) == config


def test_garbled_values_fall_back(store, tmp_path):
    fallback = default_config(tmp_path)
    store.set_many({KEY_MODE: "hourly", KEY_SCHEDULE_DAY: "someday", "backup_interval": "zero"})

    config = load_config(store, fallback)

    assert config.mode == fallback.mode
    assert config.schedule_day == "daily"
    assert config.interval_hours == 24


@pytest.mark.parametrize(
    "changes",
    [
        {"mode": "hourly"},
        {"interval_hours": 0},
        {"max_count": True},
        {"enabled": "yes"},
        {"schedule_time": "7:00"},
        {"schedule_day": 9},
        {"retention": 5},
    ],
)
def test_invalid_changes_are_rejected(tmp_path, changes):
    with pytest.raises(InvalidSettings):
        validate_changes(default_config(tmp_path), changes)


def test_none_values_leave_fields_unchanged(tmp_path):
    current = default_config(tmp_path)

    updated = validate_changes(current, {"mode": None, "max_count": 5, "schedule_day": "0"})

    assert updated.mode == current.mode
    assert updated.max_count == 5
    assert updated.schedule_day == 0


def test_storage_path_must_exist(tmp_path):
    current = default_config(tmp_path)

    with pytest.raises(StorageUnwritable):
        validate_changes(current, {"storage_path": str(tmp_path / "missing")})

    file_path = tmp_path / "file.txt"
    file_path.write_text("x", encoding="utf-8")
    with pytest.raises(StorageUnwritable):
        validate_changes(current, {"storage_path": str(file_path)})

    target = tmp_path / "elsewhere"
    target.mkdir()
    assert validate_changes(current, {"storage_path": str(target)}).storage_path == str(target)
    assert list(target.iterdir()) == []
