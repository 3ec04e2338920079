import sqlite3

import pytest

from core.db import DEFAULT_BUSY_TIMEOUT_MS, connect
from core.state import AppState, SettingsStore, SQLiteDatabase


@pytest.fixture()
def database(tmp_path):
    return SQLiteDatabase(tmp_path / "data" / "baby.db")


def test_schema_seeds_default_profile(database):
    profile = AppState(database).read_profile()

    assert profile["id"] == 1
    assert profile["name"] == "Baby"


def test_replace_snapshot_is_atomic(database):
    state = AppState(database)
    state.replace_profile({"name": "Mia", "birthDate": "2024-01-15", "gender": "female", "bloodType": "O+"})
    state.replace_all_records([{"date": "2024-02-01", "weight": 4.0}])

    with pytest.raises(sqlite3.IntegrityError):
        state.replace_snapshot(
            {"name": "Other", "birthDate": "2020-01-01", "gender": "male", "bloodType": "A"},
            [{"id": 3, "date": "2024-03-01"}, {"id": 3, "date": "2024-04-01"}],
        )

    assert state.read_profile()["name"] == "Mia"
    assert [record["date"] for record in state.read_all_records()] == ["2024-02-01"]


def test_replace_records_applies_defaults_and_keeps_ids(database):
    state = AppState(database)

    state.replace_all_records([{"id": 42, "date": "2024-02-01", "note": None}])

    record = state.read_all_records()[0]
    assert record["id"] == 42
    assert record["time"] == ""
    assert record["mediaIds"] == ""
    assert record["milk_amount"] == 0


def test_avatar_is_only_updated_when_present(database):
    state = AppState(database)
    state.replace_profile({"name": "Mia", "avatar": "/media/avatar.png"})

    state.replace_profile({"name": "Mia", "birthDate": "2024-01-15"})

    assert state.read_profile()["avatar"] == "/media/avatar.png"


def test_settings_store_upserts(database):
    store = SettingsStore(database)

    store.set("backup_mode", "interval")
    store.set_many({"backup_mode": "schedule", "backup_max_count": 5})

    assert store.get("backup_mode") == "schedule"
    assert store.get("backup_max_count") == "5"
    assert store.get("missing", "fallback") == "fallback"
    assert store.all() == {"backup_mode": "schedule", "backup_max_count": "5"}


def test_connect_creates_parent_and_enables_wal(tmp_path):
    conn = connect(tmp_path / "nested" / "baby.db")
    try:
        assert conn.row_factory is sqlite3.Row
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        assert conn.execute("PRAGMA busy_timeout").fetchone()[0] == DEFAULT_BUSY_TIMEOUT_MS
    finally:
        conn.close()
