"""Tests for core.settings helpers."""

from __future__ import annotations

import json
from pathlib import Path

from core.settings import load_settings, merge_defaults


def test_merge_defaults_includes_backup_block() -> None:
    merged = merge_defaults({})

    assert merged["server"] == {"host": "127.0.0.1", "port": 3000, "lan_refuse": True}
    backup = merged["backup"]
    assert backup["log_limit"] == 50
    assert backup["defaults"] == {
        "enabled": True,
        "mode": "schedule",
        "interval_hours": 24,
        "schedule_time": "02:00",
        "schedule_day": "daily",
        "max_count": 10,
    }
    assert merged["paths"] == {"database": None, "media": None, "backups": None}


def test_load_settings_fills_missing_defaults(tmp_path: Path) -> None:
    working_dir = tmp_path
    path = working_dir / "settings.json"

    partial = {
        "api": {"session_token": "abc123"},
        "backup": {"defaults": {"max_count": 3}},
    }

    path.write_text(json.dumps(partial), encoding="utf-8")

    loaded = load_settings(working_dir)
    assert loaded["api"]["session_token"] == "abc123"
    assert loaded["api"]["max_upload_mb"] == 500
    assert loaded["backup"]["defaults"]["max_count"] == 3
    assert loaded["backup"]["defaults"]["schedule_time"] == "02:00"

    assert loaded["version"] == 1
    assert loaded["backup"]["defaults"]["mode"] == "schedule"
    assert loaded["server"]["port"] == 3000
    assert loaded["working_dir"] == str(working_dir)
    assert json.loads(path.read_text(encoding="utf-8")) == partial


def test_unknown_keys_are_reported(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text(
        json.dumps({"backup": {"defaults": {"compression": "zstd"}}, "legacy": True}),
        encoding="utf-8",
    )

    load_settings(tmp_path)

    report = json.loads((tmp_path / "logs" / "settings_unknown.json").read_text(encoding="utf-8"))
    assert report["unknown"] == ["backup.defaults.compression", "legacy"]
