import json

import pytest

from backup.archive import encode_archive
from backup.compression import compress
from backup.create import build_snapshot
from backup.errors import (
    BackupRestoreError,
    InvalidArchiveFormat,
    MalformedManifest,
    MissingManifest,
    UnsafeArchiveEntry,
)
from backup.restore import apply_snapshot, load_snapshot
from backup.types import ArchiveEntry
from core.state import AppState, SQLiteDatabase


class StubLogger:
    def __init__(self) -> None:
        self.events = []

    def info(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("info", event, extra))

    def warning(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("warning", event, extra))

    def error(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("error", event, extra))

    def event(self, *, event: str, phase: str, ok: bool, **extra):  # pragma: no cover - recorder
        self.events.append(("event", event, phase, ok, extra))


def _state(path):
    return AppState(SQLiteDatabase(path))


def _document(**overrides):
    document = {
        "exportTime": "2024-05-10T10:00:00.000Z",
        "version": "1.0",
        "baby": {"name": "Leo", "birthDate": "2023-11-02", "gender": "male", "bloodType": "A+"},
        "records": [{"id": 7, "date": "2024-05-01", "weight": 7.2, "mediaIds": "/media/p.jpg"}],
        "mediaMeta": [],
        "linkedMediaCount": 1,
    }
    document.update(overrides)
    return document


def _artifact(document=None, extra_entries=()):
    entries = []
    if document is not None:
        entries.append(ArchiveEntry(name="data.json", content=json.dumps(document).encode("utf-8")))
    entries.extend(extra_entries)
    return compress(encode_archive(entries))


@pytest.fixture()
def target(tmp_path):
    state = _state(tmp_path / "target" / "baby.db")
    state.replace_profile({"name": "Existing", "birthDate": "2022-01-01", "gender": "female", "bloodType": "B"})
    state.replace_all_records([{"date": "2022-06-01", "weight": 9.9, "note": "keep me"}])
    state.replace_all_media_metadata([{"filename": "old.jpg", "title": "Old"}])
    media_root = tmp_path / "target" / "media"
    media_root.mkdir(parents=True)
    (media_root / "old.jpg").write_bytes(b"old")
    return state, media_root


def test_restore_reproduces_source_state(tmp_path, target):
    source = _state(tmp_path / "source" / "baby.db")
    source.replace_profile(
        {"name": "Mia", "birthDate": "2024-01-15", "gender": "female", "bloodType": "O+", "avatar": "/media/avatar.png"}
    )
    source.replace_all_records(
        [
            {"date": "2024-02-01", "time": "08:30", "height": 52.5, "weight": 4.1, "mediaIds": "/media/photos/a.jpg"},
            {"date": "2024-03-01", "milk_amount": 120, "poop": "yes", "note": "first bath"},
        ]
    )
    source.replace_all_media_metadata([{"filename": "photos/a.jpg", "title": "Smile", "customDate": "2024-02-01"}])
    source_media = tmp_path / "source" / "media"
    (source_media / "photos").mkdir(parents=True)
    (source_media / "photos" / "a.jpg").write_bytes(b"jpeg")

    bundle = build_snapshot(source, source_media, logger=StubLogger())
    state, media_root = target
    outcome = apply_snapshot(bundle.payload, state, media_root, logger=StubLogger(), source="test")

    assert state.read_profile() == source.read_profile()
    assert state.read_all_records() == source.read_all_records()
    assert state.read_all_media_metadata() == source.read_all_media_metadata()
    assert (media_root / "photos" / "a.jpg").read_bytes() == b"jpeg"
    assert outcome.record_count == 2
    assert outcome.linked_media_count == 1
    assert outcome.media_restored == 1


def test_record_ids_are_preserved(target):
    state, media_root = target

    apply_snapshot(_artifact(_document()), state, media_root, logger=StubLogger())

    assert [record["id"] for record in state.read_all_records()] == [7]


def test_empty_media_meta_keeps_existing_rows(target):
    state, media_root = target

    apply_snapshot(_artifact(_document(mediaMeta=[])), state, media_root, logger=StubLogger())

    assert [row["filename"] for row in state.read_all_media_metadata()] == ["old.jpg"]


def test_missing_document_is_rejected(target):
    state, media_root = target

    with pytest.raises(MissingManifest):
        apply_snapshot(
            _artifact(None, [ArchiveEntry(name="media/x.jpg", content=b"x")]),
            state,
            media_root,
            logger=StubLogger(),
        )

    assert not (media_root / "x.jpg").exists()


@pytest.mark.parametrize(
    "document",
    [
        {"version": "1.0", "records": []},
        _document(records={"not": "a list"}),
        _document(version=None),
        _document(mediaMeta="nope"),
        ["not", "an", "object"],
    ],
)
def test_malformed_document_is_rejected(target, document):
    state, media_root = target

    with pytest.raises(MalformedManifest):
        apply_snapshot(_artifact(document), state, media_root, logger=StubLogger())

    assert state.read_profile()["name"] == "Existing"


def test_invalid_json_is_rejected(target):
    state, media_root = target
    payload = compress(encode_archive([ArchiveEntry(name="data.json", content=b"{not json")]))

    with pytest.raises(MalformedManifest):
        apply_snapshot(payload, state, media_root, logger=StubLogger())


@pytest.mark.parametrize("name", ["media/../../escape.txt", "media//etc/passwd", "media/../target.txt"])
def test_traversal_entries_are_rejected_before_any_write(tmp_path, target, name):
    state, media_root = target
    payload = _artifact(
        _document(),
        [
            ArchiveEntry(name="media/p.jpg", content=b"fine"),
            ArchiveEntry(name=name, content=b"evil"),
        ],
    )

    with pytest.raises(UnsafeArchiveEntry):
        apply_snapshot(payload, state, media_root, logger=StubLogger())

    assert state.read_profile()["name"] == "Existing"
    assert [record["note"] for record in state.read_all_records()] == ["keep me"]
    assert not (media_root / "p.jpg").exists()
    assert not (tmp_path / "escape.txt").exists()
    assert not (tmp_path / "target.txt").exists()


def test_non_gzip_payload_causes_no_mutation(target):
    state, media_root = target
    before = state.read_all_records()

    with pytest.raises(InvalidArchiveFormat):
        apply_snapshot(b"this is not an archive", state, media_root, logger=StubLogger())

    assert state.read_all_records() == before
    assert sorted(path.name for path in media_root.iterdir()) == ["old.jpg"]


def test_load_snapshot_has_no_side_effects(tmp_path):
    media_root = tmp_path / "media-not-created"

    snapshot = load_snapshot(_artifact(_document(), [ArchiveEntry(name="media/p.jpg", content=b"p")]), media_root)

    assert [item.relative for item in snapshot.media] == ["p.jpg"]
    assert not media_root.exists()


def test_failure_during_mutation_raises_restore_error(target, monkeypatch):
    state, media_root = target
    logger = StubLogger()

    def boom(*_args, **_kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(state, "replace_snapshot", boom)

    with pytest.raises(BackupRestoreError):
        apply_snapshot(_artifact(_document()), state, media_root, logger=logger, source="upload")

    assert ("error", "restore_failed", {"source": "upload", "error": "disk full"}) in logger.events
