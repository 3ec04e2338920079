"""Build snapshot artifacts from live application state."""
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from core.state import AppState

from .archive import encode_archive
from .compression import compress
from .errors import ArtifactExists
from .logs import BackupLogger
from .naming import backup_filename, safe_relative_path
from .types import ArchiveEntry, SnapshotBundle, SnapshotDocument

SNAPSHOT_NAME = "data.json"
SNAPSHOT_VERSION = "1.0"
MEDIA_PREFIX = "media/"
MEDIA_URL_PREFIX = "/media/"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def collect_media_references(records: Iterable[Mapping[str, Any]]) -> List[str]:
    """Unique media URLs referenced by ``mediaIds``, in order of first appearance."""

    seen: Dict[str, None] = {}
    for record in records:
        raw = record.get("mediaIds") or ""
        for token in str(raw).split(","):
            token = token.strip()
            if token:
                seen.setdefault(token, None)
    return list(seen)


def media_relative_path(reference: str) -> Optional[str]:
    text = reference.strip()
    if text.startswith(MEDIA_URL_PREFIX):
        text = text[len(MEDIA_URL_PREFIX) :]
    return safe_relative_path(text)


def build_document(state: AppState) -> SnapshotDocument:
    records = state.read_all_records()
    return SnapshotDocument(
        export_time=_utcnow(),
        version=SNAPSHOT_VERSION,
        baby_profile=state.read_profile(),
        growth_records=records,
        media_metadata=state.read_all_media_metadata(),
        linked_media_count=len(collect_media_references(records)),
    )


def _media_entries(
    references: Iterable[str], media_root: Path, *, logger: BackupLogger
) -> List[ArchiveEntry]:
    entries: List[ArchiveEntry] = []
    packed = set()
    for reference in references:
        relative = media_relative_path(reference)
        if relative is None:
            logger.warning("media_reference_skipped", reference=reference, reason="unsafe_path")
            continue
        if relative in packed:
            continue
        source = media_root / relative
        if not source.is_file():
            # media removed outside the app; the record still restores without it
            continue
        entries.append(ArchiveEntry(name=f"{MEDIA_PREFIX}{relative}", content=source.read_bytes()))
        packed.add(relative)
    return entries


def build_snapshot(state: AppState, media_root: Path, *, logger: BackupLogger) -> SnapshotBundle:
    """Serialise state plus every linked media file still on disk into gzip'd TAR bytes."""

    document = build_document(state)
    body = json.dumps(document.to_json_dict(), indent=2, ensure_ascii=False, default=str)
    entries = [ArchiveEntry(name=SNAPSHOT_NAME, content=body.encode("utf-8"))]
    references = collect_media_references(document.growth_records)
    entries.extend(_media_entries(references, Path(media_root), logger=logger))
    payload = compress(encode_archive(entries))
    bundle = SnapshotBundle(
        payload=payload,
        record_count=len(document.growth_records),
        linked_media_count=document.linked_media_count,
        packed_media_count=len(entries) - 1,
    )
    logger.info(
        "snapshot_built",
        records=bundle.record_count,
        linked_media=bundle.linked_media_count,
        packed_media=bundle.packed_media_count,
        size=len(payload),
    )
    return bundle


def write_artifact(payload: bytes, storage_dir: Path, filename: str) -> Path:
    storage_dir.mkdir(parents=True, exist_ok=True)
    target = storage_dir / filename
    if target.exists():
        raise ArtifactExists(f"backup file already exists: {filename}")
    partial = storage_dir / f".{filename}.partial"
    with partial.open("wb") as handle:
        handle.write(payload)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(partial, target)
    return target


def create_backup(
    state: AppState,
    media_root: Path,
    storage_dir: Path,
    *,
    logger: BackupLogger,
    now: Optional[datetime] = None,
) -> Tuple[Path, SnapshotBundle]:
    moment = now or datetime.now()
    filename = backup_filename(moment)
    logger.event(event="backup_start", phase="create", ok=True, filename=filename)
    bundle = build_snapshot(state, media_root, logger=logger)
    path = write_artifact(bundle.payload, Path(storage_dir), filename)
    logger.event(event="backup_complete", phase="create", ok=True, filename=filename, size=len(bundle.payload))
    return path, bundle


__all__ = [
    "MEDIA_PREFIX",
    "SNAPSHOT_NAME",
    "SNAPSHOT_VERSION",
    "build_document",
    "build_snapshot",
    "collect_media_references",
    "create_backup",
    "media_relative_path",
    "write_artifact",
]
