"""Apply snapshot artifacts onto live application state.

Everything that can be checked up front (compression, TAR structure, the
snapshot document and media entry names) is validated before the first
write. Database replacement then happens in a single transaction; media files
are written afterwards and are not rolled back if a later write fails.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.state import AppState

from .archive import decode_archive
from .compression import decompress
from .create import MEDIA_PREFIX, SNAPSHOT_NAME
from .errors import BackupRestoreError, MalformedManifest, MissingManifest, UnsafeArchiveEntry
from .logs import BackupLogger
from .naming import safe_relative_path
from .types import ArchiveEntry, RestoreOutcome


@dataclass(slots=True)
class _MediaWrite:
    relative: str
    target: Path
    content: bytes


@dataclass(slots=True)
class LoadedSnapshot:
    document: Dict[str, Any]
    media: List[_MediaWrite]

    @property
    def records(self) -> List[Dict[str, Any]]:
        return self.document["records"]


def _parse_document(entry: ArchiveEntry) -> Dict[str, Any]:
    try:
        document = json.loads(entry.content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedManifest(f"snapshot document is not valid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise MalformedManifest("snapshot document must be a JSON object")
    if not document.get("version"):
        raise MalformedManifest("snapshot document is missing 'version'")
    if not isinstance(document.get("baby"), dict):
        raise MalformedManifest("snapshot document is missing 'baby'")
    records = document.get("records")
    if not isinstance(records, list) or not all(isinstance(item, dict) for item in records):
        raise MalformedManifest("snapshot document is missing 'records'")
    media_meta = document.get("mediaMeta")
    if media_meta is not None and (
        not isinstance(media_meta, list) or not all(isinstance(item, dict) for item in media_meta)
    ):
        raise MalformedManifest("snapshot document has an invalid 'mediaMeta' list")
    return document


def _plan_media(entries: List[ArchiveEntry], media_root: Path) -> List[_MediaWrite]:
    root = media_root.resolve()
    plan: List[_MediaWrite] = []
    for entry in entries:
        if not entry.name.startswith(MEDIA_PREFIX):
            continue
        relative = safe_relative_path(entry.name[len(MEDIA_PREFIX) :])
        if relative is None:
            raise UnsafeArchiveEntry(f"archive entry escapes the media directory: {entry.name!r}")
        target = root / relative
        if not target.resolve().is_relative_to(root):
            raise UnsafeArchiveEntry(f"archive entry resolves outside the media directory: {entry.name!r}")
        plan.append(_MediaWrite(relative=relative, target=target, content=entry.content))
    return plan


def load_snapshot(payload: bytes, media_root: Path) -> LoadedSnapshot:
    """Validate *payload* fully without touching state or the filesystem."""

    entries = decode_archive(decompress(payload))
    manifest = next((entry for entry in entries if entry.name == SNAPSHOT_NAME), None)
    if manifest is None:
        raise MissingManifest(f"invalid backup file: {SNAPSHOT_NAME} is missing")
    document = _parse_document(manifest)
    return LoadedSnapshot(document=document, media=_plan_media(entries, Path(media_root)))


def _write_media(plan: List[_MediaWrite], media_root: Path, *, logger: BackupLogger) -> int:
    media_root.mkdir(parents=True, exist_ok=True)
    written = 0
    for item in plan:
        item.target.parent.mkdir(parents=True, exist_ok=True)
        item.target.write_bytes(item.content)
        written += 1
    logger.info("media_restored", count=written)
    return written


def apply_snapshot(
    payload: bytes,
    state: AppState,
    media_root: Path,
    *,
    logger: BackupLogger,
    source: Optional[str] = None,
) -> RestoreOutcome:
    snapshot = load_snapshot(payload, media_root)
    document = snapshot.document
    media_meta = document.get("mediaMeta") or None

    logger.event(event="restore_start", phase="restore", ok=True, source=source, records=len(snapshot.records))
    try:
        state.replace_snapshot(document["baby"], snapshot.records, media_meta)
        restored = _write_media(snapshot.media, Path(media_root), logger=logger)
    except Exception as exc:
        logger.error("restore_failed", source=source, error=str(exc))
        raise BackupRestoreError(f"restore failed: {exc}") from exc

    try:
        linked = int(document.get("linkedMediaCount") or 0)
    except (TypeError, ValueError):
        linked = 0
    logger.event(event="snapshot_restored", phase="restore", ok=True, source=source, media=restored)
    return RestoreOutcome(
        record_count=len(snapshot.records),
        linked_media_count=linked,
        media_restored=restored,
        source=source,
    )


__all__ = ["LoadedSnapshot", "apply_snapshot", "load_snapshot"]
