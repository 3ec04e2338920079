"""Retention policy enforcement for backup artifacts."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List

from .logs import BackupLogger
from .naming import is_backup_filename
from .types import ArtifactInfo, RetentionSummary


def list_artifacts(storage_dir: Path) -> List[ArtifactInfo]:
    """Artifacts in *storage_dir*, newest modification first."""

    items: List[ArtifactInfo] = []
    base = Path(storage_dir)
    if not base.is_dir():
        return items
    for child in base.iterdir():
        if not is_backup_filename(child.name) or not child.is_file():
            continue
        stat = child.stat()
        created = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        items.append(
            ArtifactInfo(
                filename=child.name,
                size_bytes=int(stat.st_size),
                created=created.isoformat(),
                path=child,
            )
        )
    items.sort(key=lambda item: (item.created, item.filename), reverse=True)
    return items


def prune_artifacts(storage_dir: Path, max_count: int, *, logger: BackupLogger) -> RetentionSummary:
    """Keep the ``max_count`` lexically newest artifacts and delete the rest.

    Only names matching the artifact pattern are considered, so unrelated files
    sharing the directory are never removed.
    """

    base = Path(storage_dir)
    if not base.is_dir():
        return RetentionSummary(removed=[], kept=[], freed_bytes=0)
    names = sorted(
        (child.name for child in base.iterdir() if is_backup_filename(child.name) and child.is_file()),
        reverse=True,
    )
    keep = max(int(max_count), 1)
    kept = names[:keep]
    removed: List[str] = []
    freed = 0
    for name in names[keep:]:
        path = base / name
        try:
            size = path.stat().st_size
            path.unlink()
        except FileNotFoundError:
            continue
        removed.append(name)
        freed += size
        logger.warning("backup_removed", filename=name, reason="retention")
    if removed:
        logger.event(event="retention_applied", phase="retention", ok=True, removed=len(removed), kept=len(kept))
    return RetentionSummary(removed=removed, kept=kept, freed_bytes=freed)


__all__ = ["list_artifacts", "prune_artifacts"]
