"""Artifact naming rules and relative path sanitising."""
from __future__ import annotations

import re
from datetime import datetime
from pathlib import PurePosixPath
from typing import Optional

from .errors import InvalidIdentifier

ARTIFACT_PREFIX = "baby-backup-"
ARTIFACT_SUFFIX = ".tar.gz"
IMPORTED_MARKER = "-imported"

_ARTIFACT_PATTERN = re.compile(
    r"baby-backup-\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}(?:-imported)?\.tar\.gz"
)
_DRIVE_PATTERN = re.compile(r"^[A-Za-z]:")


def backup_filename(now: datetime, *, imported: bool = False) -> str:
    stamp = now.strftime("%Y-%m-%d_%H-%M-%S")
    marker = IMPORTED_MARKER if imported else ""
    return f"{ARTIFACT_PREFIX}{stamp}{marker}{ARTIFACT_SUFFIX}"


def export_filename(now: datetime) -> str:
    return f"{ARTIFACT_PREFIX}{now.strftime('%Y-%m-%d')}{ARTIFACT_SUFFIX}"


def is_backup_filename(name: str) -> bool:
    return bool(_ARTIFACT_PATTERN.fullmatch(name or ""))


def require_backup_filename(name: str) -> str:
    if not is_backup_filename(name):
        raise InvalidIdentifier(f"invalid backup filename: {name!r}")
    return name


def safe_relative_path(value: str) -> Optional[str]:
    """Return *value* as a normalised relative POSIX path, or ``None`` if it escapes its root."""

    text = (value or "").replace("\\", "/")
    if not text or "\0" in text or text.startswith("/") or _DRIVE_PATTERN.match(text):
        return None
    parts = []
    for part in PurePosixPath(text).parts:
        if part in ("", "."):
            continue
        if part == "..":
            return None
        parts.append(part)
    if not parts:
        return None
    return "/".join(parts)


__all__ = [
    "ARTIFACT_PREFIX",
    "ARTIFACT_SUFFIX",
    "backup_filename",
    "export_filename",
    "is_backup_filename",
    "require_backup_filename",
    "safe_relative_path",
]
