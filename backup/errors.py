"""Error hierarchy for backup operations."""
from __future__ import annotations


class BackupError(RuntimeError):
    """Base exception for backup related failures."""


class BackupInputError(BackupError):
    """Caller supplied input was rejected before any state was touched."""


class InvalidArchiveFormat(BackupInputError):
    """Raised when an artifact cannot be decompressed or decoded."""


class CorruptArchive(InvalidArchiveFormat):
    """Raised when a TAR stream is structurally inconsistent."""


class UnsafeArchiveEntry(InvalidArchiveFormat):
    """Raised when an archive entry would be written outside the media root."""


class MissingManifest(BackupInputError):
    """Raised when the snapshot document is absent from an archive."""


class MalformedManifest(BackupInputError):
    """Raised when the snapshot document lacks required fields."""


class InvalidIdentifier(BackupInputError):
    """Raised when an artifact filename does not match the backup pattern."""


class InvalidSettings(BackupInputError):
    """Raised when scheduler settings fail validation."""


class StorageUnwritable(BackupInputError):
    """Raised when the configured storage path cannot receive artifacts."""


class ArtifactExists(BackupInputError):
    """Raised when an artifact with the same name is already stored."""


class BackupFileNotFound(BackupError):
    """Raised when a requested artifact does not exist."""


class BackupRestoreError(BackupError):
    """Raised when restoring a snapshot fails after mutation started."""


__all__ = [
    "ArtifactExists",
    "BackupError",
    "BackupFileNotFound",
    "BackupInputError",
    "BackupRestoreError",
    "CorruptArchive",
    "InvalidArchiveFormat",
    "InvalidIdentifier",
    "InvalidSettings",
    "MalformedManifest",
    "MissingManifest",
    "StorageUnwritable",
    "UnsafeArchiveEntry",
]
