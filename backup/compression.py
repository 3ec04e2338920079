"""gzip wrapper around backup archives."""
from __future__ import annotations

import gzip
import zlib

from .errors import InvalidArchiveFormat

COMPRESS_LEVEL = 6


def compress(data: bytes) -> bytes:
    return gzip.compress(data, compresslevel=COMPRESS_LEVEL)


def decompress(data: bytes) -> bytes:
    """Inflate *data*, raising :class:`InvalidArchiveFormat` for anything that is not gzip."""

    if not data:
        raise InvalidArchiveFormat("backup payload is empty")
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as exc:
        raise InvalidArchiveFormat(f"invalid backup file format: {exc}") from exc


__all__ = ["compress", "decompress"]
