"""Minimal TAR stream encoder/decoder used for backup artifacts.

Only regular files are written. The header layout follows POSIX ustar so the
output stays readable by stock ``tar`` and :mod:`tarfile`, while decoding also
accepts the pre-ustar headers produced by older GrowthLog releases.
"""
from __future__ import annotations

import time
from typing import Iterable, List, Optional, Tuple

from .errors import CorruptArchive
from .types import ArchiveEntry

BLOCK_SIZE = 512
NAME_SIZE = 100
PREFIX_SIZE = 155
MAX_CONTENT_SIZE = 0o77777777777

_ZERO_BLOCK = bytes(BLOCK_SIZE)
_FILE_MODE = b"0000644 "
_OWNER_ID = b"0000000 "
_REGULAR_TYPES = (b"0", b"\0")
_USTAR_MAGIC = b"ustar\x00"
_USTAR_VERSION = b"00"

# (start, end) offsets inside a header block
_NAME = (0, 100)
_MODE = (100, 108)
_UID = (108, 116)
_GID = (116, 124)
_SIZE = (124, 136)
_MTIME = (136, 148)
_CHKSUM = (148, 156)
_TYPEFLAG = (156, 157)
_MAGIC = (257, 263)
_VERSION = (263, 265)
_PREFIX = (345, 500)


def _padding(size: int) -> int:
    remainder = size % BLOCK_SIZE
    return 0 if remainder == 0 else BLOCK_SIZE - remainder


def _octal_field(value: int, width: int) -> bytes:
    # width-1 digits followed by a space, matching GNU tar output
    return format(value, "o").zfill(width - 1).encode("ascii") + b" "


def _split_name(name: str) -> Tuple[bytes, bytes]:
    raw = name.encode("utf-8")
    if len(raw) <= NAME_SIZE:
        return b"", raw
    prefix = raw[: PREFIX_SIZE + 1]
    while prefix and not prefix.endswith(b"/"):
        prefix = prefix[:-1]
    tail = raw[len(prefix) :]
    prefix = prefix[:-1]
    if not prefix or not tail or len(tail) > NAME_SIZE:
        raise ValueError(f"archive entry name is too long: {name!r}")
    return prefix, tail


def _checksum(header: bytes | bytearray) -> int:
    start, end = _CHKSUM
    return sum(header[:start]) + 8 * ord(" ") + sum(header[end:])


def _put(header: bytearray, span: Tuple[int, int], value: bytes) -> None:
    start, end = span
    header[start : start + len(value)] = value[: end - start]


def _encode_header(entry: ArchiveEntry, mtime: int) -> bytes:
    size = len(entry.content)
    if size > MAX_CONTENT_SIZE:
        raise ValueError(f"archive entry {entry.name!r} exceeds the ustar size limit")
    prefix, name = _split_name(entry.name)
    header = bytearray(BLOCK_SIZE)
    _put(header, _NAME, name)
    _put(header, _MODE, _FILE_MODE)
    _put(header, _UID, _OWNER_ID)
    _put(header, _GID, _OWNER_ID)
    _put(header, _SIZE, _octal_field(size, 12))
    _put(header, _MTIME, _octal_field(mtime, 12))
    _put(header, _TYPEFLAG, b"0")
    _put(header, _MAGIC, _USTAR_MAGIC)
    _put(header, _VERSION, _USTAR_VERSION)
    _put(header, _PREFIX, prefix)
    checksum = _checksum(header)
    _put(header, _CHKSUM, format(checksum, "o").zfill(6).encode("ascii") + b"\0 ")
    return bytes(header)


def encode_archive(entries: Iterable[ArchiveEntry], *, mtime: Optional[int] = None) -> bytes:
    """Serialise *entries* into an uncompressed TAR stream.

    ``mtime`` defaults to the current time; pass a fixed value for
    reproducible output.
    """

    stamp = int(time.time()) if mtime is None else int(mtime)
    chunks: List[bytes] = []
    for entry in entries:
        chunks.append(_encode_header(entry, stamp))
        if entry.content:
            chunks.append(bytes(entry.content))
            pad = _padding(len(entry.content))
            if pad:
                chunks.append(bytes(pad))
    chunks.append(_ZERO_BLOCK * 2)
    return b"".join(chunks)


def _read_octal(header: bytes, span: Tuple[int, int], label: str) -> int:
    start, end = span
    text = header[start:end].split(b"\0", 1)[0].strip(b" ")
    if not text:
        return 0
    try:
        value = int(text, 8)
    except ValueError as exc:
        raise CorruptArchive(f"invalid {label} field in archive header") from exc
    if value < 0:
        raise CorruptArchive(f"negative {label} field in archive header")
    return value


def _read_text(header: bytes, span: Tuple[int, int]) -> str:
    start, end = span
    return header[start:end].split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _read_name(header: bytes) -> str:
    name = _read_text(header, _NAME)
    start = _MAGIC[0]
    if header[start : start + 5] == b"ustar":
        prefix = _read_text(header, _PREFIX)
        if prefix:
            return f"{prefix}/{name}"
    return name


def decode_archive(data: bytes) -> List[ArchiveEntry]:
    """Parse a TAR stream produced by :func:`encode_archive` (or ``tar``)."""

    view = memoryview(data)
    total = len(view)
    entries: List[ArchiveEntry] = []
    offset = 0
    while offset + BLOCK_SIZE <= total:
        header = bytes(view[offset : offset + BLOCK_SIZE])
        if header == _ZERO_BLOCK:
            break
        stored = _read_octal(header, _CHKSUM, "checksum")
        if stored != _checksum(header):
            raise CorruptArchive(f"header checksum mismatch at offset {offset}")
        size = _read_octal(header, _SIZE, "size")
        name = _read_name(header)
        typeflag = header[_TYPEFLAG[0] : _TYPEFLAG[1]]
        offset += BLOCK_SIZE
        end = offset + size
        if end > total:
            raise CorruptArchive(
                f"entry {name!r} declares {size} bytes but only {total - offset} remain"
            )
        if name and typeflag in _REGULAR_TYPES:
            entries.append(ArchiveEntry(name=name, content=bytes(view[offset:end])))
        offset = end + _padding(size)
    return entries


__all__ = ["BLOCK_SIZE", "decode_archive", "encode_archive"]
