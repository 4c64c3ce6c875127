"""
In-memory ZIP writer for the download command.

Produces the minimal subset of the ZIP format that standard unarchivers
need to extract stored (uncompressed) files:

    [local header + name + data] * N
    [central directory record + name] * N
    [end of central directory record]

There is no compression, no archive comment, no disk spanning and no ZIP64
extension.  Any field that would overflow its 16- or 32-bit slot raises
EncodeError instead of wrapping.
"""

import logging
import os
import struct
import time
import zlib
from dataclasses import dataclass
from typing import Iterable

from .errors import EncodeError

logger = logging.getLogger(__name__)

LOCAL_HEADER_SIGNATURE = b"PK\x03\x04"
CENTRAL_DIR_SIGNATURE = b"PK\x01\x02"
END_OF_CENTRAL_DIR_SIGNATURE = b"PK\x05\x06"

# sig, version needed, flags, method, mtime, mdate, crc, csize, usize,
# name length, extra length
LOCAL_HEADER = struct.Struct("<4sHHHHHIIIHH")
# sig, version made by, version needed, flags, method, mtime, mdate, crc,
# csize, usize, name length, extra length, comment length, disk start,
# internal attrs, external attrs, local header offset
CENTRAL_DIR_RECORD = struct.Struct("<4sHHHHHHIIIHHHHHII")
# sig, this disk, directory disk, entries on disk, total entries,
# directory size, directory offset, comment length
END_OF_CENTRAL_DIR = struct.Struct("<4sHHHHIIH")

VERSION = 20          # 2.0: stored files in plain directories
STORED = 0
UTF8_FLAG = 0x0800    # Bit 11: name is UTF-8

MAX_UINT16 = 0xFFFF
MAX_UINT32 = 0xFFFFFFFF


def crc32(data: bytes) -> int:
    """CRC-32 (reflected polynomial 0xEDB88320, init/final 0xFFFFFFFF)."""
    return zlib.crc32(data) & MAX_UINT32


def dos_datetime(timestamp: float | None) -> int:
    """Pack a Unix timestamp as ``(dos_date << 16) | dos_time`` in local time.

    DOS dates cover 1980-2107; anything outside is clamped to the nearest
    end of that range.  Seconds are stored with 2-second resolution.
    """
    if timestamp is None:
        timestamp = time.time()
    try:
        tm = time.localtime(timestamp)
    except (OverflowError, OSError, ValueError):
        tm = time.localtime(0)

    year, month, day = tm.tm_year, tm.tm_mon, tm.tm_mday
    hour, minute, second = tm.tm_hour, tm.tm_min, tm.tm_sec
    if year < 1980:
        year, month, day, hour, minute, second = 1980, 1, 1, 0, 0, 0
    elif year > 2107:
        year, month, day, hour, minute, second = 2107, 12, 31, 23, 59, 58

    dos_date = ((year - 1980) << 9) | (month << 5) | day
    dos_time = (hour << 11) | (minute << 5) | (min(second, 59) // 2)
    return (dos_date << 16) | dos_time


@dataclass(frozen=True)
class ArchiveEntry:
    """One stored file, fixed once its local header has been placed."""

    name: str
    data: bytes
    crc: int
    dos_datetime: int
    offset: int

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def encoded_name(self) -> bytes:
        return self.name.encode("utf-8")

    @property
    def flags(self) -> int:
        return 0 if self.name.isascii() else UTF8_FLAG


class ArchiveEncoder:
    """Collects files and assembles them into one ZIP blob.

    >>> encoder = ArchiveEncoder()
    >>> encoder.add("notes.txt", b"hello", mtime=0)
    >>> blob = encoder.build()
    """

    def __init__(self):
        self._records: list[tuple[str, bytes, float | None]] = []
        self.entries: list[ArchiveEntry] = []

    def __len__(self) -> int:
        return len(self._records)

    def add(self, name: str, data: bytes, mtime: float | None = None) -> None:
        """Queue a file.  *name* must be a bare filename."""
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise EncodeError(f"Archive member name must be a bare filename: {name!r}")
        if len(name.encode("utf-8")) > MAX_UINT16:
            raise EncodeError(f"Archive member name too long: {name[:40]!r}...")
        if len(data) > MAX_UINT32:
            raise EncodeError(f"{name}: {len(data)} bytes exceeds the 4 GiB entry limit")
        self._records.append((name, bytes(data), mtime))

    def add_file(self, path: str) -> None:
        """Read a regular file from disk and queue it under its basename."""
        with open(path, "rb") as f:
            data = f.read()
        self.add(os.path.basename(path), data, os.path.getmtime(path))

    def build(self) -> bytes:
        """Assemble every queued file into a single archive."""
        if not self._records:
            raise EncodeError("No files to archive")
        if len(self._records) > MAX_UINT16:
            raise EncodeError(
                f"Too many files for one archive: {len(self._records)} (max {MAX_UINT16})"
            )

        out = bytearray()
        entries = []
        for name, data, mtime in self._records:
            entry = ArchiveEntry(
                name=name,
                data=data,
                crc=crc32(data),
                dos_datetime=dos_datetime(mtime),
                offset=len(out),
            )
            _check_uint32(entry.offset, "local header offset")
            out += _local_header(entry)
            out += entry.encoded_name
            out += entry.data
            entries.append(entry)

        directory_offset = len(out)
        for entry in entries:
            out += _central_record(entry)
            out += entry.encoded_name
        directory_size = len(out) - directory_offset

        _check_uint32(directory_offset, "central directory offset")
        _check_uint32(directory_size, "central directory size")
        out += END_OF_CENTRAL_DIR.pack(
            END_OF_CENTRAL_DIR_SIGNATURE,
            0,
            0,
            len(entries),
            len(entries),
            directory_size,
            directory_offset,
            0,
        )

        self.entries = entries
        return bytes(out)


def build_archive(records: Iterable[tuple[str, bytes, float | None]]) -> bytes:
    """Build an archive from ``(name, data, mtime)`` records."""
    encoder = ArchiveEncoder()
    for name, data, mtime in records:
        encoder.add(name, data, mtime)
    return encoder.build()


def archive_path(path: str) -> bytes:
    """Package a file, or the regular files directly inside a directory.

    Files in a directory that cannot be read are skipped.  Raises EncodeError
    if the path is missing, is neither file nor directory, or yields no
    readable files.
    """
    if not os.path.exists(path):
        raise EncodeError(f"Path does not exist: {path}")

    encoder = ArchiveEncoder()
    if os.path.isfile(path):
        try:
            encoder.add_file(path)
        except OSError as e:
            raise EncodeError(f"Could not read file {path}: {e}") from e
    elif os.path.isdir(path):
        for name in sorted(os.listdir(path)):
            filepath = os.path.join(path, name)
            if not os.path.isfile(filepath):
                continue
            try:
                encoder.add_file(filepath)
            except (OSError, EncodeError) as e:
                logger.warning("Skipping %s: %s", filepath, e)
    else:
        raise EncodeError(f"Not a regular file or directory: {path}")

    if not len(encoder):
        raise EncodeError(f"No files to archive at: {path}")
    return encoder.build()


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _local_header(entry: ArchiveEntry) -> bytes:
    return LOCAL_HEADER.pack(
        LOCAL_HEADER_SIGNATURE,
        VERSION,
        entry.flags,
        STORED,
        entry.dos_datetime & MAX_UINT16,
        entry.dos_datetime >> 16,
        entry.crc,
        entry.size,
        entry.size,
        len(entry.encoded_name),
        0,
    )


def _central_record(entry: ArchiveEntry) -> bytes:
    return CENTRAL_DIR_RECORD.pack(
        CENTRAL_DIR_SIGNATURE,
        VERSION,
        VERSION,
        entry.flags,
        STORED,
        entry.dos_datetime & MAX_UINT16,
        entry.dos_datetime >> 16,
        entry.crc,
        entry.size,
        entry.size,
        len(entry.encoded_name),
        0,
        0,
        0,
        0,
        0,
        entry.offset,
    )


def _check_uint32(value: int, what: str) -> None:
    if value > MAX_UINT32:
        raise EncodeError(f"Archive exceeds the 4 GiB limit ({what} = {value})")
