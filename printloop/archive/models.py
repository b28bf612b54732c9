"""Archive entry dataclasses, format constants and errors."""

from __future__ import annotations

import enum
from dataclasses import dataclass


# ── Record signatures ──────────────────────────────────────────────

LOCAL_HEADER_SIG = 0x04034B50
CENTRAL_DIR_SIG = 0x02014B50
END_OF_DIR_SIG = 0x06054B50

LOCAL_HEADER_SIZE = 30
CENTRAL_DIR_SIZE = 46
END_OF_DIR_SIZE = 22

VERSION_NEEDED = 20


class CompressionMethod(enum.IntEnum):
    """The only two methods the printer software writes."""

    STORE = 0
    DEFLATE = 8     # raw deflate, no zlib/gzip wrapper


# ── Errors ─────────────────────────────────────────────────────────


class ArchiveError(Exception):
    """Base class for container-level failures."""


class NotAnArchive(ArchiveError):
    """No end-of-central-directory record (or no ``PK`` prefix)."""


class InvalidArchive(ArchiveError):
    """The archive handed to the merge step has no central directory."""


class CorruptEntry(ArchiveError):
    """A local file header does not sit where the central directory says."""

    def __init__(self, name: str, offset: int, reason: str) -> None:
        self.name = name
        self.offset = offset
        self.reason = reason
        super().__init__(f"Corrupt entry '{name}' at offset {offset}: {reason}")


class MissingInstruction(ArchiveError):
    """The archive carries no ``.gcode`` entry at all."""


# ── Entries ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ArchiveEntry:
    """One central-directory record.

    ``crc`` and ``uncompressed_size`` describe the *uncompressed* data;
    ``compressed_size`` is the length of the stored payload.
    """

    name: str
    method: int
    crc: int
    compressed_size: int
    uncompressed_size: int
    header_offset: int
    name_length: int = 0
    extra_length: int = 0
    comment_length: int = 0

    @property
    def is_deflated(self) -> bool:
        return self.method == CompressionMethod.DEFLATE

    def matches(self, path: str) -> bool:
        """Case-insensitive name comparison."""
        return self.name.lower() == path.lower()


@dataclass
class ZipRecord:
    """Writer input.

    For ``STORE`` the CRC and sizes are derived from *payload* when left
    as ``None``.  For ``DEFLATE`` *payload* is already compressed and the
    caller must supply the uncompressed CRC and size.
    """

    name: str
    method: int
    payload: bytes
    crc: int | None = None
    compressed_size: int | None = None
    uncompressed_size: int | None = None


# ── Names ──────────────────────────────────────────────────────────


def encode_name(name: str) -> bytes:
    # surrogateescape keeps non-UTF-8 names byte-identical across a rewrite
    return name.encode("utf-8", errors="surrogateescape")


def decode_name(raw: bytes) -> str:
    return raw.decode("utf-8", errors="surrogateescape")


def plate_gcode_path(plate_index: int) -> str:
    """Archive path of plate *plate_index* (1-based, clamped to ≥ 1)."""
    return f"Metadata/plate_{max(1, int(plate_index))}.gcode"


def plate_md5_path(plate_index: int) -> str:
    return plate_gcode_path(plate_index) + ".md5"
