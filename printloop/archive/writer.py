"""
ZIP writer — local headers + payloads, central directory, EOCD.

Entries are written in input order with zeroed timestamps and no
general-purpose flags.  No Zip64, data descriptors or encryption: every
size and offset must fit in 32 bits, which holds for any plate G-code a
printer can load.  Values that do not fit are not checked.
"""

from __future__ import annotations

import logging
import struct
from typing import Iterable

from printloop.archive.checksum import crc32
from printloop.archive.models import (
    CENTRAL_DIR_SIG,
    END_OF_DIR_SIG,
    LOCAL_HEADER_SIG,
    VERSION_NEEDED,
    CompressionMethod,
    ZipRecord,
    encode_name,
)

log = logging.getLogger("printloop.archive.writer")

_LOCAL_STRUCT = struct.Struct("<IHHHHHIIIHH")
_CD_STRUCT = struct.Struct("<IHHHHHHIIIHHHHHII")
_EOCD_STRUCT = struct.Struct("<IHHHHIIH")


def _resolve(rec: ZipRecord) -> tuple[int, int, int]:
    """``(crc, compressed_size, uncompressed_size)`` with store defaults."""
    stored = rec.method == CompressionMethod.STORE
    csize = rec.compressed_size if rec.compressed_size is not None else len(rec.payload)
    if rec.uncompressed_size is not None:
        usize = rec.uncompressed_size
    else:
        usize = len(rec.payload) if stored else 0
    if rec.crc is not None:
        crc = rec.crc
    else:
        crc = crc32(rec.payload) if stored else 0
    return crc, csize, usize


def write_archive(records: Iterable[ZipRecord]) -> bytes:
    """Serialize *records* into a complete archive."""
    local_parts: list[bytes] = []
    cd_parts: list[bytes] = []
    offset = 0
    count = 0

    for rec in records:
        name = encode_name(rec.name)
        crc, csize, usize = _resolve(rec)

        header = _LOCAL_STRUCT.pack(
            LOCAL_HEADER_SIG,
            VERSION_NEEDED,
            0,              # flags
            rec.method,
            0, 0,           # mod time, mod date
            crc, csize, usize,
            len(name),
            0,              # extra length
        )
        local_parts.append(header + name + rec.payload)

        cd_parts.append(_CD_STRUCT.pack(
            CENTRAL_DIR_SIG,
            VERSION_NEEDED,     # version made by
            VERSION_NEEDED,     # version needed
            0,
            rec.method,
            0, 0,
            crc, csize, usize,
            len(name),
            0, 0,               # extra, comment
            0, 0, 0,            # disk, internal attr, external attr
            offset,
        ) + name)

        offset += len(header) + len(name) + len(rec.payload)
        count += 1

    cd = b"".join(cd_parts)
    eocd = _EOCD_STRUCT.pack(
        END_OF_DIR_SIG,
        0, 0,               # this disk, CD disk
        count, count,
        len(cd),
        offset,             # CD starts right after the last payload
        0,                  # comment length
    )
    log.debug("Wrote %d entries (%d payload bytes, CD %d bytes)", count, offset, len(cd))
    return b"".join(local_parts) + cd + eocd
