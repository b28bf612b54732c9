"""
Merge new plate G-code into an existing ``.gcode.3mf``.

Only ``Metadata/plate_<n>.gcode`` and its ``.md5`` sidecar are rewritten.
Every other entry (thumbnails, slice info, project settings, meshes) is
copied through with its original name, method, payload, CRC and sizes,
so Bambu Studio and the printer accept the archive as if it came
straight from the slicer.

Order of operations matters:

1. Inflate the original plate entry to learn its line endings.
2. Normalise the new G-code to those line endings.
3. Hash (MD5) and CRC the *normalised* bytes.
4. Re-deflate only if the original plate entry was deflated.
"""

from __future__ import annotations

import logging
import re
import zlib

from printloop.archive.checksum import crc32, md5_hex
from printloop.archive.models import (
    ArchiveEntry,
    CompressionMethod,
    InvalidArchive,
    NotAnArchive,
    ZipRecord,
    plate_gcode_path,
    plate_md5_path,
)
from printloop.archive.reader import decompress_payload, list_entries, read_entry_payload
from printloop.archive.writer import write_archive

log = logging.getLogger("printloop.archive.merge")

_NEWLINE_RE = re.compile(rb"\r?\n")


def normalize_eol(original: bytes | None, fresh: bytes) -> bytes:
    """Convert *fresh* to the line endings used by *original*.

    With no original to compare against, *fresh* is returned unchanged.
    """
    if original is None:
        return fresh
    if b"\r\n" in original:
        return _NEWLINE_RE.sub(b"\r\n", fresh)
    return fresh.replace(b"\r\n", b"\n")


def deflate_raw(data: bytes) -> bytes:
    """Raw deflate (no zlib header), as stored in ZIP method 8."""
    compressor = zlib.compressobj(9, zlib.DEFLATED, -15)
    return compressor.compress(data) + compressor.flush()


def _plate_record(entry: ArchiveEntry | None, name: str, data: bytes) -> ZipRecord:
    crc = crc32(data)
    if entry is not None and entry.is_deflated:
        packed = deflate_raw(data)
        return ZipRecord(
            name=name, method=CompressionMethod.DEFLATE, payload=packed,
            crc=crc, compressed_size=len(packed), uncompressed_size=len(data),
        )
    return ZipRecord(
        name=name, method=CompressionMethod.STORE, payload=data,
        crc=crc, compressed_size=len(data), uncompressed_size=len(data),
    )


def _stored_record(name: str, data: bytes) -> ZipRecord:
    return ZipRecord(
        name=name, method=CompressionMethod.STORE, payload=data,
        crc=crc32(data), compressed_size=len(data), uncompressed_size=len(data),
    )


def merge_instruction_entry(
    archive: bytes,
    plate_index: int,
    new_gcode: bytes,
) -> bytes:
    """Return a new archive with plate *plate_index* replaced by *new_gcode*.

    Parameters
    ----------
    archive : bytes
        The original ``.gcode.3mf``.  Not modified.
    plate_index : int
        1-based plate number; values below 1 are treated as 1.
    new_gcode : bytes
        Replacement plate G-code (any line-ending style).

    Raises
    ------
    InvalidArchive
        *archive* has no central directory.
    CorruptEntry
        An entry's local header is not where the directory says.
    """
    try:
        entries = list_entries(archive)
    except NotAnArchive as exc:
        raise InvalidArchive("Invalid 3mf: no central directory") from exc

    target_gcode = plate_gcode_path(plate_index)
    target_md5 = plate_md5_path(plate_index)

    plate_entry = next((e for e in entries if e.matches(target_gcode)), None)
    original_gcode = None
    if plate_entry is not None:
        original_gcode = decompress_payload(
            plate_entry, read_entry_payload(archive, plate_entry),
        )

    normalized = normalize_eol(original_gcode, new_gcode)
    digest = md5_hex(normalized).encode("ascii")

    records: list[ZipRecord] = []
    saw_gcode = saw_md5 = False

    for e in entries:
        raw = read_entry_payload(archive, e)
        if e.matches(target_gcode):
            saw_gcode = True
            records.append(_plate_record(e, e.name, normalized))
        elif e.matches(target_md5):
            saw_md5 = True
            records.append(_stored_record(e.name, digest))
        else:
            records.append(ZipRecord(
                name=e.name,
                method=e.method,
                payload=raw,
                crc=e.crc,
                compressed_size=e.compressed_size,
                uncompressed_size=e.uncompressed_size,
            ))

    if not saw_gcode:
        log.info("%s not present — appending it", target_gcode)
        records.append(_plate_record(None, target_gcode, normalized))
    if not saw_md5:
        log.info("%s not present — appending it", target_md5)
        records.append(_stored_record(target_md5, digest))

    out = write_archive(records)
    log.info(
        "Merged %s (%d bytes, %s, md5 %s) into %d-entry archive",
        target_gcode,
        len(normalized),
        "deflate" if plate_entry is not None and plate_entry.is_deflated else "store",
        digest.decode("ascii"),
        len(records),
    )
    return out
