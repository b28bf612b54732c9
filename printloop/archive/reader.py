"""
Central-directory reader for ``.gcode.3mf`` archives.

Only what the merge step needs: list the entries, hand back each raw
(still compressed) payload, and inflate the plate G-code on request.
The EOCD record is found by a full backward scan because a ZIP comment
of any length may follow it.

Layout reference (all little-endian)::

    local header   30 B  sig | ver | flags | method | time | date | crc | csize | usize | nlen | xlen
    central dir    46 B  sig | made | ver | flags | method | time | date | crc | csize | usize
                         | nlen | xlen | clen | disk | iattr | eattr | offset
    end of dir     22 B  sig | disk | cd disk | n here | n total | cd size | cd offset | clen
"""

from __future__ import annotations

import logging
import struct
import zlib

from printloop.archive.models import (
    CENTRAL_DIR_SIG,
    CENTRAL_DIR_SIZE,
    END_OF_DIR_SIG,
    END_OF_DIR_SIZE,
    LOCAL_HEADER_SIG,
    LOCAL_HEADER_SIZE,
    ArchiveEntry,
    CompressionMethod,
    CorruptEntry,
    MissingInstruction,
    NotAnArchive,
    decode_name,
    plate_gcode_path,
)

log = logging.getLogger("printloop.archive.reader")

_CD_STRUCT = struct.Struct("<IHHHHHHIIIHHHHHII")


def _find_end_of_dir(data: bytes) -> int:
    """Offset of the EOCD record, scanning back from the end."""
    sig = struct.pack("<I", END_OF_DIR_SIG)
    if len(data) >= END_OF_DIR_SIZE:
        i = data.rfind(sig, 0, len(data) - END_OF_DIR_SIZE + 4)
        if i >= 0:
            return i
    raise NotAnArchive("No end-of-central-directory record found")


def list_entries(data: bytes) -> list[ArchiveEntry]:
    """Parse the central directory of *data*.

    Raises :class:`NotAnArchive` if there is no EOCD record.
    """
    eocd = _find_end_of_dir(data)
    cd_size, cd_offset = struct.unpack_from("<II", data, eocd + 12)

    entries: list[ArchiveEntry] = []
    p = cd_offset
    end = cd_offset + cd_size
    while p + CENTRAL_DIR_SIZE <= end and p + CENTRAL_DIR_SIZE <= len(data):
        fields = _CD_STRUCT.unpack_from(data, p)
        if fields[0] != CENTRAL_DIR_SIG:
            break
        (_sig, _made, _ver, _flags, method, _time, _date,
         crc, csize, usize, nlen, xlen, clen,
         _disk, _iattr, _eattr, offset) = fields
        name = decode_name(data[p + CENTRAL_DIR_SIZE:p + CENTRAL_DIR_SIZE + nlen])
        entries.append(ArchiveEntry(
            name=name,
            method=method,
            crc=crc,
            compressed_size=csize,
            uncompressed_size=usize,
            header_offset=offset,
            name_length=nlen,
            extra_length=xlen,
            comment_length=clen,
        ))
        p += CENTRAL_DIR_SIZE + nlen + xlen + clen

    log.debug("Central directory at %d: %d entries", cd_offset, len(entries))
    return entries


def read_entry_payload(data: bytes, entry: ArchiveEntry) -> bytes:
    """Raw payload of *entry* exactly as stored (compressed for deflate).

    The local header must carry the same signature and name length as
    the central-directory record; its extra field may differ in length.

    Raises :class:`CorruptEntry` on a mismatch or when the header or
    payload runs past the end of *data*.
    """
    off = entry.header_offset
    if off < 0 or off + LOCAL_HEADER_SIZE > len(data):
        raise CorruptEntry(entry.name, off, "local header outside archive")
    (sig,) = struct.unpack_from("<I", data, off)
    if sig != LOCAL_HEADER_SIG:
        raise CorruptEntry(entry.name, off, f"bad local header signature 0x{sig:08x}")
    nlen, xlen = struct.unpack_from("<HH", data, off + 26)
    if nlen != entry.name_length:
        raise CorruptEntry(
            entry.name, off,
            f"name length mismatch (local {nlen}, directory {entry.name_length})",
        )
    start = off + LOCAL_HEADER_SIZE + nlen + xlen
    if start + entry.compressed_size > len(data):
        raise CorruptEntry(entry.name, off, "payload runs past end of archive")
    return data[start:start + entry.compressed_size]


def decompress_payload(entry: ArchiveEntry, raw: bytes) -> bytes:
    """Inflate *raw* according to the entry's method.

    Raises :class:`CorruptEntry` if the deflate stream is damaged.
    """
    if entry.method == CompressionMethod.DEFLATE:
        try:
            return zlib.decompress(raw, -15)
        except zlib.error as exc:
            raise CorruptEntry(entry.name, entry.header_offset, f"bad deflate stream ({exc})") from exc
    return raw


def extract_instruction(data: bytes, plate_index: int = 1) -> tuple[str, str]:
    """Return ``(entry_name, text)`` of the plate G-code.

    Looks for ``Metadata/plate_<n>.gcode`` first and falls back to the
    first ``.gcode`` entry in directory order.
    """
    entries = list_entries(data)
    target = plate_gcode_path(plate_index)

    chosen = next((e for e in entries if e.matches(target)), None)
    if chosen is None:
        chosen = next((e for e in entries if e.name.lower().endswith(".gcode")), None)
        if chosen is None:
            raise MissingInstruction("No .gcode entry found inside the archive")
        log.warning("%s not in archive — using %s", target, chosen.name)

    raw = read_entry_payload(data, chosen)
    text = decompress_payload(chosen, raw).decode("utf-8", errors="replace")
    log.info(
        "Extracted %s (%s, %d → %d bytes)",
        chosen.name,
        "deflate" if chosen.is_deflated else "store",
        chosen.compressed_size, chosen.uncompressed_size,
    )
    return chosen.name, text
