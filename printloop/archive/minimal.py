"""Wrap plain G-code in the smallest archive Bambu Studio will open."""

from __future__ import annotations

from printloop.archive.checksum import md5_hex
from printloop.archive.models import (
    CompressionMethod,
    ZipRecord,
    plate_gcode_path,
    plate_md5_path,
)
from printloop.archive.writer import write_archive

CONTENT_TYPES_NAME = "[Content_Types].xml"

CONTENT_TYPES_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">\n'
    '  <Default Extension="gcode" ContentType="text/plain"/>\n'
    '  <Default Extension="md5" ContentType="text/plain"/>\n'
    "</Types>"
)


def to_crlf(data: bytes) -> bytes:
    """LF → CRLF, unless *data* already contains a CR anywhere."""
    if b"\r" in data:
        return data
    return data.replace(b"\n", b"\r\n")


def build_minimal_archive(plate_index: int, gcode: bytes) -> bytes:
    """Archive holding the plate G-code, its MD5 sidecar and content types.

    Everything is stored uncompressed; the G-code is converted to CRLF,
    which is what Bambu Studio itself writes.
    """
    plate = to_crlf(gcode)
    records = [
        ZipRecord(plate_gcode_path(plate_index), CompressionMethod.STORE, plate),
        ZipRecord(
            plate_md5_path(plate_index), CompressionMethod.STORE,
            md5_hex(plate).encode("ascii"),
        ),
        ZipRecord(
            CONTENT_TYPES_NAME, CompressionMethod.STORE,
            CONTENT_TYPES_XML.encode("utf-8"),
        ),
    ]
    return write_archive(records)
