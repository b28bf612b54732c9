"""Shared test fixtures — synthetic Bambu Studio plate G-code and archives.

The plate G-code is the smallest file that still has everything the
build touches:

  - HEADER / CONFIG blocks separated by a blank line
  - an executable block with bed temperature commands
  - a ``nozzle load line`` block terminated by ``; filament start gcode``
  - one FLUSH block
  - two layers of "real" print moves

Archives are written with the standard-library ``zipfile`` module so the
reader is exercised against an independent writer.
"""

from __future__ import annotations

import io
import zipfile

HEADER = [
    "; HEADER_BLOCK_START",
    "; generated by BambuStudio 01.09.00.70",
    "; total layer number: 2",
    "; HEADER_BLOCK_END",
]

CONFIG = [
    "; CONFIG_BLOCK_START",
    "; layer_height = 0.2",
    "; nozzle_diameter = 0.4",
    "; CONFIG_BLOCK_END",
]

NOZZLE_LOAD = [
    ";===== nozzle load line ===============================",
    "G1 X18 Y1 F1800",
    "G1 X240 Y1 E20 F300",
]

FLUSH = [
    "; FLUSH_START",
    "G1 E-2 F1800",
    "G1 E30 F300",
    "; FLUSH_END",
]

PRINT_MOVES = [
    ";LAYER:0",
    "; CHANGE_LAYER",
    "G1 X100 Y100 E1.2 F1500",
    "G1 X120 Y100 E2.4",
    ";LAYER:1",
    "; CHANGE_LAYER",
    "G1 X100 Y120 E3.6",
    "G1 X120 Y120 E4.8",
]

BODY = (
    [
        "; EXECUTABLE_BLOCK_START",
        "M73 P0 R12",
        "M140 S65",
        "M190 S65",
    ]
    + NOZZLE_LOAD
    + [
        "; filament start gcode",
        "M106 S0",
    ]
    + FLUSH
    + PRINT_MOVES
    + ["; EXECUTABLE_BLOCK_END"]
)

THUMBNAIL = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 4
SLICE_INFO = b'<?xml version="1.0" encoding="UTF-8"?>\n<config><plate><metadata key="index" value="1"/></plate></config>\n'
CONTENT_TYPES = b'<?xml version="1.0" encoding="UTF-8"?>\n<Types/>\n'


def make_plate_gcode(eol: str = "\n", body: list[str] | None = None) -> str:
    """Plate G-code with a blank line between the header and config blocks."""
    lines = HEADER + [""] + CONFIG + [""] + (BODY if body is None else body)
    return eol.join(lines)


def make_3mf(
    gcode: bytes,
    plate_index: int = 1,
    deflate: bool = True,
    with_md5: bool = True,
    comment: bytes = b"",
) -> bytes:
    """A ``.gcode.3mf`` holding *gcode* plus the usual side entries."""
    method = zipfile.ZIP_DEFLATED if deflate else zipfile.ZIP_STORED
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("[Content_Types].xml", CONTENT_TYPES, compress_type=zipfile.ZIP_DEFLATED)
        zf.writestr(f"Metadata/plate_{plate_index}.gcode", gcode, compress_type=method)
        if with_md5:
            zf.writestr(f"Metadata/plate_{plate_index}.gcode.md5", b"0" * 32,
                        compress_type=zipfile.ZIP_STORED)
        zf.writestr(f"Metadata/plate_{plate_index}.png", THUMBNAIL,
                    compress_type=zipfile.ZIP_STORED)
        zf.writestr("Metadata/slice_info.config", SLICE_INFO, compress_type=zipfile.ZIP_DEFLATED)
        if comment:
            zf.comment = comment
    return buf.getvalue()


def read_zip(data: bytes) -> dict[str, bytes]:
    """Every entry of *data*, decompressed by ``zipfile``."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.testzip() is None
        return {name: zf.read(name) for name in zf.namelist()}


def zip_methods(data: bytes) -> dict[str, int]:
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return {info.filename: info.compress_type for info in zf.infolist()}


def damage_payload(data: bytes, name: str = "Metadata/plate_1.gcode") -> bytes:
    """Copy of *data* with the stored bytes of *name* overwritten by 0xFF.

    The headers stay intact, so only inflating the entry fails.
    """
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        info = zf.getinfo(name)
    out = bytearray(data)
    off = info.header_offset
    nlen = int.from_bytes(out[off + 26:off + 28], "little")
    xlen = int.from_bytes(out[off + 28:off + 30], "little")
    start = off + 30 + nlen + xlen
    out[start:start + info.compress_size] = b"\xff" * info.compress_size
    return bytes(out)
