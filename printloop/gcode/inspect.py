"""Read settings back out of plate G-code, and describe its layout."""

from __future__ import annotations

import re

from printloop.gcode.structure import parse_print_region, split_lines

_LOOPS_RE = re.compile(r"; ===== LOOP 1 / (\d+)")
_FAN_RE = re.compile(r"M106\s+S255")
_HOME_RE = re.compile(r"G28\s+X\s*Y")
_SAFE_LIFT_RE = re.compile(r"G91\s*[\r\n]+G0\s+Z5\s+F6000[\r\n]+G90")
_COOL_TEMP_RE = re.compile(r"M190\s+R(\d+)")
_DWELL_RE = re.compile(r"G4\s+S(\d+)")

_MARKERS = {
    "header_start": re.compile(r"^;+\s*HEADER_BLOCK_START\b", re.IGNORECASE | re.MULTILINE),
    "header_end": re.compile(r"^;+\s*HEADER_BLOCK_END\b", re.IGNORECASE | re.MULTILINE),
    "config_start": re.compile(r"^;+\s*CONFIG_BLOCK_START\b", re.IGNORECASE | re.MULTILINE),
    "config_end": re.compile(r"^;+\s*CONFIG_BLOCK_END\b", re.IGNORECASE | re.MULTILINE),
}


def _int(rx: re.Pattern, text: str, default: int) -> int:
    m = rx.search(text)
    return int(m.group(1)) if m else default


def detect_defaults(text: str) -> dict:
    """Settings a previously looped file was built with.

    Anything not found falls back to the build defaults (1 loop, 30 °C,
    3600 s).
    """
    return {
        "loops": _int(_LOOPS_RE, text, 1),
        "fan_on": bool(_FAN_RE.search(text)),
        "home_between": bool(_HOME_RE.search(text)),
        "safe_lift": bool(_SAFE_LIFT_RE.search(text)),
        "cool_temp_c": _int(_COOL_TEMP_RE, text, 30),
        "cool_seconds": _int(_DWELL_RE, text, 3600),
    }


def _count(part: str) -> int:
    return len(split_lines(part)) if part else 0


def summarize(text: str) -> dict:
    region = parse_print_region(text)
    markers = {name: bool(rx.search(text)) for name, rx in _MARKERS.items()}
    return {
        "lines": _count(text),
        "head_lines": _count(region.head),
        "piece_lines": _count(region.piece),
        "tail_lines": _count(region.tail),
        "markers": markers,
        "has_blocks": all(markers.values()),
    }
