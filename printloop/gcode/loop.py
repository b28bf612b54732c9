"""
Loop assembler — header and config once, then N × (body, cooling, detach).

The result is one plate G-code that prints the same part over and over,
waiting for the bed to cool and knocking the finished part off between
iterations.
"""

from __future__ import annotations

import logging
import math
import re

from printloop.config.machine import MachineLimits
from printloop.gcode.detach import CoolingConfig, DetachConfig, build_detach_sequence
from printloop.gcode.structure import SplitDocument, detect_eol, split_lines

log = logging.getLogger("printloop.gcode.loop")

LOOP_BANNER = "; ===== LOOP {index} / {total} ====="

_BED_TEMP_RE = re.compile(r"(M1(?:40|90)\s+S)\d+")
_CONFIG_END_RE = re.compile(r"^;+\s*CONFIG_BLOCK_END\b", re.IGNORECASE)
_HEADER_END_RE = re.compile(r"^;+\s*HEADER_BLOCK_END\b", re.IGNORECASE)


def cooling_lines(cooling: CoolingConfig) -> list[str]:
    """Wait-for-bed-temperature or fixed dwell block.

    Time mode with zero seconds emits nothing.
    """
    if cooling.mode == "time":
        seconds = max(0, math.floor(cooling.seconds or 0))
        if seconds <= 0:
            return []
        return [
            f"; --- cooling: dwell {seconds}s ---",
            f"G4 S{seconds}",
            "; --- end cooling ---",
        ]

    temp = 30 if cooling.temp_c is None else max(0, math.floor(cooling.temp_c))
    return [
        f"; --- cooling: wait until bed <= {temp}C ---",
        f"M190 R{temp}",
        "; --- end cooling ---",
    ]


def adjust_bed_hold(text: str, hold_c: float | None) -> str:
    """Rewrite every ``M140 S<n>`` / ``M190 S<n>`` to ``S<hold_c>``.

    A missing or non-positive *hold_c* returns *text* unchanged.
    """
    if not hold_c or hold_c <= 0:
        return text
    target = str(math.floor(hold_c + 0.5))
    out, count = _BED_TEMP_RE.subn(lambda m: m.group(1) + target, text)
    if count:
        log.info("Bed hold: %d bed temperature commands set to %sC", count, target)
    return out


def apply_detach_cooling(text: str, cooling: CoolingConfig) -> str:
    """Insert the cooling block right after ``CONFIG_BLOCK_END``
    (or ``HEADER_BLOCK_END`` when there is no config block)."""
    lines = split_lines(text)
    insert_at = -1
    for i, line in enumerate(lines):
        t = line.strip()
        if _CONFIG_END_RE.match(t):
            insert_at = i + 1
            break
        if insert_at < 0 and _HEADER_END_RE.match(t):
            insert_at = i + 1
    if insert_at < 0:
        return text

    block = cooling_lines(cooling)
    if not block:
        return text
    return detect_eol(text).join(lines[:insert_at] + block + lines[insert_at:])


def assemble_looped(
    doc: SplitDocument,
    loop_count: int,
    detach: DetachConfig,
    cooling: CoolingConfig | None = None,
    limits: MachineLimits | None = None,
) -> str:
    """Emit the looped plate G-code.

    Parameters
    ----------
    doc : SplitDocument
        Split (and usually purge-stripped) plate G-code.
    loop_count : int
        Number of prints; values below 1 are treated as 1.
    detach : DetachConfig
        Detach settings; ``home_between`` appends ``G28 X Y`` per loop.
    cooling : CoolingConfig, optional
        Defaults to ``detach.cooling``.

    Every iteration, the last one included, ends with cooling and the
    detach sequence so the final part comes off the plate too.
    """
    total = max(1, int(loop_count or 1))
    cooling = cooling or detach.cooling
    detach_block = build_detach_sequence(detach, limits)
    cool_block = cooling_lines(cooling)

    out: list[str] = list(doc.prefix)
    for i in range(1, total + 1):
        out.append(LOOP_BANNER.format(index=i, total=total))
        out.extend(doc.body)
        out.extend(cool_block)
        out.extend(detach_block)
        if detach.home_between:
            out += ["; --- home XY ---", "G28 X Y"]

    log.info(
        "Assembled %d loops (%d body lines, %d detach lines each)",
        total, len(doc.body), len(detach_block),
    )
    return doc.eol.join(out)
