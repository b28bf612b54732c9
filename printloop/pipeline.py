"""
Build orchestrator — ``.gcode.3mf`` in, looped ``.gcode.3mf`` out.

This is the single entry point the CLI and the web server call.  It:

1. Extracts the plate G-code from the archive
2. Optionally rewrites the bed temperature hold
3. Strips top-of-file purge comments and the nozzle load line
4. Splits the file into header / config / body
5. Strips flush, wipe and prime-line blocks from the body
6. Assembles N loops with cooling + detach between them
7. Merges the new G-code back into the original archive
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from printloop.archive import NotAnArchive, extract_instruction, merge_instruction_entry
from printloop.config.machine import MachineLimits
from printloop.gcode.detach import DetachConfig
from printloop.gcode.loop import adjust_bed_hold, assemble_looped
from printloop.gcode.purge import strip_nozzle_load_line, strip_purge_blocks, strip_purge_from_start
from printloop.gcode.structure import split_blocks

log = logging.getLogger("printloop.pipeline")

_ARCHIVE_SUFFIX_RE = re.compile(r"\.gcode(\.3mf)?$", re.IGNORECASE)


@dataclass(frozen=True)
class LoopPlan:
    """What to build: how many loops, from which plate, with which detach."""

    loop_count: int = 1
    detach: DetachConfig = field(default_factory=DetachConfig)
    plate_index: int = 1
    hold_bed_c: float | None = None
    strip_purge: bool = True


@dataclass
class BuildResult:
    """Looped archive plus the G-code embedded in it."""

    archive: bytes
    gcode_text: str
    instruction_name: str = ""
    stages: list[str] = field(default_factory=list)


def looped_filename(name: str, loops: int) -> str:
    """``My Part.gcode.3mf`` → ``My_Part__loopx5.gcode.3mf``."""
    stem = _ARCHIVE_SUFFIX_RE.sub("", name.strip().replace(" ", "_")) or "plate"
    return f"{stem}__loopx{max(1, int(loops))}.gcode.3mf"


def build_looped_archive(
    archive: bytes,
    plan: LoopPlan,
    limits: MachineLimits | None = None,
) -> BuildResult:
    """Run the full build.

    Parameters
    ----------
    archive : bytes
        The sliced ``.gcode.3mf`` as exported by Bambu Studio.
    plan : LoopPlan
        Loop count, plate, bed hold and detach settings.
    limits : MachineLimits, optional
        Overrides the configured machine limits.

    Returns
    -------
    BuildResult

    Raises
    ------
    NotAnArchive, InvalidArchive, CorruptEntry, MissingInstruction
        The input archive cannot be used.
    MissingMarkers
        The plate G-code lacks its HEADER/CONFIG blocks.
    """
    if not archive.startswith(b"PK"):
        raise NotAnArchive("Input is not a .gcode.3mf archive (missing PK signature)")
    stages: list[str] = []
    loops = max(1, int(plan.loop_count or 1))
    plate = max(1, int(plan.plate_index or 1))

    # ── 1. Extract ────────────────────────────────────────────────
    name, text = extract_instruction(archive, plate)
    stages.append(f"Instruction: {name} ({len(text)} chars)")

    # ── 2. Bed hold ───────────────────────────────────────────────
    if plan.hold_bed_c and plan.hold_bed_c > 0:
        text = adjust_bed_hold(text, plan.hold_bed_c)
        stages.append(f"Bed hold: {plan.hold_bed_c:g}C")

    # ── 3. Whole-file cleanup ─────────────────────────────────────
    top = strip_purge_from_start(text)
    text = top.text()
    if top.removed:
        stages.append(f"Top-of-file cleanup: {top.lines_removed} lines removed")
    else:
        stages.append("Top-of-file cleanup: nothing removed")

    nozzle = strip_nozzle_load_line(text)
    text = nozzle.text()
    if nozzle.removed:
        stages.append(f"Nozzle load line: {nozzle.lines_removed} lines removed")
    else:
        stages.append("Nozzle load line: nothing removed")

    # ── 4. Split ──────────────────────────────────────────────────
    doc = split_blocks(text)
    stages.append(
        f"Blocks: header {len(doc.header)}, config {len(doc.config)}, "
        f"body {len(doc.body)} lines"
    )

    # ── 5. Body purge strip ───────────────────────────────────────
    if plan.strip_purge:
        purge = strip_purge_blocks(doc.body, eol=doc.eol)
        doc = doc.with_body(purge.lines)
        stages.append(purge.describe())
    else:
        stages.append("Purge cleanup: skipped")

    # ── 6. Loop ───────────────────────────────────────────────────
    looped = assemble_looped(doc, loops, plan.detach, limits=limits)
    stages.append(f"Looped: {loops}x with {plan.detach.cooling.mode} cooling")

    # ── 7. Merge ──────────────────────────────────────────────────
    out = merge_instruction_entry(archive, plate, looped.encode("utf-8"))
    stages.append(f"Archive written: plate {plate}, {len(out)} bytes")

    log.info("Build complete: %s, %d loops, %d bytes", name, loops, len(out))
    return BuildResult(archive=out, gcode_text=looped, instruction_name=name, stages=stages)
