"""
Purge / prime / wipe removal.

Bambu Studio surrounds the real print with preparatory moves that make
sense once per job but not once per loop: flush blocks after a filament
change, the wipe-and-shake over the purge chute, a prime line along the
front edge, and the "nozzle load line" right after the config block.

Body cleanup is an explicit ordered list of named stages.  Each stage is
a pure finder over an immutable line tuple that returns the next span to
remove (or ``None``); the engine slices out the span and records a trace
entry.  Priority order::

  1. flush       every ``; FLUSH_START`` … ``; FLUSH_END`` block (repeats)
  2. wipe        the wipe/shake sequence around a known hint comment
  3. line_purge  fallback: narrow-band, mostly-extruding run before the
                 first layer — only if 1 and 2 removed nothing

Two independent whole-file stages run before the body is split out:
:func:`strip_purge_from_start` (blank / purge comments above
``;START gcode``) and :func:`strip_nozzle_load_line`.

None of these ever raise; a missing pattern skips the stage.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from printloop.config.rules import PURGE_RULES, PurgeRules
from printloop.gcode.structure import detect_eol, split_lines

log = logging.getLogger("printloop.gcode.purge")

NOTHING_REMOVED = "No purge block detected."


# ── Trace ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Removal:
    """Half-open line range ``[start, end)`` removed by one stage."""

    start: int
    end: int
    tag: str

    @property
    def count(self) -> int:
        return self.end - self.start

    def describe(self) -> str:
        return f"{self.tag} [{self.start}..{self.end - 1}] ({self.count} lines)"


@dataclass
class PurgeResult:
    """Cleaned lines plus the trace of every removal."""

    lines: tuple[str, ...]
    removals: list[Removal] = field(default_factory=list)
    eol: str = "\n"

    @property
    def removed(self) -> bool:
        return bool(self.removals)

    @property
    def lines_removed(self) -> int:
        return sum(r.count for r in self.removals)

    def text(self) -> str:
        return self.eol.join(self.lines)

    def describe(self) -> str:
        if not self.removals:
            return NOTHING_REMOVED
        return "Purge cleanup:\n; " + "\n; ".join(r.describe() for r in self.removals)


# ── Line classifiers ──────────────────────────────────────────────

_LAYER_START_RES = (
    re.compile(r"^;\s*LAYER:\d+", re.IGNORECASE),
    re.compile(r"^;\s*type:\s*(skirt|brim|wall|perimeter|infill)", re.IGNORECASE),
    re.compile(r"^;\s*(layer|skirt|brim|wall|perimeter|infill)\b", re.IGNORECASE),
)

_FLUSH_START_RE = re.compile(r"^;\s*FLUSH_START\b", re.IGNORECASE)
_FLUSH_END_RE = re.compile(r"^;\s*FLUSH_END\b", re.IGNORECASE)

_WIPE_HINT_RES = (
    re.compile(r"shake to put down garbage", re.IGNORECASE),
    re.compile(r"wipe and shake", re.IGNORECASE),
    re.compile(r"move Y to aside, prevent collision", re.IGNORECASE),
)
# M204 accel, M209, M621/M629 AMS tool change
_WIPE_STOP_CMD_RE = re.compile(r"^(M20[49]|M62[19])\b", re.IGNORECASE)
_BLOCK_MARKER_RE = re.compile(r"^;\s*(HEADER_BLOCK|CONFIG_BLOCK|END gcode)", re.IGNORECASE)
_COMMAND_RE = re.compile(r"^[GM]\d+", re.IGNORECASE)
_WIPE_TOLERATED_RE = re.compile(r"^(G0|G1|M106|M107)\b", re.IGNORECASE)

_G1_RE = re.compile(r"^G1\b", re.IGNORECASE)
_G0_RE = re.compile(r"^G0\b", re.IGNORECASE)
_Y_RE = re.compile(r"\bY(-?\d+(?:\.\d+)?)", re.IGNORECASE)
_E_RE = re.compile(r"\bE(-?\d+(?:\.\d+)?)", re.IGNORECASE)
_SPACED_COMMENT_RE = re.compile(r"^;\s")


def is_layer_start(line: str) -> bool:
    """True for the first marker of a real printed layer / region."""
    t = line.strip()
    return any(rx.match(t) for rx in _LAYER_START_RES)


def _axis(rx: re.Pattern, line: str) -> float | None:
    m = rx.search(line)
    return float(m.group(1)) if m else None


# ── Body stages ───────────────────────────────────────────────────

Finder = Callable[[tuple[str, ...], PurgeRules], "Removal | None"]


@dataclass(frozen=True)
class PurgeStage:
    """A named finder.

    ``repeat`` stages run until their finder returns ``None``;
    ``fallback`` stages run only when no earlier stage removed anything.
    """

    name: str
    find: Finder
    repeat: bool = False
    fallback: bool = False


def find_flush_block(lines: tuple[str, ...], rules: PurgeRules) -> Removal | None:
    """First ``FLUSH_START`` in the scan window through its ``FLUSH_END``."""
    window = min(len(lines), rules.scan_limit)
    for i in range(window):
        if not _FLUSH_START_RE.match(lines[i].strip()):
            continue
        for j in range(i + 1, len(lines)):
            if _FLUSH_END_RE.match(lines[j].strip()):
                return Removal(i, j + 1, "FLUSH block removed")
        log.warning("FLUSH_START at line %d has no FLUSH_END — left untouched", i)
        return None
    return None


def _wipe_stops(line: str) -> bool:
    t = line.strip()
    if is_layer_start(t) or _WIPE_STOP_CMD_RE.match(t) or _BLOCK_MARKER_RE.match(t):
        return True
    return bool(_COMMAND_RE.match(t)) and not _WIPE_TOLERATED_RE.match(t)


def find_wipe_block(lines: tuple[str, ...], rules: PurgeRules) -> Removal | None:
    """Span around the first wipe/shake hint comment."""
    window = min(len(lines), rules.scan_limit)
    hint = next(
        (k for k in range(window) if any(rx.search(lines[k]) for rx in _WIPE_HINT_RES)),
        None,
    )
    if hint is None:
        return None

    start = max(0, hint - rules.wipe_lookbehind)
    end = hint + 1
    cap = min(len(lines), hint + rules.wipe_cap)
    while end < cap and not _wipe_stops(lines[end]):
        end += 1
    if end <= start:
        return None
    return Removal(start, end, "wipe/shake block removed")


def find_line_purge(lines: tuple[str, ...], rules: PurgeRules) -> Removal | None:
    """Prime line before the first layer: many moves, mostly extruding,
    all inside a narrow Y band."""
    window = min(len(lines), rules.scan_limit)
    first_layer = next((k for k in range(window) if is_layer_start(lines[k])), None)
    if first_layer is None:
        first_layer = min(len(lines), rules.line_purge_cap)

    y0: float | None = None
    band = 0.0
    e_prev = 0.0
    moves = 0
    extruding = 0
    run_end = -1

    for i in range(first_layer):
        t = lines[i].strip()
        if _G1_RE.match(t):
            moves += 1
            y = _axis(_Y_RE, t)
            e = _axis(_E_RE, t)
            if y is not None:
                if y0 is None:
                    y0 = y
                band = max(band, abs(y - y0))
            if e is not None:
                if e > e_prev + 0.0001:
                    extruding += 1
                e_prev = e
            if (moves >= rules.min_moves
                    and extruding / moves > rules.min_extrude_ratio
                    and band < rules.max_band):
                run_end = i + 1
        elif _G0_RE.match(t):
            moves += 1
            y = _axis(_Y_RE, t)
            if y is not None:
                if y0 is None:
                    y0 = y
                band = max(band, abs(y - y0))
        elif _SPACED_COMMENT_RE.match(t):
            continue
        elif run_end > 0:
            break

    if run_end <= 0:
        return None
    return Removal(0, run_end, f"heuristic line purge removed (Yband≈{band:.2f})")


PURGE_STAGES: tuple[PurgeStage, ...] = (
    PurgeStage("flush", find_flush_block, repeat=True),
    PurgeStage("wipe", find_wipe_block),
    PurgeStage("line_purge", find_line_purge, fallback=True),
)


def strip_purge_blocks(
    lines: Iterable[str],
    rules: PurgeRules = PURGE_RULES,
    stages: Sequence[PurgeStage] = PURGE_STAGES,
    eol: str = "\n",
) -> PurgeResult:
    """Run *stages* in order over the body *lines*."""
    current = tuple(lines)
    removals: list[Removal] = []

    for stage in stages:
        if stage.fallback and removals:
            continue
        while True:
            span = stage.find(current, rules)
            if span is None or span.count <= 0:
                break
            current = current[:span.start] + current[span.end:]
            removals.append(span)
            log.info("Purge stage %s: %s", stage.name, span.describe())
            if not stage.repeat:
                break

    if not removals:
        log.info(NOTHING_REMOVED)
    return PurgeResult(current, removals, eol)


def strip_purge_text(text: str, rules: PurgeRules = PURGE_RULES) -> PurgeResult:
    """:func:`strip_purge_blocks` over a text body."""
    return strip_purge_blocks(split_lines(text), rules, eol=detect_eol(text))


# ── Whole-file stages ─────────────────────────────────────────────

_TOP_HEADER_START_RE = re.compile(r"^;+\s*HEADER_BLOCK_START\b", re.IGNORECASE)
_TOP_CONFIG_START_RE = re.compile(r"^;+\s*CONFIG_BLOCK_START\b", re.IGNORECASE)
_TOP_PRINT_START_RE = re.compile(r"^;+\s*START\s+gcode\b", re.IGNORECASE)
_TOP_PURGE_COMMENT_RE = re.compile(
    r"^;+\s*(flush|flush_start|prime|purge|wipe|thumbnail|thumbnails?)\b",
    re.IGNORECASE,
)


def strip_purge_from_start(text: str) -> PurgeResult:
    """Drop blank lines and purge/flush/prime/wipe/thumbnail comments that
    sit above ``;START gcode``.

    The first HEADER/CONFIG start marker ends the region as well; those
    blocks are always kept intact.
    """
    lines = split_lines(text)
    kept: list[str] = []
    removals: list[Removal] = []
    run_start = -1
    before_start = True

    for i, line in enumerate(lines):
        t = line.strip()
        drop = False
        if before_start:
            if (_TOP_HEADER_START_RE.match(t) or _TOP_CONFIG_START_RE.match(t)
                    or _TOP_PRINT_START_RE.match(t)):
                before_start = False
            else:
                drop = t == "" or bool(_TOP_PURGE_COMMENT_RE.match(t))

        if drop:
            if run_start < 0:
                run_start = i
            continue
        if run_start >= 0:
            removals.append(Removal(run_start, i, "top-of-file purge lines removed"))
            run_start = -1
        kept.append(line)

    if run_start >= 0:
        removals.append(Removal(run_start, len(lines), "top-of-file purge lines removed"))

    result = PurgeResult(tuple(kept), removals, detect_eol(text))
    if result.removed:
        log.info("Top-of-file cleanup removed %d lines", result.lines_removed)
    return result


_EXEC_START_RE = re.compile(r"^\s*;\s*EXECUTABLE_BLOCK_START\b", re.IGNORECASE)
_NOZZLE_LOAD_RE = re.compile(r"^\s*;[=\-\s]*nozzle\s+load\s+line\b", re.IGNORECASE)
_NOZZLE_LOAD_END_RES = (
    re.compile(r"^\s*;\s*filament\s+start\s+gcode\b", re.IGNORECASE),
    re.compile(r"^\s*;\s*VT0\b", re.IGNORECASE),
    re.compile(r"^\s*;\s*CHANGE_LAYER\b", re.IGNORECASE),
)


def strip_nozzle_load_line(text: str, rules: PurgeRules = PURGE_RULES) -> PurgeResult:
    """Remove the ``;===== nozzle load line =====`` block.

    Deletes from the marker up to, not including, the first
    ``; filament start gcode``, ``;VT0`` or ``; CHANGE_LAYER``.  Without
    a terminator at most ``rules.nozzle_load_cap`` lines go.
    """
    lines = tuple(split_lines(text))
    eol = detect_eol(text)

    search_from = next((i for i, s in enumerate(lines) if _EXEC_START_RE.match(s)), 0)
    start = next(
        (i for i in range(search_from, len(lines)) if _NOZZLE_LOAD_RE.match(lines[i])),
        None,
    )
    if start is None:
        return PurgeResult(lines, [], eol)

    end = next(
        (i for i in range(start + 1, len(lines))
         if any(rx.match(lines[i]) for rx in _NOZZLE_LOAD_END_RES)),
        None,
    )
    if end is None:
        end = min(start + rules.nozzle_load_cap, len(lines))
        log.warning(
            "Nozzle load line at %d has no terminator — cutting %d lines",
            start, end - start,
        )

    span = Removal(start, end, "nozzle load line removed")
    log.info("%s", span.describe())
    return PurgeResult(lines[:start] + lines[end:], [span], eol)
