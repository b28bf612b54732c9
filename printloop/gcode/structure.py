"""
Block structure of Bambu Studio / Orca plate G-code.

A plate file looks like::

    ; HEADER_BLOCK_START
    ; generated by BambuStudio ...
    ; HEADER_BLOCK_END

    ; CONFIG_BLOCK_START
    ; layer_height = 0.2
    ; ...
    ; CONFIG_BLOCK_END

    ; EXECUTABLE_BLOCK_START
    M73 P0 R12
    ...                           <- body: the unit that gets repeated

Markers are matched on the stripped line, case-insensitively, and may
carry any number of leading ``;``.  Content is never rewritten: the
text is split on ``\\r?\\n`` and rejoined with the detected line ending.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_HEADER_START_RE = re.compile(r"^;+\s*HEADER_BLOCK_START\b", re.IGNORECASE)
_HEADER_END_RE = re.compile(r"^;+\s*HEADER_BLOCK_END\b", re.IGNORECASE)
_CONFIG_START_RE = re.compile(r"^;+\s*CONFIG_BLOCK_START\b", re.IGNORECASE)
_CONFIG_END_RE = re.compile(r"^;+\s*CONFIG_BLOCK_END\b", re.IGNORECASE)

# Left behind by some post-processing scripts; never part of a real body.
_TRAILER_NOTE_RE = re.compile(r"^;+\s*END gcode\s*\(.*\)\s*$", re.IGNORECASE)

_PRINT_START_RE = re.compile(r";START\s+gcode", re.IGNORECASE)
_PRINT_END_RE = re.compile(r";END\s+gcode", re.IGNORECASE)

ADDED_TAIL = "\n;END gcode (added by tool)"

_LINE_SPLIT_RE = re.compile(r"\r?\n")


class MissingMarkers(ValueError):
    """The text lacks one of the HEADER/CONFIG block markers."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            "Invalid Bambu G-code: missing HEADER/CONFIG block markers "
            f"({', '.join(missing)})"
        )


def detect_eol(text: str) -> str:
    """``"\\r\\n"`` if the text contains one anywhere, else ``"\\n"``."""
    return "\r\n" if "\r\n" in text else "\n"


def split_lines(text: str) -> list[str]:
    return _LINE_SPLIT_RE.split(text)


@dataclass(frozen=True)
class SplitDocument:
    """Plate G-code cut into its four contiguous spans."""

    preamble: tuple[str, ...]
    header: tuple[str, ...]
    config: tuple[str, ...]
    body: tuple[str, ...]
    eol: str = "\n"

    @property
    def prefix(self) -> tuple[str, ...]:
        """Everything emitted exactly once: preamble + header + config."""
        return self.preamble + self.header + self.config

    def with_body(self, body) -> "SplitDocument":
        return SplitDocument(self.preamble, self.header, self.config, tuple(body), self.eol)

    def join(self) -> str:
        return self.eol.join(self.prefix + self.body)


def split_blocks(text: str) -> SplitDocument:
    """Split *text* at the four block markers, found in strict order.

    Raises :class:`MissingMarkers` unless all four appear in order.
    """
    lines = split_lines(text)
    header_start = header_end = config_start = config_end = -1

    for i, line in enumerate(lines):
        t = line.strip()
        if header_start < 0:
            if _HEADER_START_RE.match(t):
                header_start = i
        elif header_end < 0:
            if _HEADER_END_RE.match(t):
                header_end = i
        elif config_start < 0:
            if _CONFIG_START_RE.match(t):
                config_start = i
        elif config_end < 0:
            if _CONFIG_END_RE.match(t):
                config_end = i
                break

    missing = [
        name for name, idx in (
            ("HEADER_BLOCK_START", header_start),
            ("HEADER_BLOCK_END", header_end),
            ("CONFIG_BLOCK_START", config_start),
            ("CONFIG_BLOCK_END", config_end),
        ) if idx < 0
    ]
    if missing:
        raise MissingMarkers(missing)

    body = tuple(
        line for line in lines[config_end + 1:]
        if not _TRAILER_NOTE_RE.match(line.strip())
    )
    return SplitDocument(
        preamble=tuple(lines[:header_start]),
        # lines between HEADER_BLOCK_END and CONFIG_BLOCK_START stay with the header
        header=tuple(lines[header_start:config_start]),
        config=tuple(lines[config_start:config_end + 1]),
        body=body,
        eol=detect_eol(text),
    )


def make_looped_gcode(text: str, loops: int) -> str:
    """Header and config once, body repeated — no purge strip, no detach."""
    doc = split_blocks(text)
    repeated = doc.body * max(1, int(loops))
    return doc.eol.join(doc.prefix + repeated)


# ── Loose splitter ────────────────────────────────────────────────


@dataclass(frozen=True)
class PrintRegion:
    """``head`` before ``;START gcode``, ``piece`` up to ``;END gcode``,
    ``tail`` from ``;END gcode`` on."""

    head: str
    piece: str
    tail: str


def parse_print_region(text: str) -> PrintRegion:
    """Bisect *text* at the start/end-of-print markers.

    Never fails: without a start marker the whole text is the piece.
    """
    start = _PRINT_START_RE.search(text)
    if start is None:
        return PrintRegion(head="", piece=text, tail="")

    end = _PRINT_END_RE.search(text, start.end())
    if end is None:
        return PrintRegion(head=text[:start.start()], piece=text[start.start():], tail=ADDED_TAIL)

    return PrintRegion(
        head=text[:start.start()],
        piece=text[start.start():end.start()],
        tail=text[end.start():],
    )
