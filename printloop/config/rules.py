"""Thresholds for the purge / prime heuristics.

These numbers were tuned against real Bambu Studio output and have no
deeper derivation.  They live in one frozen dataclass so each stage of
``printloop.gcode.purge`` reads them from here and a caller can pass a
modified copy without touching the stage code.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PurgeRules:
    """Scan windows and line-purge thresholds.

    Line counts are in lines, distances in the file's native units (mm).
    """

    scan_limit: int = 2000
    """Only the first *scan_limit* body lines are searched for flush
    blocks and wipe hints."""

    wipe_lookbehind: int = 25
    """A wipe span starts this many lines before its hint comment."""

    wipe_cap: int = 80
    """A wipe span never extends more than this past its hint."""

    line_purge_cap: int = 800
    """Line-purge walk limit when the body has no layer marker."""

    min_moves: int = 25
    min_extrude_ratio: float = 0.6
    max_band: float = 8.0
    """A run qualifies as a purge line once it has at least *min_moves*
    moves, more than *min_extrude_ratio* of them extruding, and stays
    inside a Y band narrower than *max_band*."""

    nozzle_load_cap: int = 200
    """Bounded removal when a nozzle-load block has no terminator."""


# Module-level singleton — importable everywhere.
PURGE_RULES = PurgeRules()
