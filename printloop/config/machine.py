"""
Machine configuration — single source of truth for motion limits.

The detach builder has no way to query the printer, so every clamp it
applies (Z ceiling, feed floor, sweep bounds) comes from here.  Defaults
match an A1 / P1-class bed-slinger; a JSON file named by the
``PRINTLOOP_MACHINE_CONFIG`` environment variable overrides any subset
of the fields.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from functools import lru_cache
from pathlib import Path

log = logging.getLogger("printloop.config.machine")

ENV_VAR = "PRINTLOOP_MACHINE_CONFIG"


@dataclass(frozen=True)
class MachineLimits:
    """Physical motion limits.

    Distances are in millimetres, feed rates in mm/min.
    """

    z_max: float = 235.0
    """Highest Z the bed may be driven to (plate fully lowered)."""

    feed_floor: int = 100
    """Slowest feed rate ever emitted; lower requests are raised to this."""

    travel_feed: int = 12000
    """Feed for column-to-column travel at the back edge."""

    sweep_z_feed: int = 10000
    """Feed for the move to sweep height."""

    lift_mm: float = 5.0
    lift_feed: int = 6000

    sweep_x_floor: float = 30.0
    """Leftmost X the sweep may use (keeps clear of the purge chute)."""

    y_front: float = 0.0
    """Y of the front plate edge — strokes end exactly here."""

    min_y_span: float = 10.0
    """Minimum distance between the front edge and the back of a stroke."""


def _from_mapping(data: dict) -> MachineLimits:
    known = {f.name for f in fields(MachineLimits)}
    unknown = sorted(set(data) - known)
    if unknown:
        log.warning("Ignoring unknown machine config keys: %s", ", ".join(unknown))
    return replace(MachineLimits(), **{k: v for k, v in data.items() if k in known})


def load_machine_limits(path: Path) -> MachineLimits:
    """Read a JSON object of overrides from *path*."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: machine config must be a JSON object")
    return _from_mapping(data)


@lru_cache(maxsize=1)
def machine_limits() -> MachineLimits:
    """Active limits: defaults, overridden by ``$PRINTLOOP_MACHINE_CONFIG``."""
    override = os.environ.get(ENV_VAR)
    if not override:
        return MachineLimits()
    limits = load_machine_limits(Path(override))
    log.info("Machine limits loaded from %s (z_max=%.1f)", override, limits.z_max)
    return limits
