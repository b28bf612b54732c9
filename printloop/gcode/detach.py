"""
Detach sequence — the motion emitted between two loops.

After a plate finishes printing the bed is flexed (the Z axis drives the
plate up and down between two heights so the PEI sheet bends and the
part pops loose), then the toolhead rasters across the plate at a low
height to push the part off the front edge::

    ; === DETACH_SEQUENCE_START ===
    G91 / G0 Z5 F6000 / G90          safety lift (optional)
    G1 Z<bottom> … G1 Z<top>         bend cycles
    G1 Z<sweep> F10000               drop to sweep height
    M106 S255                        part fan on (optional)
    centering stroke + slow/fast rasters
    M106 S0 / safety lift
    ; === DETACH_SEQUENCE_END ===

Everything here is a pure function of :class:`DetachConfig` and
:class:`~printloop.config.machine.MachineLimits`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from printloop.config.machine import MachineLimits, machine_limits

DETACH_START = "; === DETACH_SEQUENCE_START ==="
DETACH_END = "; === DETACH_SEQUENCE_END ==="


@dataclass(frozen=True)
class CoolingConfig:
    """Wait before the detach: until the bed drops to *temp_c*
    (``mode="temp"``) or for a fixed *seconds* (``mode="time"``)."""

    mode: str = "temp"
    temp_c: float = 30
    seconds: float = 3600


@dataclass(frozen=True)
class DetachConfig:
    """User-facing knobs of the detach sequence.

    Z values are absolute machine Z (on a bed-slinger with a moving
    gantry, larger Z means the plate sits further from the nozzle).
    Feeds are mm/min.
    """

    z_offset_mm: float = 0.0
    sweep_z: float = 2.0
    fan_on: bool = True
    home_between: bool = False
    safe_lift: bool = True

    cool_mode: str = "temp"
    cool_temp_c: float = 30
    cool_seconds: float = 3600

    sweeps_slow: int = 0
    sweeps_fast: int = 0
    sweep_feed_slow: float = 3000
    sweep_feed_fast: float = 12000
    sweep_step_x: float = 30
    sweep_y_max: float = 250
    sweep_x_min: float = 0
    sweep_x_max: float = 220

    bend_top_z: float = 235
    bend_bottom_z: float = 200
    bend_cycles: int = 6
    bend_feed: float = 12000

    @property
    def cooling(self) -> CoolingConfig:
        mode = "time" if self.cool_mode == "time" else "temp"
        return CoolingConfig(mode=mode, temp_c=self.cool_temp_c, seconds=self.cool_seconds)


# ── Formatting ────────────────────────────────────────────────────


def fmt(value: float, precision: int = 3) -> str:
    """Fixed-precision number with trailing zeros trimmed.

    >>> fmt(100.0), fmt(2.5), fmt(-0.0001)
    ('100', '2.5', '0')
    """
    v = round(float(value or 0), precision) + 0.0  # -0.0 -> 0.0
    text = f"{v:.{precision}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _feed(value: float, limits: MachineLimits) -> int:
    return max(limits.feed_floor, math.floor(value))


def _z(value: float, limits: MachineLimits) -> float:
    # bed travel is 0 .. z_max
    return max(0.0, min(limits.z_max, float(value)))


# ── Geometry ──────────────────────────────────────────────────────


def sweep_columns(x_min: float, x_max: float, step: float) -> list[float]:
    """X positions of the raster columns.

    Steps from *x_min* while ``x <= x_max - 0.001``; *x_max* is always
    the final column.

    >>> sweep_columns(0, 100, 30)
    [0.0, 30.0, 60.0, 90.0, 100.0]
    """
    step = max(1, math.floor(step))
    cols: list[float] = []
    x = float(x_min)
    while x <= x_max - 0.001:
        cols.append(float(fmt(min(x, x_max))))
        x += step
    if not cols or cols[-1] < x_max - 0.001:
        cols.append(float(fmt(x_max)))
    return cols


def _lift(limits: MachineLimits) -> list[str]:
    return ["G91", f"G0 Z{fmt(limits.lift_mm)} F{limits.lift_feed}", "G90"]


def build_detach_sequence(
    config: DetachConfig,
    limits: MachineLimits | None = None,
) -> list[str]:
    """G-code lines for one detach pass, markers included.

    Parameters
    ----------
    config : DetachConfig
        Bend, sweep and fan settings.
    limits : MachineLimits, optional
        Clamps for Z, feed and sweep bounds.  Defaults to
        :func:`~printloop.config.machine.machine_limits`.

    Returns
    -------
    list[str]
        Starts with ``DETACH_SEQUENCE_START`` and ends with
        ``DETACH_SEQUENCE_END``.
    """
    limits = limits or machine_limits()

    x_min = max(limits.sweep_x_floor, min(config.sweep_x_min, config.sweep_x_max))
    x_max = max(limits.sweep_x_floor, max(config.sweep_x_min, config.sweep_x_max))
    y_front = limits.y_front
    y_max = max(y_front + limits.min_y_span, config.sweep_y_max)

    micro = float(config.z_offset_mm or 0)
    base_sweep = float(config.sweep_z or 2)
    eff_sweep = _z(base_sweep + micro, limits)

    bend_bottom = _z(config.bend_bottom_z, limits)
    bend_top = _z(config.bend_top_z, limits)
    bend_feed = _feed(config.bend_feed, limits)
    stroke_slow = _feed(config.sweep_feed_slow, limits)
    travel = limits.travel_feed

    lines = [DETACH_START]
    if config.safe_lift:
        lines += _lift(limits)

    lines += [
        f"; --- bend plate {config.bend_cycles}x between "
        f"Z{fmt(bend_bottom)} and Z{fmt(bend_top)} ---",
        "G90",
    ]
    for _ in range(max(0, int(config.bend_cycles))):
        lines.append(f"G1 Z{fmt(bend_bottom)} F{bend_feed}")
        lines.append(f"G1 Z{fmt(bend_top)} F{bend_feed}")

    lines += [
        f"; sweepZ={fmt(base_sweep)} zOffsetMm={fmt(micro)} effSweepZ={fmt(eff_sweep)}",
        "M400",
        "G90",
        f"G1 Z{fmt(eff_sweep)} F{limits.sweep_z_feed}",
        "; --- sweeps ---",
        "M106 S255" if config.fan_on else "M106 S0",
    ]

    cols = sweep_columns(x_min, x_max, config.sweep_step_x)

    # centering push: back-middle, front, back
    x_mid = (x_min + x_max) / 2
    lines += [
        f"G1 X{fmt(x_mid)} Y{fmt(y_max)} F{travel}",
        f"G1 Y{fmt(y_front)} F{stroke_slow}",
        f"G1 Y{fmt(y_max)} F{stroke_slow}",
    ]

    def raster(feed: float) -> None:
        stroke = _feed(feed, limits)
        for x in cols:
            lines.append(f"G1 X{fmt(x)} Y{fmt(y_max)} F{travel}")
            lines.append(f"G1 Y{fmt(y_front)} F{stroke}")
            lines.append(f"G1 Y{fmt(y_max)} F{stroke}")

    if config.sweeps_slow > 0:
        lines.append(f"; slow sweeps x{config.sweeps_slow} @ F{fmt(config.sweep_feed_slow)}")
        for _ in range(int(config.sweeps_slow)):
            raster(config.sweep_feed_slow)
    if config.sweeps_fast > 0:
        lines.append(f"; fast sweeps x{config.sweeps_fast} @ F{fmt(config.sweep_feed_fast)}")
        for _ in range(int(config.sweeps_fast)):
            raster(config.sweep_feed_fast)

    if config.fan_on:
        lines.append("M106 S0")
    if config.safe_lift:
        lines += _lift(limits)
    lines.append(DETACH_END)
    return lines
