"""G-code stages — split, clean, loop.

Submodules:
  structure  HEADER/CONFIG block splitter and the loose START/END splitter.
  purge      Flush / wipe / line-purge / nozzle-load-line removal.
  detach     Bend + sweep sequence emitted between loops.
  loop       Loop assembly, cooling block and bed-temperature hold.
  inspect    Recover settings from an already looped file.
"""

from .structure import (
    SplitDocument, PrintRegion, MissingMarkers,
    split_blocks, parse_print_region, make_looped_gcode, detect_eol,
)
from .purge import (
    Removal, PurgeResult, PurgeStage, PURGE_STAGES,
    strip_purge_blocks, strip_purge_text, strip_purge_from_start, strip_nozzle_load_line,
)
from .detach import CoolingConfig, DetachConfig, build_detach_sequence, sweep_columns, fmt
from .loop import assemble_looped, cooling_lines, adjust_bed_hold, apply_detach_cooling
from .inspect import detect_defaults, summarize

__all__ = [
    # Structure
    "SplitDocument", "PrintRegion", "MissingMarkers",
    "split_blocks", "parse_print_region", "make_looped_gcode", "detect_eol",
    # Purge
    "Removal", "PurgeResult", "PurgeStage", "PURGE_STAGES",
    "strip_purge_blocks", "strip_purge_text", "strip_purge_from_start",
    "strip_nozzle_load_line",
    # Detach / loop
    "CoolingConfig", "DetachConfig", "build_detach_sequence", "sweep_columns", "fmt",
    "assemble_looped", "cooling_lines", "adjust_bed_hold", "apply_detach_cooling",
    # Inspection
    "detect_defaults", "summarize",
]
