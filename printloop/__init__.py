"""
printloop — repeat a sliced print N times inside its own ``.gcode.3mf``.

The plate G-code is split into its header / config / body blocks, purge
and prime moves are removed from the reusable body, and a generated
plate-detach sequence (bend + sweep + cooling) is appended after every
repetition.  The result is packed back into the original archive with
its CRC and MD5 sidecar updated and every other entry left untouched.
"""

__version__ = "0.3.0"
