"""
printloop — entry point.

Usage:
    python -m printloop build part.gcode.3mf --loops 5
    python -m printloop build part.gcode --loops 3 --settings detach.json -o out.gcode.3mf
    python -m printloop inspect part__loopx5.gcode.3mf
    python -m printloop serve --port 3000
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import fields, replace
from pathlib import Path

from printloop.archive import ArchiveError, build_minimal_archive, extract_instruction, list_entries
from printloop.gcode.detach import DetachConfig
from printloop.gcode.inspect import detect_defaults, summarize
from printloop.gcode.structure import MissingMarkers
from printloop.pipeline import LoopPlan, build_looped_archive, looped_filename

log = logging.getLogger("printloop.main")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="printloop",
        description="Repeat a Bambu .gcode.3mf print with an automatic plate-detach sequence",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    b = sub.add_parser("build", help="Write a looped .gcode.3mf")
    b.add_argument("input", help="Sliced .gcode.3mf (or plain .gcode)")
    b.add_argument("-o", "--out", default=None, help="Output path (default: <stem>__loopx<N>.gcode.3mf)")
    b.add_argument("--loops", type=int, default=1, help="Number of prints")
    b.add_argument("--plate", type=int, default=1, help="Plate number inside the archive")
    b.add_argument("--hold-bed", type=float, default=None, help="Rewrite bed temperature holds to this (C)")
    b.add_argument("--settings", default=None, help="JSON file with detach settings")
    b.add_argument("--no-strip", action="store_true", help="Keep flush / wipe / prime-line blocks")

    i = sub.add_parser("inspect", help="List entries and detected loop settings")
    i.add_argument("input", help=".gcode.3mf to inspect")
    i.add_argument("--plate", type=int, default=1, help="Plate number inside the archive")

    sv = sub.add_parser("serve", help="Start the web server")
    sv.add_argument("--host", default="127.0.0.1", help="Host to bind")
    sv.add_argument("--port", type=int, default=8000, help="Port to bind")

    return p


def load_detach_settings(path: Path) -> DetachConfig:
    """:class:`DetachConfig` with the fields named in a JSON object."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: detach settings must be a JSON object")
    known = {f.name for f in fields(DetachConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        log.warning("Ignoring unknown detach settings: %s", ", ".join(unknown))
    return replace(DetachConfig(), **{k: v for k, v in data.items() if k in known})


def _read_archive(path: Path, plate: int) -> bytes:
    data = path.read_bytes()
    if data.startswith(b"PK"):
        return data
    log.info("%s is not an archive — wrapping it as plate %d", path.name, plate)
    return build_minimal_archive(plate, data)


def _build(args) -> int:
    src = Path(args.input)
    detach = load_detach_settings(Path(args.settings)) if args.settings else DetachConfig()
    plan = LoopPlan(
        loop_count=args.loops,
        detach=detach,
        plate_index=args.plate,
        hold_bed_c=args.hold_bed,
        strip_purge=not args.no_strip,
    )
    result = build_looped_archive(_read_archive(src, plan.plate_index), plan)

    out = Path(args.out) if args.out else src.with_name(looped_filename(src.name, plan.loop_count))
    out.write_bytes(result.archive)
    for stage in result.stages:
        print(f"  {stage}")
    print(f"✅ Wrote {out} ({len(result.archive)} bytes)")
    return 0


def _inspect(args) -> int:
    data = Path(args.input).read_bytes()
    for e in list_entries(data):
        print(f"  {e.name:<48} method={int(e.method)} {e.compressed_size:>10} → {e.uncompressed_size:>10}")
    name, text = extract_instruction(data, args.plate)
    print(f"Instruction: {name}")
    print(json.dumps({"defaults": detect_defaults(text), "layout": summarize(text)}, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "serve":
        from printloop.web.server import main as serve_main
        serve_main(host=args.host, port=args.port)
        return 0

    try:
        if args.cmd == "build":
            return _build(args)
        if args.cmd == "inspect":
            return _inspect(args)
    except (ArchiveError, MissingMarkers, OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 2


if __name__ == "__main__":
    sys.exit(main())
