"""
FastAPI web server — upload a sliced ``.gcode.3mf``, download it looped.
"""

from __future__ import annotations

import json
import logging
from typing import Literal

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field, ValidationError

from printloop import __version__
from printloop.archive import ArchiveError, extract_instruction, list_entries
from printloop.gcode.detach import DetachConfig
from printloop.gcode.inspect import detect_defaults, summarize
from printloop.gcode.structure import MissingMarkers, split_lines
from printloop.pipeline import LoopPlan, build_looped_archive, looped_filename

log = logging.getLogger("printloop.web.server")

PREVIEW_LINES = 120

_DEFAULT = DetachConfig()

# ── App ────────────────────────────────────────────────────────────

app = FastAPI(title="printloop", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Printloop-Stages"],
)


# ── Models ─────────────────────────────────────────────────────────

class DetachSettings(BaseModel):
    z_offset_mm: float = Field(_DEFAULT.z_offset_mm, ge=0)
    sweep_z: float = Field(_DEFAULT.sweep_z, ge=0)
    fan_on: bool = _DEFAULT.fan_on
    home_between: bool = _DEFAULT.home_between
    safe_lift: bool = _DEFAULT.safe_lift

    cool_mode: Literal["temp", "time"] = "temp"
    cool_temp_c: float = Field(_DEFAULT.cool_temp_c, ge=0)
    cool_seconds: float = Field(_DEFAULT.cool_seconds, ge=0)

    sweeps_slow: int = Field(_DEFAULT.sweeps_slow, ge=0)
    sweeps_fast: int = Field(_DEFAULT.sweeps_fast, ge=0)
    sweep_feed_slow: float = Field(_DEFAULT.sweep_feed_slow, ge=1)
    sweep_feed_fast: float = Field(_DEFAULT.sweep_feed_fast, ge=1)
    sweep_step_x: float = Field(_DEFAULT.sweep_step_x, ge=1)
    sweep_y_max: float = Field(_DEFAULT.sweep_y_max, ge=100)
    sweep_x_min: float = Field(_DEFAULT.sweep_x_min, ge=0)
    sweep_x_max: float = Field(_DEFAULT.sweep_x_max, ge=50)

    bend_top_z: float = Field(_DEFAULT.bend_top_z, ge=0)
    bend_bottom_z: float = Field(_DEFAULT.bend_bottom_z, ge=0)
    bend_cycles: int = Field(_DEFAULT.bend_cycles, ge=0)
    bend_feed: float = Field(_DEFAULT.bend_feed, ge=1)

    def to_config(self) -> DetachConfig:
        return DetachConfig(**self.model_dump())


class BuildSettings(BaseModel):
    loops: int = Field(1, ge=1)
    plate_index: int = Field(1, ge=1)
    hold_bed_c: float | None = None
    strip_purge: bool = True
    detach: DetachSettings = Field(default_factory=DetachSettings)

    def to_plan(self) -> LoopPlan:
        return LoopPlan(
            loop_count=self.loops,
            detach=self.detach.to_config(),
            plate_index=self.plate_index,
            hold_bed_c=self.hold_bed_c,
            strip_purge=self.strip_purge,
        )


def _parse_settings(raw: str) -> BuildSettings:
    try:
        return BuildSettings.model_validate_json(raw or "{}")
    except ValidationError as exc:
        raise HTTPException(422, json.loads(exc.json(include_url=False)))


def _header_safe(text: str) -> str:
    return text.replace("\r", " ").replace("\n", " ").encode("ascii", "replace").decode("ascii")


# ── Routes ─────────────────────────────────────────────────────────

@app.get("/api/defaults")
def get_defaults():
    return BuildSettings().model_dump()


@app.post("/api/inspect")
def inspect_archive(file: UploadFile = File(...), plate_index: int = Form(1)):
    """Entries, detected loop settings and a short preview of the plate G-code."""
    data = file.file.read()
    try:
        entries = list_entries(data)
        name, text = extract_instruction(data, plate_index)
    except ArchiveError as exc:
        raise HTTPException(400, str(exc))

    return {
        "filename": file.filename,
        "entries": [
            {
                "name": e.name,
                "method": int(e.method),
                "compressed_size": e.compressed_size,
                "uncompressed_size": e.uncompressed_size,
            }
            for e in entries
        ],
        "instruction": name,
        "defaults": detect_defaults(text),
        "layout": summarize(text),
        "preview": split_lines(text)[:PREVIEW_LINES],
    }


@app.post("/api/build")
def build_archive(file: UploadFile = File(...), settings: str = Form("{}")):
    """Looped archive as a download; the stage log rides in a header."""
    plan = _parse_settings(settings).to_plan()
    data = file.file.read()
    try:
        result = build_looped_archive(data, plan)
    except (ArchiveError, MissingMarkers) as exc:
        log.warning("Build of %s failed: %s", file.filename, exc)
        raise HTTPException(400, str(exc))

    filename = looped_filename(file.filename or "plate.gcode.3mf", plan.loop_count)
    return Response(
        content=result.archive,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{_header_safe(filename)}"',
            "X-Printloop-Stages": _header_safe(" | ".join(result.stages)),
        },
    )


# ── Entry point ────────────────────────────────────────────────────

def main(host: str = "127.0.0.1", port: int = 8000):
    import uvicorn
    uvicorn.run("printloop.web.server:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
