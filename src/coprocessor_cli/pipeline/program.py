"""Build and containerize stages, plus access to the program's build artifacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from coprocessor_cli.config import Settings
from coprocessor_cli.pipeline.engine import (
    PipelineState,
    PreconditionError,
    StageResult,
    stage_from_outcome,
)
from coprocessor_cli.pipeline.toolbox import Toolbox

logger = logging.getLogger(__name__)

BUILD_TAG = "BUILD"
CONTAINER_TAG = "CONTAINER"


@dataclass(frozen=True, slots=True)
class ProgramArtifacts:
    """Identifiers the solver needs to register a built program."""

    cid: str
    size: str
    machine_hash: str

    @classmethod
    def load(cls, settings: Settings) -> ProgramArtifacts:
        return cls(
            cid=read_artifact(settings, settings.project.cid_file, "CID"),
            size=read_artifact(settings, settings.project.size_file, "SIZE"),
            machine_hash=machine_hash(settings),
        )


def require_file(settings: Settings, relative: str, label: str) -> Path:
    path = settings.project_path(relative)
    if not path.is_file():
        raise PreconditionError(f"{label} file '{path}' does not exist.")
    return path


def read_artifact(settings: Settings, relative: str, label: str) -> str:
    """Read a one-line artifact such as ``output.cid``; empty files are rejected."""

    value = require_file(settings, relative, label).read_text(encoding="utf-8").strip()
    if not value:
        raise PreconditionError(f"{label} file '{settings.project_path(relative)}' is empty.")
    return value


def machine_hash(settings: Settings) -> str:
    """Hex encoding of the raw machine hash written by ``cartesi build``."""

    raw = require_file(settings, settings.project.image_hash_file, "Machine hash").read_bytes()
    if not raw:
        raise PreconditionError("Machine hash file is empty; rebuild the program.")
    return raw.hex()


def build_program(toolbox: Toolbox, state: PipelineState) -> StageResult:
    with toolbox.progress("Building Cartesi Program..."):
        outcome = toolbox.networked("cartesi", "build", name=BUILD_TAG)
    return stage_from_outcome(
        "Build",
        outcome,
        success_message="Cartesi Program built successfully",
        failure_message="Build process failed",
    )


def containerize(toolbox: Toolbox, state: PipelineState) -> StageResult:
    """Turn the built machine image into ``output.car``/``output.cid``/``output.size``."""

    settings = toolbox.settings
    image_dir = settings.project_path(settings.project.image_dir)
    if not image_dir.is_dir():
        raise PreconditionError(f"Machine image directory '{image_dir}' does not exist.")
    with toolbox.progress("Generating CAR file..."):
        outcome = toolbox.networked(
            "docker",
            "run",
            "--rm",
            "-v",
            f"{image_dir}:/data",
            "-v",
            f"{settings.project_dir}:/output",
            settings.project.carize_image,
            "/carize.sh",
            name=CONTAINER_TAG,
        )
    return stage_from_outcome(
        "Containerize",
        outcome,
        success_message="CAR file generated successfully",
        failure_message="CAR file generation process failed",
    )
