"""Stage pipelines that sequence supervised commands and solver calls."""

from coprocessor_cli.pipeline.engine import (
    FailureKind,
    Pipeline,
    PipelineResult,
    PipelineState,
    PreconditionError,
    Stage,
    StageResult,
)
from coprocessor_cli.pipeline.toolbox import Toolbox

__all__ = [
    "FailureKind",
    "Pipeline",
    "PipelineResult",
    "PipelineState",
    "PreconditionError",
    "Stage",
    "StageResult",
    "Toolbox",
]
