"""Ordered, short-circuiting pipelines of named stages."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from coprocessor_cli.classifier import failure_hint
from coprocessor_cli.process import OutcomeKind, ProcessOutcome, SpawnError
from coprocessor_cli.remote import PollResult, PollTermination, SolverError

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    """Operator-facing failure categories."""

    DEPENDENCY_MISSING = "dependency_missing"
    PRECONDITION = "precondition"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"
    REMOTE_REJECTED = "remote_rejected"
    REMOTE_INCOMPLETE = "remote_incomplete"
    UNREACHABLE = "unreachable"


FAILURE_HEADLINES: dict[FailureKind, str] = {
    FailureKind.DEPENDENCY_MISSING: "Dependency missing",
    FailureKind.PRECONDITION: "Missing prerequisite",
    FailureKind.REJECTED: "External tool rejected the operation",
    FailureKind.TIMED_OUT: "Operation timed out",
    FailureKind.REMOTE_REJECTED: "Remote service rejected the job",
    FailureKind.REMOTE_INCOMPLETE: "Remote service never completed",
    FailureKind.UNREACHABLE: "Remote service unreachable",
}


class PreconditionError(RuntimeError):
    """A required file or argument is missing; never retried."""


@dataclass(frozen=True, slots=True)
class StageResult:
    """Outcome of one pipeline stage."""

    stage: str
    ok: bool
    message: str
    failure: FailureKind | None = None
    hint: str | None = None
    skipped: bool = False
    details: str = ""

    @classmethod
    def success(cls, stage: str, message: str, *, skipped: bool = False) -> StageResult:
        return cls(stage=stage, ok=True, message=message, skipped=skipped)

    @classmethod
    def failed(
        cls,
        stage: str,
        failure: FailureKind,
        message: str,
        *,
        hint: str | None = None,
        details: str = "",
    ) -> StageResult:
        return cls(
            stage=stage,
            ok=False,
            message=message,
            failure=failure,
            hint=hint,
            details=details,
        )

    def render(self) -> list[str]:
        if self.ok:
            prefix = "skipped" if self.skipped else "ok"
            return [f"[{prefix}] {self.stage}: {self.message}"]
        assert self.failure is not None
        lines = [f"[failed] {self.stage}: {FAILURE_HEADLINES[self.failure]}: {self.message}"]
        if self.details:
            lines.append(f"  details: {self.details}")
        if self.hint:
            lines.append(f"  hint: {self.hint}")
        return lines


@dataclass(slots=True)
class PipelineState:
    """Values handed from one stage to the next within a single run."""

    values: dict[str, Any] = field(default_factory=dict)

    def put(self, key: str, value: Any) -> None:
        self.values[key] = value

    def require(self, key: str) -> Any:
        try:
            return self.values[key]
        except KeyError as error:
            raise PreconditionError(f"Pipeline value {key!r} was not produced.") from error


StageFn = Callable[[PipelineState], StageResult]


@dataclass(frozen=True, slots=True)
class Stage:
    name: str
    run: StageFn


@dataclass(slots=True)
class PipelineResult:
    """Per-stage results of one pipeline run."""

    pipeline: str
    stages: list[StageResult] = field(default_factory=list)
    state: PipelineState = field(default_factory=PipelineState)

    @property
    def success(self) -> bool:
        return all(result.ok for result in self.stages)

    @property
    def failed_stage(self) -> StageResult | None:
        for result in self.stages:
            if not result.ok:
                return result
        return None

    def lines(self) -> list[str]:
        rendered: list[str] = []
        for result in self.stages:
            rendered.extend(result.render())
        status = "succeeded" if self.success else "failed"
        rendered.append(f"Pipeline {self.pipeline}: {status}")
        return rendered


class Pipeline:
    """Run stages in order; the first failed stage stops the run (no rollback)."""

    def __init__(self, name: str, stages: Sequence[Stage]) -> None:
        self.name = name
        self.stages = tuple(stages)

    def run(self, state: PipelineState | None = None) -> PipelineResult:
        result = PipelineResult(pipeline=self.name, state=state or PipelineState())
        for stage in self.stages:
            logger.info("%s: %s", self.name, stage.name)
            stage_result = _run_stage(stage, result.state)
            result.stages.append(stage_result)
            if not stage_result.ok:
                logger.error(
                    "%s stopped at %s: %s",
                    self.name,
                    stage.name,
                    stage_result.message,
                )
                break
        return result


def _run_stage(stage: Stage, state: PipelineState) -> StageResult:
    try:
        return stage.run(state)
    except SpawnError as error:
        if error.missing:
            return StageResult.failed(
                stage.name,
                FailureKind.DEPENDENCY_MISSING,
                str(error),
                hint=f"Install {error.executable} and make sure it is on PATH.",
            )
        return StageResult.failed(stage.name, FailureKind.REJECTED, str(error))
    except PreconditionError as error:
        return StageResult.failed(stage.name, FailureKind.PRECONDITION, str(error))


def stage_from_outcome(
    stage: str,
    outcome: ProcessOutcome,
    *,
    success_message: str,
    failure_message: str,
) -> StageResult:
    """Map a supervised process outcome onto a stage result."""

    if outcome.kind is OutcomeKind.SUCCEEDED:
        return StageResult.success(stage, success_message)
    hint = outcome.action_hint or failure_hint(outcome.combined_text)
    if outcome.kind is OutcomeKind.TIMED_OUT:
        return StageResult.failed(
            stage,
            FailureKind.TIMED_OUT,
            f"{failure_message} ({outcome.name} killed after {outcome.elapsed_seconds:.0f}s)",
            hint=hint,
        )
    return StageResult.failed(
        stage,
        FailureKind.REJECTED,
        f"{failure_message} ({outcome.name} exit code {outcome.exit_code})",
        hint=hint,
        details=_tail(outcome.stderr_text),
    )


def stage_from_poll(
    stage: str,
    result: PollResult,
    *,
    success_message: str,
) -> StageResult:
    """Map a remote job poll result onto a stage result."""

    if result.termination is PollTermination.READY:
        return StageResult.success(stage, success_message)
    if result.termination is PollTermination.REJECTED:
        return StageResult.failed(
            stage,
            FailureKind.REMOTE_REJECTED,
            f"job {result.job_id} failed on the solver, please check the logs",
            details=_tail(result.body),
        )
    if result.termination is PollTermination.EXHAUSTED:
        return StageResult.failed(
            stage,
            FailureKind.REMOTE_INCOMPLETE,
            f"solver failed to finish setup after {result.retries} retries",
            details=_tail(result.body),
        )
    if result.termination is PollTermination.HTTP_ERROR:
        return StageResult.failed(
            stage,
            FailureKind.REJECTED,
            f"solver answered {result.error or 'an error'} for job {result.job_id}",
            details=_tail(result.body),
        )
    error_text = result.error or "request failed"
    return StageResult.failed(
        stage,
        FailureKind.UNREACHABLE,
        error_text,
        hint=failure_hint(f"{error_text}\n{result.body}"),
        details=_tail(result.body),
    )


def _tail(text: str, *, limit: int = 400) -> str:
    compact = text.strip()
    if len(compact) <= limit:
        return compact
    return "..." + compact[-limit:]


def stage_from_solver_error(stage: str, error: SolverError) -> StageResult:
    """Map a failed one-shot solver request onto a stage result."""

    if error.unreachable:
        return StageResult.failed(
            stage,
            FailureKind.UNREACHABLE,
            str(error),
            hint=failure_hint(str(error)),
        )
    return StageResult.failed(
        stage,
        FailureKind.REJECTED,
        str(error),
        details=_tail(error.body),
    )
