"""Stages that hand a built program to the solver on each network."""

from __future__ import annotations

import logging

from coprocessor_cli.classifier import failure_hint
from coprocessor_cli.pipeline.engine import (
    FailureKind,
    PipelineState,
    PreconditionError,
    StageResult,
    stage_from_poll,
    stage_from_solver_error,
)
from coprocessor_cli.pipeline.program import ProgramArtifacts, require_file
from coprocessor_cli.pipeline.toolbox import Toolbox
from coprocessor_cli.remote import (
    RemoteJobState,
    SolverError,
    UploadTicket,
    classify_ensure_response,
    classify_publish_status,
)

logger = logging.getLogger(__name__)

TICKET_KEY = "upload_ticket"


def await_registration(toolbox: Toolbox, state: PipelineState, *, base_url: str) -> StageResult:
    """Poll ``ensure`` until the solver reports the program ready."""

    stage = "AwaitRegistration"
    artifacts = ProgramArtifacts.load(toolbox.settings)
    state.put("artifacts", artifacts)
    logger.info("Machine hash: %s", artifacts.machine_hash)

    with (
        toolbox.solver(base_url) as solver,
        toolbox.progress("Registering program with coprocessor...") as progress,
    ):
        job = RemoteJobState(
            job_id=artifacts.cid,
            url=solver.ensure_url(
                cid=artifacts.cid,
                machine_hash=artifacts.machine_hash,
                size=artifacts.size,
            ),
        )
        result = toolbox.poller(
            lambda _job: solver.ensure(
                cid=artifacts.cid,
                machine_hash=artifacts.machine_hash,
                size=artifacts.size,
            ),
        ).poll_until_done(
            job,
            classify_ensure_response,
            progress=progress,
            waiting_message="Waiting for solver to finish setup...",
            retry_http_errors=True,
        )
    if result.ready:
        logger.info("Solver response: %s", result.body.strip())
    return stage_from_poll(
        stage,
        result,
        success_message=f"program {artifacts.cid} registered with coprocessor",
    )


def await_import(
    toolbox: Toolbox,
    state: PipelineState,
    *,
    base_url: str,
    upload_id: str | None = None,
) -> StageResult:
    """Poll ``publish_status`` until the solver has imported the uploaded DAG."""

    stage = "AwaitImport"
    if upload_id is None:
        ticket: UploadTicket = state.require(TICKET_KEY)
        upload_id = ticket.upload_id

    with (
        toolbox.solver(base_url) as solver,
        toolbox.progress("Waiting for solver to import the upload...") as progress,
    ):
        job = RemoteJobState(job_id=upload_id, url=solver.publish_status_url(upload_id))
        result = toolbox.poller(
            lambda current: solver.publish_status(current.job_id),
        ).poll_until_done(job, classify_publish_status, progress=progress)
    return stage_from_poll(stage, result, success_message=f"DAG for upload {upload_id} imported")


def request_upload(toolbox: Toolbox, state: PipelineState, *, base_url: str) -> StageResult:
    stage = "RequestUpload"
    with toolbox.solver(base_url) as solver:
        try:
            ticket = solver.request_upload()
        except SolverError as error:
            return stage_from_solver_error(stage, error)
    state.put(TICKET_KEY, ticket)
    return StageResult.success(stage, f"received upload id {ticket.upload_id}")


def upload_to_presigned_url(
    toolbox: Toolbox,
    state: PipelineState,
    *,
    base_url: str,
) -> StageResult:
    stage = "UploadToPresignedUrl"
    settings = toolbox.settings
    car_path = require_file(settings, settings.project.car_file, "CAR")
    ticket: UploadTicket = state.require(TICKET_KEY)
    with toolbox.solver(base_url) as solver, toolbox.progress("Uploading CAR file..."):
        try:
            solver.upload_car(ticket, car_path)
        except SolverError as error:
            return stage_from_solver_error(stage, error)
        except OSError as error:
            raise PreconditionError(f"CAR file '{car_path}' could not be read: {error}") from error
    return StageResult.success(stage, "File uploaded successfully")


def publish_upload(toolbox: Toolbox, state: PipelineState, *, base_url: str) -> StageResult:
    stage = "PublishUpload"
    ticket: UploadTicket = state.require(TICKET_KEY)
    with toolbox.solver(base_url) as solver, toolbox.progress("Publishing upload Id..."):
        try:
            solver.publish(ticket.upload_id)
        except SolverError as error:
            return stage_from_solver_error(stage, error)
    return StageResult.success(stage, f"upload {ticket.upload_id} published")


def import_car(toolbox: Toolbox, state: PipelineState) -> StageResult:
    """Devnet only: import the CAR file into the local IPFS node."""

    stage = "ImportCar"
    settings = toolbox.settings
    car_path = require_file(settings, settings.project.car_file, "CAR")
    with (
        toolbox.ipfs(settings.solver.devnet_ipfs_url) as ipfs,
        toolbox.progress("Uploading CAR file to devnet IPFS..."),
    ):
        result = ipfs.dag_import(car_path)
    if result.is_success:
        return StageResult.success(stage, "CAR file imported into devnet IPFS")

    error_text = result.error or "request failed"
    failure = FailureKind.UNREACHABLE if result.status_code == 0 else FailureKind.REJECTED
    return StageResult.failed(
        stage,
        failure,
        f"IPFS import failed: {error_text}",
        hint=failure_hint(f"{error_text}\n{result.content}"),
        details=result.content.strip()[:400],
    )
