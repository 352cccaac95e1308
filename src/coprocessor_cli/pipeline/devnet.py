"""Stages that bring the local coprocessor devnet up and down."""

from __future__ import annotations

import logging
from pathlib import Path

from coprocessor_cli.classifier import OutputCondition, classify_output
from coprocessor_cli.pipeline.engine import (
    PipelineState,
    PreconditionError,
    StageResult,
    stage_from_outcome,
)
from coprocessor_cli.pipeline.toolbox import Toolbox
from coprocessor_cli.process import ProcessOutcome

logger = logging.getLogger(__name__)

VCS_TAG = "VCS"
COMPOSE_TAG = "COMPOSE"
REPO_KEY = "repo_dir"

_BEHIND = frozenset({OutputCondition.BRANCH_BEHIND_REMOTE})
_EXISTS = frozenset({OutputCondition.BRANCH_ALREADY_EXISTS})


def clone_or_update_repo(toolbox: Toolbox, state: PipelineState) -> StageResult:
    stage = "CloneOrUpdateRepo"
    devnet = toolbox.settings.devnet
    repo = devnet.repo_dir
    state.put(REPO_KEY, repo)

    if not (repo / ".git").is_dir():
        repo.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Cloning %s into %s", devnet.repo_url, repo)
        clone = toolbox.networked(
            "git",
            "clone",
            devnet.repo_url,
            str(repo),
            name=VCS_TAG,
            cwd=repo.parent,
        )
        return stage_from_outcome(
            stage,
            clone,
            success_message=f"cloned coprocessor repository into {repo}",
            failure_message="Failed to clone coprocessor repository",
        )

    fetch = toolbox.quick("git", "fetch", "origin", name=VCS_TAG, cwd=repo)
    if not fetch.succeeded:
        return stage_from_outcome(
            stage,
            fetch,
            success_message="",
            failure_message="Failed to fetch repository updates",
        )
    status = toolbox.quick("git", "status", name=VCS_TAG, cwd=repo, capture_stdout=True)
    if not status.succeeded:
        return stage_from_outcome(
            stage,
            status,
            success_message="",
            failure_message="Failed to check repository status",
        )
    if classify_output(status.stdout_text, conditions=_BEHIND) is None:
        return StageResult.success(stage, f"repository at {repo} is up to date")

    logger.info("Updates are available. Pulling latest changes...")
    pull = toolbox.networked(
        "git",
        "pull",
        "origin",
        devnet.release_branch,
        name=VCS_TAG,
        cwd=repo,
    )
    return stage_from_outcome(
        stage,
        pull,
        success_message=f"pulled latest changes from origin/{devnet.release_branch}",
        failure_message=f"Failed to pull latest changes from origin/{devnet.release_branch}",
    )


def switch_to_release_branch(toolbox: Toolbox, state: PipelineState) -> StageResult:
    """Track the release branch; an existing local branch is checked out instead."""

    stage = "SwitchToReleaseBranch"
    repo: Path = state.require(REPO_KEY)
    branch = toolbox.settings.devnet.release_branch

    created = toolbox.quick(
        "git",
        "checkout",
        "-b",
        branch,
        f"origin/{branch}",
        name=VCS_TAG,
        cwd=repo,
    )
    if created.succeeded:
        return StageResult.success(stage, f"created branch {branch} from origin/{branch}")
    if created.timed_out or classify_output(created.combined_text, conditions=_EXISTS) is None:
        return stage_from_outcome(
            stage,
            created,
            success_message="",
            failure_message=f"Failed to switch to branch {branch}",
        )

    logger.info("Branch %s already exists; checking it out", branch)
    existing = toolbox.quick("git", "checkout", branch, name=VCS_TAG, cwd=repo)
    return stage_from_outcome(
        stage,
        existing,
        success_message=f"checked out existing branch {branch}",
        failure_message=f"Failed to check out branch {branch}",
    )


def sync_submodules(toolbox: Toolbox, state: PipelineState) -> StageResult:
    repo: Path = state.require(REPO_KEY)
    with toolbox.progress("Updating submodules..."):
        outcome = toolbox.unbounded(
            "git",
            "submodule",
            "update",
            "--init",
            "--recursive",
            name=VCS_TAG,
            cwd=repo,
        )
    return stage_from_outcome(
        "SyncSubmodules",
        outcome,
        success_message="submodules updated",
        failure_message="Failed to update submodules",
    )


def build_containers(toolbox: Toolbox, state: PipelineState) -> StageResult:
    with toolbox.progress("Building devnet containers..."):
        outcome = _compose(toolbox, state, "build", unbounded=True)
    return stage_from_outcome(
        "BuildContainers",
        outcome,
        success_message="devnet containers built",
        failure_message="Failed to build devnet containers",
    )


def pull_containers(toolbox: Toolbox, state: PipelineState) -> StageResult:
    with toolbox.progress("Pulling devnet images..."):
        outcome = _compose(toolbox, state, "pull", unbounded=True)
    return stage_from_outcome(
        "PullContainers",
        outcome,
        success_message="devnet images pulled",
        failure_message="Failed to pull devnet images",
    )


def compose_up(toolbox: Toolbox, state: PipelineState) -> StageResult:
    with toolbox.progress("Starting devnet containers..."):
        outcome = _compose(toolbox, state, "up", "--wait", "-d")
    return stage_from_outcome(
        "ComposeUp",
        outcome,
        success_message="Cartesi-Coprocessor devnet environment started",
        failure_message="Failed to start devnet containers",
    )


def locate_repo(toolbox: Toolbox, state: PipelineState) -> StageResult:
    devnet = toolbox.settings.devnet
    compose_file = devnet.repo_dir / devnet.compose_file
    if not compose_file.is_file():
        raise PreconditionError(
            f"Devnet compose file '{compose_file}' not found; run start-devnet first.",
        )
    state.put(REPO_KEY, devnet.repo_dir)
    return StageResult.success("LocateRepo", f"found devnet checkout at {devnet.repo_dir}")


def compose_down(toolbox: Toolbox, state: PipelineState) -> StageResult:
    with toolbox.progress("Stopping devnet containers..."):
        outcome = _compose(toolbox, state, "down", "-v")
    return stage_from_outcome(
        "ComposeDown",
        outcome,
        success_message="Cartesi-Coprocessor devnet environment stopped",
        failure_message="Failed to stop devnet containers",
    )


def _compose(
    toolbox: Toolbox,
    state: PipelineState,
    *args: str,
    unbounded: bool = False,
) -> ProcessOutcome:
    repo: Path = state.require(REPO_KEY)
    run = toolbox.unbounded if unbounded else toolbox.networked
    return run(
        "docker",
        "compose",
        "-f",
        toolbox.settings.devnet.compose_file,
        *args,
        name=COMPOSE_TAG,
        cwd=repo,
    )
