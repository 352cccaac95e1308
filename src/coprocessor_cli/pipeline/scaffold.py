"""Stages that bootstrap a new coprocessor program directory."""

from __future__ import annotations

import logging
from pathlib import Path

from coprocessor_cli.pipeline.engine import (
    PipelineState,
    PreconditionError,
    StageResult,
    stage_from_outcome,
)
from coprocessor_cli.pipeline.toolbox import Toolbox

logger = logging.getLogger(__name__)

BUILD_TAG = "BUILD"
FORGE_TAG = "FORGE"
PROGRAM_KEY = "program_dir"
CONTRACTS_DIR = "contracts"
CONTRACT_PATH = "src/MyContract.sol"

CONTRACT_TEMPLATE = """\
// SPDX-License-Identifier: UNLICENSED
pragma solidity ^0.8.13;

import "../lib/coprocessor-base-contract/src/CoprocessorAdapter.sol";

contract MyContract is CoprocessorAdapter {
    constructor(address _taskIssuerAddress, bytes32 _machineHash)
        CoprocessorAdapter(_taskIssuerAddress, _machineHash)
    {}

    function runExecution(bytes calldata input) external {
        callCoprocessor(input);
    }

    function handleNotice(bytes32 payloadHash, bytes memory notice) internal override {
        // Add logic for handling callback from coprocessor here
    }
}
"""


def create_template(
    toolbox: Toolbox,
    state: PipelineState,
    *,
    name: str,
    template: str,
) -> StageResult:
    stage = "CreateTemplate"
    program_dir = toolbox.settings.project_dir / name
    if program_dir.exists():
        raise PreconditionError(f"Directory '{program_dir}' already exists.")
    outcome = toolbox.networked(
        "cartesi",
        "create",
        name,
        f"--template={template}",
        "--branch",
        toolbox.settings.project.template_branch,
        name=BUILD_TAG,
    )
    state.put(PROGRAM_KEY, program_dir)
    return stage_from_outcome(
        stage,
        outcome,
        success_message=f"created {template} program template in {program_dir}",
        failure_message="Template creation process failed",
    )


def init_contracts(toolbox: Toolbox, state: PipelineState) -> StageResult:
    program_dir: Path = state.require(PROGRAM_KEY)
    outcome = toolbox.quick(
        "forge",
        "init",
        CONTRACTS_DIR,
        "--no-commit",
        name=FORGE_TAG,
        cwd=program_dir,
    )
    return stage_from_outcome(
        "InitContracts",
        outcome,
        success_message="initialized foundry project",
        failure_message="Error initializing a new forge project",
    )


def install_base_contract(toolbox: Toolbox, state: PipelineState) -> StageResult:
    program_dir: Path = state.require(PROGRAM_KEY)
    outcome = toolbox.networked(
        "forge",
        "install",
        toolbox.settings.project.base_contract_repo,
        "--no-commit",
        name=FORGE_TAG,
        cwd=program_dir / CONTRACTS_DIR,
    )
    return stage_from_outcome(
        "InstallBaseContract",
        outcome,
        success_message="installed coprocessor base contract",
        failure_message="Error installing base contract",
    )


def write_contract_template(toolbox: Toolbox, state: PipelineState) -> StageResult:
    program_dir: Path = state.require(PROGRAM_KEY)
    target = program_dir / CONTRACTS_DIR / CONTRACT_PATH
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(CONTRACT_TEMPLATE, encoding="utf-8")
    logger.debug("Wrote contract template to %s", target)
    return StageResult.success("WriteContractTemplate", f"created contract template {target}")
