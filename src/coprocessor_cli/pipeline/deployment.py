"""Contract deployment stages and the append-only deployment history."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path

from coprocessor_cli.config import Network, Settings
from coprocessor_cli.pipeline.engine import (
    PipelineState,
    PreconditionError,
    StageResult,
    stage_from_outcome,
)
from coprocessor_cli.pipeline.toolbox import Toolbox

logger = logging.getLogger(__name__)

FORGE_TAG = "FORGE"
TARGET_KEY = "deployment_target"
RECORD_KEY = "deployment"
HISTORY_PREFIX = "deployment_"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


@dataclass(frozen=True, slots=True)
class DeploymentTarget:
    network: Network
    rpc_url: str
    private_key: str


@dataclass(frozen=True, slots=True)
class DeploymentRecord:
    """One entry of ``deployment_history``; field names are the on-disk keys."""

    deployer: str
    deployed_to: str
    rpc_url: str
    transaction_hash: str


def resolve_target(
    settings: Settings,
    network: Network,
    *,
    private_key: str | None,
    rpc_url: str | None,
) -> DeploymentTarget:
    """Devnet falls back to the local anvil account; other networks need both values."""

    if network is Network.DEVNET:
        return DeploymentTarget(
            network=network,
            rpc_url=rpc_url or settings.devnet.rpc_url,
            private_key=private_key or settings.devnet.private_key,
        )
    if not private_key or not rpc_url:
        missing = [
            flag
            for flag, value in (("--private-key", private_key), ("--rpc-url", rpc_url))
            if not value
        ]
        raise PreconditionError(
            f"{' and '.join(missing)} required to deploy to {network.value}.",
        )
    return DeploymentTarget(network=network, rpc_url=rpc_url, private_key=private_key)


def parse_deployment_output(stdout_text: str, rpc_url: str) -> DeploymentRecord:
    """Pull ``Deployer:``/``Deployed to:``/``Transaction hash:`` out of ``forge create``."""

    fields = {"Deployer:": "", "Deployed to:": "", "Transaction hash:": ""}
    for line in stdout_text.splitlines():
        stripped = line.strip()
        for prefix in fields:
            if stripped.startswith(prefix) and not fields[prefix]:
                fields[prefix] = stripped[len(prefix) :].strip()
    return DeploymentRecord(
        deployer=fields["Deployer:"],
        deployed_to=fields["Deployed to:"],
        rpc_url=rpc_url,
        transaction_hash=fields["Transaction hash:"],
    )


def write_deployment_record(
    history_dir: Path,
    record: DeploymentRecord,
    *,
    now: datetime,
) -> Path:
    """Create a new history file; existing files are never overwritten."""

    history_dir.mkdir(parents=True, exist_ok=True)
    stem = f"{HISTORY_PREFIX}{now.strftime(TIMESTAMP_FORMAT)}"
    payload = json.dumps(asdict(record), indent=2)
    suffix = 0
    while True:
        name = f"{stem}.json" if suffix == 0 else f"{stem}_{suffix}.json"
        path = history_dir / name
        try:
            with path.open("x", encoding="utf-8") as handle:
                handle.write(payload)
        except FileExistsError:
            suffix += 1
            continue
        return path


def load_deployment_records(history_dir: Path) -> list[tuple[Path, DeploymentRecord]]:
    """Recorded deployments, oldest first; unreadable files are skipped with a warning."""

    if not history_dir.is_dir():
        return []
    records: list[tuple[Path, DeploymentRecord]] = []
    for path in sorted(history_dir.glob(f"{HISTORY_PREFIX}*.json")):
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            record = DeploymentRecord(
                deployer=str(payload.get("deployer", "")),
                deployed_to=str(payload.get("deployed_to", "")),
                rpc_url=str(payload.get("rpc_url", "")),
                transaction_hash=str(payload.get("transaction_hash", "")),
            )
        except (OSError, ValueError, AttributeError) as error:
            logger.warning("Skipping unreadable deployment record %s: %s", path, error)
            continue
        records.append((path, record))
    return records


def validate_target(
    toolbox: Toolbox,
    state: PipelineState,
    *,
    network: Network,
    private_key: str | None,
    rpc_url: str | None,
) -> StageResult:
    target = resolve_target(
        toolbox.settings,
        network,
        private_key=private_key,
        rpc_url=rpc_url,
    )
    state.put(TARGET_KEY, target)
    return StageResult.success(
        "ValidateTarget",
        f"deploying to {network.value} via {target.rpc_url}",
    )


def deploy_contract(
    toolbox: Toolbox,
    state: PipelineState,
    *,
    contract_name: str,
    constructor_args: Sequence[str] = (),
) -> StageResult:
    stage = "DeployContract"
    target: DeploymentTarget = state.require(TARGET_KEY)
    args = [
        "create",
        contract_name,
        "--rpc-url",
        target.rpc_url,
        "--private-key",
        target.private_key,
        "--broadcast",
    ]
    if constructor_args:
        args.extend(["--constructor-args", *constructor_args])

    with toolbox.progress(f"Deploying {contract_name}..."):
        outcome = toolbox.networked("forge", *args, name=FORGE_TAG, capture_stdout=True)
    result = stage_from_outcome(
        stage,
        outcome,
        success_message=f"{contract_name} deployed",
        failure_message="Failed to deploy contract with Forge",
    )
    if not result.ok:
        return result

    record = parse_deployment_output(outcome.stdout_text, target.rpc_url)
    if not record.deployed_to:
        logger.warning("forge output did not include a deployed address")
    state.put(RECORD_KEY, record)
    address = record.deployed_to or "unknown"
    return StageResult.success(stage, f"{contract_name} deployed to {address}")


def record_deployment(
    toolbox: Toolbox,
    state: PipelineState,
    *,
    clock: Callable[[], datetime] = datetime.now,
) -> StageResult:
    record: DeploymentRecord = state.require(RECORD_KEY)
    settings = toolbox.settings
    path = write_deployment_record(
        settings.project_path(settings.project.history_dir),
        record,
        now=clock(),
    )
    state.put("deployment_file", path)
    return StageResult.success("RecordDeployment", f"deployment info saved to {path}")
