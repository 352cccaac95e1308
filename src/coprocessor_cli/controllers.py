"""Controllers for cartesi-coprocessor CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from coprocessor_cli.config import Network, Settings
from coprocessor_cli.pipeline import Pipeline, PreconditionError, Toolbox
from coprocessor_cli.pipeline.deployment import load_deployment_records
from coprocessor_cli.pipeline.program import machine_hash, read_artifact
from coprocessor_cli.pipeline.workflows import (
    create_pipeline,
    deploy_pipeline,
    publish_status_pipeline,
    register_pipeline,
    start_devnet_pipeline,
    stop_devnet_pipeline,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CreateCommand:
    """CLI inputs for program bootstrap."""

    name: str
    template: str


@dataclass(slots=True)
class RegisterCommand:
    """CLI inputs for program registration."""

    network: str
    email: str | None = None


@dataclass(slots=True)
class DeployCommand:
    """CLI inputs for contract deployment."""

    network: str
    contract_name: str
    constructor_args: tuple[str, ...] = ()
    private_key: str | None = None
    rpc_url: str | None = None


@dataclass(slots=True)
class PublishStatusCommand:
    network: str
    upload_id: str


@dataclass(slots=True)
class AddressBookCommand:
    network: str = Network.DEVNET.value


@dataclass(slots=True)
class CommandResult:
    lines: list[str] = field(default_factory=list)
    success: bool = True


ToolboxFactory = Callable[[Settings], Toolbox]


class CoprocessorCliController:
    """Coordinates command execution: settings, pipeline assembly and rendering."""

    def __init__(
        self,
        *,
        project_dir: Path | None = None,
        toolbox_factory: ToolboxFactory | None = None,
    ) -> None:
        self._project_dir = project_dir
        self._toolbox_factory = toolbox_factory or Toolbox.from_settings

    def create(self, command: CreateCommand) -> CommandResult:
        return self._run(
            lambda toolbox: create_pipeline(
                toolbox,
                name=command.name,
                template=command.template,
            ),
        )

    def register(self, command: RegisterCommand) -> CommandResult:
        network = Network.parse(command.network)
        return self._run(lambda toolbox: register_pipeline(toolbox, network, email=command.email))

    def deploy(self, command: DeployCommand) -> CommandResult:
        network = Network.parse(command.network)
        return self._run(
            lambda toolbox: deploy_pipeline(
                toolbox,
                network,
                contract_name=command.contract_name,
                constructor_args=command.constructor_args,
                private_key=command.private_key,
                rpc_url=command.rpc_url,
            ),
        )

    def start_devnet(self) -> CommandResult:
        return self._run(start_devnet_pipeline)

    def stop_devnet(self) -> CommandResult:
        return self._run(stop_devnet_pipeline)

    def publish_status(self, command: PublishStatusCommand) -> CommandResult:
        network = Network.parse(command.network)
        return self._run(
            lambda toolbox: publish_status_pipeline(
                toolbox,
                network,
                upload_id=command.upload_id,
            ),
        )

    def address_book(self, command: AddressBookCommand) -> CommandResult:
        """Local artifacts and recorded deployments of the current project."""

        network = Network.parse(command.network)
        try:
            settings = self._settings()
        except ValueError as error:
            return CommandResult(lines=[f"Configuration error: {error}"], success=False)

        project = settings.project
        lines = [
            f"Project: {settings.project_dir}",
            f"Network: {network.value}",
            f"Solver: {settings.solver.url_for(network)}",
        ]
        artifacts: list[tuple[str, Callable[[], str]]] = [
            ("Machine hash", lambda: machine_hash(settings)),
            ("CID", lambda: read_artifact(settings, project.cid_file, "CID")),
            ("Size", lambda: read_artifact(settings, project.size_file, "SIZE")),
        ]
        for label, read in artifacts:
            lines.append(f"{label}: {_describe_artifact(read)}")
        if network is Network.DEVNET:
            lines.append(f"Devnet RPC: {settings.devnet.rpc_url}")
            lines.append(f"Devnet IPFS: {settings.solver.devnet_ipfs_url}")

        records = load_deployment_records(settings.project_path(project.history_dir))
        lines.append(f"Deployments: {len(records)}")
        for path, record in records:
            lines.append(
                f"  {path.name}: deployed_to={record.deployed_to or '-'} "
                f"deployer={record.deployer or '-'} "
                f"transaction_hash={record.transaction_hash or '-'} "
                f"rpc_url={record.rpc_url or '-'}",
            )
        return CommandResult(lines=lines, success=True)

    def _settings(self) -> Settings:
        settings = Settings.from_env(project_dir=self._project_dir)
        settings.validate()
        return settings

    def _run(self, build: Callable[[Toolbox], Pipeline]) -> CommandResult:
        try:
            settings = self._settings()
        except ValueError as error:
            return CommandResult(lines=[f"Configuration error: {error}"], success=False)
        pipeline = build(self._toolbox_factory(settings))
        result = pipeline.run()
        return CommandResult(lines=result.lines(), success=result.success)


def _describe_artifact(read: Callable[[], str]) -> str:
    try:
        return read()
    except PreconditionError as error:
        return f"unavailable ({error})"
