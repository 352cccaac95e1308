"""Stage chains for every CLI command."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from functools import partial
from typing import Any

from coprocessor_cli.config import Network
from coprocessor_cli.pipeline import deployment, devnet, program, registration, scaffold, storage
from coprocessor_cli.pipeline.dependencies import (
    CREATE_TOOLS,
    DEPLOY_TOOLS,
    DEVNET_TOOLS,
    REGISTER_TOOLS,
    check_dependencies,
)
from coprocessor_cli.pipeline.engine import Pipeline, Stage, StageResult
from coprocessor_cli.pipeline.toolbox import Toolbox


def _stage(
    name: str,
    toolbox: Toolbox,
    fn: Callable[..., StageResult],
    **kwargs: Any,
) -> Stage:
    return Stage(name=name, run=partial(fn, toolbox, **kwargs))


def _dependencies(toolbox: Toolbox, tools: Sequence[str]) -> Stage:
    return _stage("CheckDependencies", toolbox, check_dependencies, tools=tools)


def register_pipeline(toolbox: Toolbox, network: Network, *, email: str | None) -> Pipeline:
    """Build, package, store and register the program in the current directory."""

    solver_url = toolbox.settings.solver.url_for(network)
    stages = [
        _dependencies(toolbox, REGISTER_TOOLS[network]),
    ]
    if network is Network.MAINNET:
        stages.append(
            _stage("EnsureLoggedIn", toolbox, storage.ensure_logged_in, email=email or ""),
        )
    stages.extend(
        [
            _stage("Build", toolbox, program.build_program),
            _stage("Containerize", toolbox, program.containerize),
        ],
    )
    if network is Network.MAINNET:
        stages.extend(
            [
                _stage("ProvisionStorage", toolbox, storage.provision_storage),
                _stage("Upload", toolbox, storage.upload_car),
            ],
        )
    elif network is Network.TESTNET:
        stages.extend(
            [
                _stage("RequestUpload", toolbox, registration.request_upload, base_url=solver_url),
                _stage(
                    "UploadToPresignedUrl",
                    toolbox,
                    registration.upload_to_presigned_url,
                    base_url=solver_url,
                ),
                _stage("PublishUpload", toolbox, registration.publish_upload, base_url=solver_url),
                _stage("AwaitImport", toolbox, registration.await_import, base_url=solver_url),
            ],
        )
    else:
        stages.append(_stage("ImportCar", toolbox, registration.import_car))
    stages.append(
        _stage("AwaitRegistration", toolbox, registration.await_registration, base_url=solver_url),
    )
    return Pipeline(f"register ({network.value})", stages)


def publish_status_pipeline(toolbox: Toolbox, network: Network, *, upload_id: str) -> Pipeline:
    solver_url = toolbox.settings.solver.url_for(network)
    return Pipeline(
        f"publish-status ({network.value})",
        [
            _stage(
                "AwaitImport",
                toolbox,
                registration.await_import,
                base_url=solver_url,
                upload_id=upload_id,
            ),
        ],
    )


def start_devnet_pipeline(toolbox: Toolbox) -> Pipeline:
    return Pipeline(
        "start-devnet",
        [
            _dependencies(toolbox, DEVNET_TOOLS),
            _stage("CloneOrUpdateRepo", toolbox, devnet.clone_or_update_repo),
            _stage("SwitchToReleaseBranch", toolbox, devnet.switch_to_release_branch),
            _stage("SyncSubmodules", toolbox, devnet.sync_submodules),
            _stage("BuildContainers", toolbox, devnet.build_containers),
            _stage("PullContainers", toolbox, devnet.pull_containers),
            _stage("ComposeUp", toolbox, devnet.compose_up),
        ],
    )


def stop_devnet_pipeline(toolbox: Toolbox) -> Pipeline:
    return Pipeline(
        "stop-devnet",
        [
            _dependencies(toolbox, ("docker",)),
            _stage("LocateRepo", toolbox, devnet.locate_repo),
            _stage("ComposeDown", toolbox, devnet.compose_down),
        ],
    )


def create_pipeline(toolbox: Toolbox, *, name: str, template: str) -> Pipeline:
    return Pipeline(
        "create",
        [
            _dependencies(toolbox, CREATE_TOOLS),
            _stage(
                "CreateTemplate",
                toolbox,
                scaffold.create_template,
                name=name,
                template=template,
            ),
            _stage("InitContracts", toolbox, scaffold.init_contracts),
            _stage("InstallBaseContract", toolbox, scaffold.install_base_contract),
            _stage("WriteContractTemplate", toolbox, scaffold.write_contract_template),
        ],
    )


def deploy_pipeline(  # noqa: PLR0913
    toolbox: Toolbox,
    network: Network,
    *,
    contract_name: str,
    constructor_args: Sequence[str] = (),
    private_key: str | None = None,
    rpc_url: str | None = None,
) -> Pipeline:
    return Pipeline(
        f"deploy ({network.value})",
        [
            _dependencies(toolbox, DEPLOY_TOOLS),
            _stage(
                "ValidateTarget",
                toolbox,
                deployment.validate_target,
                network=network,
                private_key=private_key,
                rpc_url=rpc_url,
            ),
            _stage(
                "DeployContract",
                toolbox,
                deployment.deploy_contract,
                contract_name=contract_name,
                constructor_args=tuple(constructor_args),
            ),
            _stage("RecordDeployment", toolbox, deployment.record_deployment),
        ],
    )
