"""Stage that verifies external tools are installed before anything runs."""

from __future__ import annotations

from collections.abc import Sequence

from coprocessor_cli.config import Network
from coprocessor_cli.pipeline.engine import FailureKind, PipelineState, StageResult
from coprocessor_cli.pipeline.toolbox import Toolbox

STAGE = "CheckDependencies"

REGISTER_TOOLS: dict[Network, tuple[str, ...]] = {
    Network.MAINNET: ("cartesi", "docker", "w3"),
    Network.TESTNET: ("cartesi", "docker"),
    Network.DEVNET: ("cartesi", "docker"),
}
CREATE_TOOLS: tuple[str, ...] = ("cartesi", "forge")
DEPLOY_TOOLS: tuple[str, ...] = ("forge",)
DEVNET_TOOLS: tuple[str, ...] = ("git", "docker")


def missing_tools(toolbox: Toolbox, tools: Sequence[str]) -> list[str]:
    return [tool for tool in tools if toolbox.which(tool) is None]


def check_dependencies(
    toolbox: Toolbox,
    state: PipelineState,
    *,
    tools: Sequence[str],
) -> StageResult:
    missing = missing_tools(toolbox, tools)
    if not missing:
        return StageResult.success(STAGE, f"found {', '.join(tools)}")
    names = ", ".join(missing)
    return StageResult.failed(
        STAGE,
        FailureKind.DEPENDENCY_MISSING,
        f"{names} not installed",
        hint=f"Install {names} and try again.",
    )
