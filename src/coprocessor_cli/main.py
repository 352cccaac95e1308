"""CLI entrypoint for cartesi-coprocessor."""

import logging

import rich_click as click
from rich.logging import RichHandler

from coprocessor_cli import __version__
from coprocessor_cli.config import Network
from coprocessor_cli.controllers import (
    AddressBookCommand,
    CommandResult,
    CoprocessorCliController,
    CreateCommand,
    DeployCommand,
    PublishStatusCommand,
    RegisterCommand,
)
from coprocessor_cli.progress import console

click.rich_click.USE_MARKDOWN = True
CONTROLLER = CoprocessorCliController()

NETWORK_CHOICE = click.Choice([network.value for network in Network], case_sensitive=False)


@click.group()
@click.version_option(version=__version__, prog_name="cartesi-coprocessor")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Show debug logs.")
def cartesi_coprocessor(verbose: bool) -> None:
    """Bootstrap and deploy Cartesi coprocessor programs from your CLI."""

    _configure_logging(verbose=verbose)


@cartesi_coprocessor.command("create")
@click.option("--dapp-name", "-d", required=True, help="Name of your program.")
@click.option("--template", "-t", required=True, help="Language you intend to build with.")
def create(dapp_name: str, template: str) -> None:
    """Bootstrap a new directory with the Cartesi template and the solidity template."""

    _finish(
        CONTROLLER.create(CreateCommand(name=dapp_name, template=template)),
        "Program bootstrap failed.",
    )


@cartesi_coprocessor.command("register")
@click.option(
    "--network",
    "-n",
    type=NETWORK_CHOICE,
    required=True,
    help="Environment your program will be registered on.",
)
@click.option(
    "--email",
    "-e",
    default=None,
    help="Your email address registered with Web3.Storage (required on mainnet).",
)
def register(network: str, email: str | None) -> None:
    """Build and run all necessary steps to register your program with the coprocessor."""

    _finish(
        CONTROLLER.register(RegisterCommand(network=network.lower(), email=email)),
        "Program registration failed.",
    )


cartesi_coprocessor.add_command(register, name="publish")


@cartesi_coprocessor.command("deploy")
@click.option(
    "--network",
    "-n",
    type=NETWORK_CHOICE,
    required=True,
    help="Environment your contract will be deployed to.",
)
@click.option("--contract-name", "-c", required=True, help="Name of the contract to deploy.")
@click.option(
    "--constructor-args",
    "constructor_args",
    multiple=True,
    help="Constructor argument for the contract. Can be repeated.",
)
@click.option(
    "--private-key",
    "-p",
    default=None,
    help="Private key for deploying to the selected network (defaults to the devnet account).",
)
@click.option(
    "--rpc-url",
    "--rpc",
    "-r",
    "rpc_url",
    default=None,
    help="RPC endpoint of the selected network (defaults to the devnet RPC).",
)
def deploy(
    network: str,
    contract_name: str,
    constructor_args: tuple[str, ...],
    private_key: str | None,
    rpc_url: str | None,
) -> None:
    """Deploy the solidity code for your coprocessor program to any network of choice."""

    _finish(
        CONTROLLER.deploy(
            DeployCommand(
                network=network.lower(),
                contract_name=contract_name,
                constructor_args=constructor_args,
                private_key=private_key,
                rpc_url=rpc_url,
            ),
        ),
        "Contract deployment failed.",
    )


@cartesi_coprocessor.command("start-devnet")
def start_devnet() -> None:
    """Clone or update the coprocessor repository and start the devnet containers."""

    _finish(CONTROLLER.start_devnet(), "Devnet start failed.")


@cartesi_coprocessor.command("stop-devnet")
def stop_devnet() -> None:
    """Stop the devnet containers and remove their volumes."""

    _finish(CONTROLLER.stop_devnet(), "Devnet stop failed.")


@cartesi_coprocessor.command("publish-status")
@click.option(
    "--network",
    "-n",
    type=NETWORK_CHOICE,
    required=True,
    help="Environment whose solver holds the upload.",
)
@click.option("--upload-id", "-u", required=True, help="Upload id returned by the solver.")
def publish_status(network: str, upload_id: str) -> None:
    """Wait for the solver to finish importing an upload."""

    _finish(
        CONTROLLER.publish_status(
            PublishStatusCommand(network=network.lower(), upload_id=upload_id),
        ),
        "Publish status check failed.",
    )


@cartesi_coprocessor.command("address-book")
@click.option(
    "--network",
    "-n",
    type=NETWORK_CHOICE,
    default=Network.DEVNET.value,
    show_default=True,
    help="Environment whose endpoints are shown.",
)
def address_book(network: str) -> None:
    """Show the program's machine hash, CID, size, solver and recorded deployments."""

    _finish(
        CONTROLLER.address_book(AddressBookCommand(network=network.lower())),
        "Address book unavailable.",
    )


def _configure_logging(*, verbose: bool) -> None:
    package_logger = logging.getLogger("coprocessor_cli")
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not any(isinstance(handler, RichHandler) for handler in package_logger.handlers):
        handler = RichHandler(console=console, show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.addHandler(handler)


def _finish(result: CommandResult, failure_message: str) -> None:
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(failure_message)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    cartesi_coprocessor()
