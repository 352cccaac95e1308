from __future__ import annotations

import allure
import pytest
from fakes import outcome

from coprocessor_cli.pipeline import FailureKind, PipelineState, PreconditionError
from coprocessor_cli.pipeline.storage import (
    ensure_logged_in,
    find_space,
    listed_accounts,
    listed_spaces,
    provision_storage,
    upload_car,
)
from coprocessor_cli.process import OutcomeKind, SupervisedCommand

pytestmark = [
    allure.epic("Pipelines"),
    allure.feature("Content Storage"),
]

ACCOUNTS = "did:mailto:example.com:alice\ndid:mailto:gmail.com:bob.builder\n"
SPACES_BEFORE = "did:key:z6Mkabc  other-space\n"
SPACES_AFTER = (
    "did:key:z6Mkabc  other-space\n"
    "did:key:z6Mkdef  Cartesi-Coprocessor-Programs\n"
)


def test_listed_accounts_turns_dids_into_addresses() -> None:
    assert listed_accounts(ACCOUNTS + "\nnot an account\n") == [
        "alice@example.com",
        "bob.builder@gmail.com",
    ]


def test_space_lookup_is_case_insensitive() -> None:
    spaces = listed_spaces(SPACES_AFTER)

    assert spaces == ["other-space", "Cartesi-Coprocessor-Programs"]
    assert find_space(spaces, "cartesi-coprocessor-programs") == "Cartesi-Coprocessor-Programs"
    assert find_space(spaces, "missing") is None


def test_login_is_skipped_for_listed_account(make_toolbox) -> None:
    toolbox = make_toolbox(lambda _command: outcome(stdout=ACCOUNTS))

    result = ensure_logged_in(toolbox, PipelineState(), email="Alice@Example.com")

    assert result.ok
    assert result.skipped
    assert toolbox.supervisor.argvs() == [["w3", "account", "ls"]]


def test_login_runs_when_account_is_not_listed(make_toolbox) -> None:
    toolbox = make_toolbox(lambda _command: outcome(stdout=ACCOUNTS))

    result = ensure_logged_in(toolbox, PipelineState(), email="carol@example.org")

    assert result.ok
    assert not result.skipped
    assert toolbox.supervisor.argvs()[-1] == ["w3", "login", "carol@example.org"]
    login = toolbox.supervisor.commands[-1]
    assert login.deadline_seconds == toolbox.settings.timeouts.network_seconds


def test_login_requires_an_email(make_toolbox) -> None:
    with pytest.raises(PreconditionError):
        ensure_logged_in(make_toolbox(), PipelineState(), email="  ")


def test_existing_space_is_selected_without_creation(make_toolbox) -> None:
    toolbox = make_toolbox(lambda _command: outcome(stdout=SPACES_AFTER))
    state = PipelineState()

    result = provision_storage(toolbox, state)

    assert result.ok
    assert result.message == "selected existing storage space Cartesi-Coprocessor-Programs"
    argvs = toolbox.supervisor.argvs()
    assert not [argv for argv in argvs if "create" in argv]
    assert argvs[-1] == ["w3", "space", "use", "Cartesi-Coprocessor-Programs"]
    assert state.require("space") == "Cartesi-Coprocessor-Programs"


def test_missing_space_is_created_once_then_found_on_relisting(make_toolbox) -> None:
    listings = [SPACES_BEFORE, SPACES_AFTER]

    def responder(command: SupervisedCommand):
        if command.args[:2] == ("space", "ls"):
            return outcome(stdout=listings.pop(0))
        return outcome()

    toolbox = make_toolbox(responder)

    result = provision_storage(toolbox, PipelineState())

    assert result.ok
    assert result.message.startswith("created and selected")
    creates = [argv for argv in toolbox.supervisor.argvs() if "create" in argv]
    assert creates == [
        ["w3", "space", "create", "cartesi-coprocessor-programs", "--no-recovery"],
    ]


def test_space_missing_after_creation_is_rejected(make_toolbox) -> None:
    toolbox = make_toolbox(
        lambda command: outcome(stdout=SPACES_BEFORE)
        if command.args[:2] == ("space", "ls")
        else outcome(),
    )

    result = provision_storage(toolbox, PipelineState())

    assert result.failure is FailureKind.REJECTED
    assert "not listed after creation" in result.message
    assert not [argv for argv in toolbox.supervisor.argvs() if "use" in argv]


def test_payment_plan_timeout_surfaces_the_instruction(make_toolbox) -> None:
    def responder(command: SupervisedCommand):
        if "create" in command.args:
            return outcome(
                OutcomeKind.TIMED_OUT,
                name="STORAGE",
                action_hint="Select a payment plan in the storage console.",
            )
        return outcome(stdout=SPACES_BEFORE)

    result = provision_storage(make_toolbox(responder), PipelineState())

    assert result.failure is FailureKind.TIMED_OUT
    assert result.hint == "Select a payment plan in the storage console."


def test_upload_requires_the_car_file(make_toolbox) -> None:
    with pytest.raises(PreconditionError, match="CAR file"):
        upload_car(make_toolbox(), PipelineState())


def test_upload_sends_car_with_unbounded_deadline(make_toolbox, settings) -> None:
    (settings.project_dir / "output.car").write_bytes(b"car")
    toolbox = make_toolbox()

    result = upload_car(toolbox, PipelineState())

    assert result.ok
    command = toolbox.supervisor.commands[0]
    assert command.argv == ["w3", "up", "--car", str(settings.project_dir / "output.car")]
    assert command.deadline_seconds == settings.timeouts.unbounded_seconds


def test_second_provisioning_reuses_the_created_space(make_toolbox) -> None:
    created: list[str] = []

    def responder(command: SupervisedCommand):
        if command.args[:2] == ("space", "ls"):
            return outcome(stdout=SPACES_AFTER if created else SPACES_BEFORE)
        if command.args[:2] == ("space", "create"):
            created.append(command.args[2])
        return outcome()

    toolbox = make_toolbox(responder)

    first = provision_storage(toolbox, PipelineState())
    second = provision_storage(toolbox, PipelineState())

    assert first.message.startswith("created and selected")
    assert second.message == "selected existing storage space Cartesi-Coprocessor-Programs"
    creates = [argv for argv in toolbox.supervisor.argvs() if argv[1:3] == ["space", "create"]]
    assert len(creates) == 1
