"""Content-storage stages driven through the ``w3`` CLI."""

from __future__ import annotations

import logging

from coprocessor_cli.pipeline.engine import (
    FailureKind,
    PipelineState,
    PreconditionError,
    StageResult,
    stage_from_outcome,
)
from coprocessor_cli.pipeline.program import require_file
from coprocessor_cli.pipeline.toolbox import Toolbox

logger = logging.getLogger(__name__)

STORAGE_TAG = "STORAGE"
ACCOUNT_PREFIX = "did:mailto:"


def listed_accounts(text: str) -> list[str]:
    """Email addresses from ``w3 account ls`` (``did:mailto:<domain>:<local>``)."""

    accounts: list[str] = []
    for line in text.splitlines():
        tokens = line.split()
        if not tokens or not tokens[0].startswith(ACCOUNT_PREFIX):
            continue
        domain, _, local = tokens[0][len(ACCOUNT_PREFIX) :].partition(":")
        if domain and local:
            accounts.append(f"{local}@{domain}")
    return accounts


def listed_spaces(text: str) -> list[str]:
    """Space names from ``w3 space ls``: the last token of every non-empty line."""

    return [line.split()[-1] for line in text.splitlines() if line.strip()]


def find_space(spaces: list[str], wanted: str) -> str | None:
    for space in spaces:
        if space.lower() == wanted.lower():
            return space
    return None


def ensure_logged_in(toolbox: Toolbox, state: PipelineState, *, email: str) -> StageResult:
    stage = "EnsureLoggedIn"
    if not email.strip():
        raise PreconditionError("An email address is required to log in to content storage.")
    listing = toolbox.quick("w3", "account", "ls", name=STORAGE_TAG, capture_stdout=True)
    if listing.succeeded:
        known = {account.lower() for account in listed_accounts(listing.stdout_text)}
        if email.strip().lower() in known:
            return StageResult.success(stage, f"{email} is already logged in", skipped=True)
    else:
        logger.info("Could not list storage accounts; logging in as %s", email)

    outcome = toolbox.networked("w3", "login", email.strip(), name=STORAGE_TAG)
    return stage_from_outcome(
        stage,
        outcome,
        success_message=f"logged in to content storage as {email}",
        failure_message="Login did not complete; verify the email within the deadline",
    )


def provision_storage(toolbox: Toolbox, state: PipelineState) -> StageResult:
    """Select the storage space, creating it only when no case-insensitive match exists."""

    stage = "ProvisionStorage"
    wanted = toolbox.settings.storage.space_name

    listing = toolbox.quick("w3", "space", "ls", name=STORAGE_TAG, capture_stdout=True)
    if not listing.succeeded:
        return stage_from_outcome(
            stage,
            listing,
            success_message="",
            failure_message="Could not list storage spaces",
        )
    space = find_space(listed_spaces(listing.stdout_text), wanted)

    created = False
    if space is None:
        logger.info("Creating storage space %s", wanted)
        creation = toolbox.networked(
            "w3",
            "space",
            "create",
            wanted,
            "--no-recovery",
            name=STORAGE_TAG,
        )
        if not creation.succeeded:
            return stage_from_outcome(
                stage,
                creation,
                success_message="",
                failure_message=f"Could not create storage space {wanted}",
            )
        relisting = toolbox.quick("w3", "space", "ls", name=STORAGE_TAG, capture_stdout=True)
        space = find_space(listed_spaces(relisting.stdout_text), wanted)
        if space is None:
            return StageResult.failed(
                stage,
                FailureKind.REJECTED,
                f"storage space {wanted} is not listed after creation",
            )
        created = True

    selection = toolbox.quick("w3", "space", "use", space, name=STORAGE_TAG, capture_stdout=True)
    if not selection.succeeded:
        return stage_from_outcome(
            stage,
            selection,
            success_message="",
            failure_message=f"Could not switch to storage space {space}",
        )
    state.put("space", space)
    verb = "created and selected" if created else "selected existing"
    return StageResult.success(stage, f"{verb} storage space {space}")


def upload_car(toolbox: Toolbox, state: PipelineState) -> StageResult:
    settings = toolbox.settings
    car_path = require_file(settings, settings.project.car_file, "CAR")
    with toolbox.progress("Uploading CAR file..."):
        outcome = toolbox.unbounded("w3", "up", "--car", str(car_path), name=STORAGE_TAG)
    return stage_from_outcome(
        "Upload",
        outcome,
        success_message="uploaded CAR file to content storage",
        failure_message="Upload process failed",
    )
