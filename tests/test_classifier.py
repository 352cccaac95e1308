from __future__ import annotations

import allure

from coprocessor_cli.classifier import (
    OutputCondition,
    classify_output,
    failure_hint,
    match_action_hint,
)

pytestmark = [
    allure.epic("Process Supervision"),
    allure.feature("Output Classification"),
]


def test_payment_plan_phrase_requires_user_action() -> None:
    classified = match_action_hint("- Waiting for payment plan to be selected")

    assert classified is not None
    assert classified.condition == OutputCondition.PAYMENT_PLAN_PENDING
    assert classified.matched_pattern == "waiting for payment plan"
    assert classified.requires_user_action


def test_non_action_rules_are_ignored_by_the_relay_matcher() -> None:
    assert match_action_hint("fatal: a branch named 'main' already exists") is None
    assert match_action_hint("Compiling 42 files") is None


def test_local_rpc_failure_points_at_devnet_commands() -> None:
    stderr = (
        "Error: error sending request for url (http://127.0.0.1:8545/)\n"
        "Context: connection closed"
    )
    classified = classify_output(stderr)

    assert classified is not None
    assert classified.condition == OutputCondition.LOCAL_NETWORK_DOWN
    assert "start-devnet" in classified.hint


def test_solver_connection_failures_are_case_insensitive() -> None:
    for text in (
        "curl: (7) Failed to connect to 127.0.0.1 port 3034",
        "Couldn't connect to server",
        "[Errno 111] Connection refused",
        "All connection attempts failed",
    ):
        classified = classify_output(text)
        assert classified is not None, text
        assert classified.condition == OutputCondition.DEVNET_SOLVER_DOWN


def test_ipfs_body_error_is_its_own_condition() -> None:
    classified = classify_output("request or response body error: operation timed out")

    assert classified is not None
    assert classified.condition == OutputCondition.DEVNET_IPFS_DOWN


def test_conditions_filter_restricts_matching() -> None:
    text = "fatal: a branch named 'main' already exists"
    behind_only = frozenset({OutputCondition.BRANCH_BEHIND_REMOTE})

    assert classify_output(text, conditions=behind_only) is None
    classified = classify_output(text)
    assert classified is not None
    assert classified.condition == OutputCondition.BRANCH_ALREADY_EXISTS


def test_failure_hint_skips_git_specific_rules() -> None:
    assert failure_hint("Error: space already exists") is None
    assert failure_hint("Your branch is behind 'origin/main' by 2 commits") is None
    assert failure_hint("All connection attempts failed") is not None


def test_unknown_text_has_no_classification() -> None:
    assert classify_output("") is None
    assert failure_hint("segmentation fault") is None
