"""Deterministic classification of external tool output."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class OutputCondition(str, Enum):
    """Conditions recognized in tool output or HTTP error text."""

    PAYMENT_PLAN_PENDING = "payment_plan_pending"
    EMAIL_VERIFICATION_PENDING = "email_verification_pending"
    LOCAL_NETWORK_DOWN = "local_network_down"
    DEVNET_SOLVER_DOWN = "devnet_solver_down"
    DEVNET_IPFS_DOWN = "devnet_ipfs_down"
    BRANCH_ALREADY_EXISTS = "branch_already_exists"
    BRANCH_BEHIND_REMOTE = "branch_behind_remote"


@dataclass(frozen=True, slots=True)
class OutputRule:
    condition: OutputCondition
    patterns: tuple[str, ...]
    hint: str
    requires_user_action: bool = False


@dataclass(frozen=True, slots=True)
class OutputClassification:
    """Matched rule plus the pattern that triggered it."""

    condition: OutputCondition
    matched_pattern: str
    hint: str
    requires_user_action: bool


# Order matters: the first matching rule wins.
OUTPUT_RULES: tuple[OutputRule, ...] = (
    OutputRule(
        condition=OutputCondition.PAYMENT_PLAN_PENDING,
        patterns=("waiting for payment plan",),
        hint=(
            "Login to your W3 storage dashboard and complete your payment plan selection."
        ),
        requires_user_action=True,
    ),
    OutputRule(
        condition=OutputCondition.EMAIL_VERIFICATION_PENDING,
        patterns=("waiting for email verification", "check your email", "verify your email"),
        hint="Open the verification email sent by W3 storage and confirm your login.",
        requires_user_action=True,
    ),
    OutputRule(
        condition=OutputCondition.LOCAL_NETWORK_DOWN,
        patterns=("error sending request for url (http://127.0.0.1:8545/)",),
        hint=(
            "Start your local network first: run the stop-devnet and start-devnet commands, "
            "then try again."
        ),
    ),
    OutputRule(
        condition=OutputCondition.DEVNET_IPFS_DOWN,
        patterns=("request or response body error",),
        hint="Devnet containers are inactive. Run the start-devnet command, then try again.",
    ),
    OutputRule(
        condition=OutputCondition.DEVNET_SOLVER_DOWN,
        patterns=(
            "failed to connect to",
            "couldn't connect to server",
            "connection refused",
            "all connection attempts failed",
        ),
        hint="Devnet containers are not running. Run stop-devnet and start-devnet, then retry.",
    ),
    OutputRule(
        condition=OutputCondition.BRANCH_ALREADY_EXISTS,
        patterns=("already exists",),
        hint="Branch already exists locally; checking it out instead.",
    ),
    OutputRule(
        condition=OutputCondition.BRANCH_BEHIND_REMOTE,
        patterns=("your branch is behind",),
        hint="Updates are available upstream.",
    ),
)


FAILURE_HINT_CONDITIONS: frozenset[OutputCondition] = frozenset(
    {
        OutputCondition.PAYMENT_PLAN_PENDING,
        OutputCondition.EMAIL_VERIFICATION_PENDING,
        OutputCondition.LOCAL_NETWORK_DOWN,
        OutputCondition.DEVNET_IPFS_DOWN,
        OutputCondition.DEVNET_SOLVER_DOWN,
    },
)


def classify_output(
    text: str,
    *,
    conditions: frozenset[OutputCondition] | None = None,
) -> OutputClassification | None:
    """Return the first rule matching ``text`` (case-insensitive), if any.

    ``conditions`` restricts matching to a subset of the table; git-specific
    phrases such as "already exists" are too generic to apply to every tool.
    """

    haystack = text.lower()
    for rule in OUTPUT_RULES:
        if conditions is not None and rule.condition not in conditions:
            continue
        pattern = _first_match(haystack, rule.patterns)
        if pattern is not None:
            return OutputClassification(
                condition=rule.condition,
                matched_pattern=pattern,
                hint=rule.hint,
                requires_user_action=rule.requires_user_action,
            )
    return None


def match_action_hint(line: str) -> OutputClassification | None:
    """Classify a single relay line, only for phrases that need operator action."""

    classification = classify_output(line)
    if classification is None or not classification.requires_user_action:
        return None
    return classification


def failure_hint(text: str) -> str | None:
    """Operator hint for a failed command or request, if the text is recognized."""

    classification = classify_output(text, conditions=FAILURE_HINT_CONDITIONS)
    return classification.hint if classification is not None else None


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
