"""Supervised execution of external command-line tools."""

from coprocessor_cli.process.relay import DualStreamRelay, LineSink, Severity, logging_sink
from coprocessor_cli.process.runner import (
    NETWORK_DEADLINE_SECONDS,
    QUICK_DEADLINE_SECONDS,
    UNBOUNDED_DEADLINE_SECONDS,
    ProcessHandle,
    SpawnError,
    SupervisedCommand,
    start_process,
)
from coprocessor_cli.process.supervisor import (
    BoundedWaitSupervisor,
    CommandSupervisor,
    OutcomeKind,
    ProcessOutcome,
)

__all__ = [
    "NETWORK_DEADLINE_SECONDS",
    "QUICK_DEADLINE_SECONDS",
    "UNBOUNDED_DEADLINE_SECONDS",
    "BoundedWaitSupervisor",
    "CommandSupervisor",
    "DualStreamRelay",
    "LineSink",
    "OutcomeKind",
    "ProcessHandle",
    "ProcessOutcome",
    "Severity",
    "SpawnError",
    "SupervisedCommand",
    "logging_sink",
    "start_process",
]
