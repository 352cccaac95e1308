"""Bounded-wait supervision of external commands."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from coprocessor_cli.process.relay import DualStreamRelay, LineSink, logging_sink
from coprocessor_cli.process.runner import ProcessHandle, SupervisedCommand, start_process

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124


class OutcomeKind(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, slots=True)
class ProcessOutcome:
    """Terminal result of one supervised command."""

    kind: OutcomeKind
    name: str
    exit_code: int | None = None
    stdout_text: str = ""
    stderr_text: str = ""
    elapsed_seconds: float = 0.0
    action_hint: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.SUCCEEDED

    @property
    def timed_out(self) -> bool:
        return self.kind is OutcomeKind.TIMED_OUT

    @property
    def combined_text(self) -> str:
        return f"{self.stderr_text}\n{self.stdout_text}".strip()


class CommandSupervisor(Protocol):
    """Anything that turns a ``SupervisedCommand`` into a ``ProcessOutcome``."""

    def supervise(self, command: SupervisedCommand) -> ProcessOutcome:
        """Run ``command`` to completion or deadline."""


class BoundedWaitSupervisor:
    """Starts a command, relays its output, and polls it until exit or deadline."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        sink: LineSink = logging_sink,
        drain_timeout_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        spawn: Callable[[SupervisedCommand], ProcessHandle] = start_process,
    ) -> None:
        self._sink = sink
        self._drain_timeout = drain_timeout_seconds
        self._clock = clock
        self._sleep = sleep
        self._spawn = spawn

    def supervise(self, command: SupervisedCommand) -> ProcessOutcome:
        """Run ``command``; ``SpawnError`` propagates unchanged."""

        handle = self._spawn(command)
        relay = DualStreamRelay(
            handle,
            sink=self._sink,
            capture_stdout=command.capture_stdout,
        ).start()
        started = self._clock()

        while True:
            returncode = handle.poll()
            elapsed = self._clock() - started
            if returncode is not None:
                relay.drain(self._drain_timeout)
                return _exit_outcome(command, returncode, relay, elapsed)

            if elapsed >= command.deadline_seconds:
                logger.warning(
                    "%s exceeded its %.0fs deadline; terminating",
                    command.tag,
                    command.deadline_seconds,
                )
                handle.kill()
                relay.drain(self._drain_timeout)
                return ProcessOutcome(
                    kind=OutcomeKind.TIMED_OUT,
                    name=command.tag,
                    exit_code=TIMEOUT_EXIT_CODE,
                    stdout_text=relay.stdout_text,
                    stderr_text=relay.stderr_text,
                    elapsed_seconds=elapsed,
                    action_hint=_hint(relay),
                )

            remaining = command.deadline_seconds - elapsed
            self._sleep(min(command.poll_interval_seconds, remaining))


def _exit_outcome(
    command: SupervisedCommand,
    returncode: int,
    relay: DualStreamRelay,
    elapsed: float,
) -> ProcessOutcome:
    kind = OutcomeKind.SUCCEEDED if returncode == 0 else OutcomeKind.FAILED
    logger.debug("%s exited with code %s after %.1fs", command.tag, returncode, elapsed)
    return ProcessOutcome(
        kind=kind,
        name=command.tag,
        exit_code=returncode,
        stdout_text=relay.stdout_text,
        stderr_text=relay.stderr_text,
        elapsed_seconds=elapsed,
        action_hint=_hint(relay),
    )


def _hint(relay: DualStreamRelay) -> str | None:
    action = relay.action_required
    return action.hint if action is not None else None
