"""Spawn external tools with piped output channels."""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import IO

logger = logging.getLogger(__name__)

QUICK_DEADLINE_SECONDS = 50.0
NETWORK_DEADLINE_SECONDS = 300.0
UNBOUNDED_DEADLINE_SECONDS = 30_000.0

SECRET_FLAGS = frozenset({"--private-key"})


class SpawnError(RuntimeError):
    """External command could not be started."""

    def __init__(self, message: str, *, executable: str, missing: bool) -> None:
        super().__init__(message)
        self.executable = executable
        self.missing = missing


@dataclass(frozen=True, slots=True)
class SupervisedCommand:
    """One external program invocation and its wait policy."""

    executable: str
    args: tuple[str, ...] = ()
    name: str = ""
    cwd: Path | None = None
    input_text: str | None = None
    deadline_seconds: float = NETWORK_DEADLINE_SECONDS
    poll_interval_seconds: float = 5.0
    capture_stdout: bool = False
    env: Mapping[str, str] | None = None

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]

    @property
    def tag(self) -> str:
        return self.name or self.executable.upper()

    def describe(self) -> str:
        """Command line for logs, with secret flag values masked."""

        shown: list[str] = []
        masked = False
        for part in self.argv:
            shown.append("***" if masked else part)
            masked = part in SECRET_FLAGS
        return " ".join(shown)


class ProcessHandle:
    """Running child process with non-blocking status and idempotent kill."""

    def __init__(self, command: SupervisedCommand, process: subprocess.Popen[str]) -> None:
        self.command = command
        self._process = process
        self._kill_lock = threading.Lock()
        self._killed = False

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def stdout(self) -> IO[str] | None:
        return self._process.stdout

    @property
    def stderr(self) -> IO[str] | None:
        return self._process.stderr

    @property
    def killed(self) -> bool:
        return self._killed

    def poll(self) -> int | None:
        """Return the exit code, or None while the process is still running."""

        return self._process.poll()

    def kill(self) -> None:
        """Terminate the process; repeated calls and calls after exit are no-ops."""

        with self._kill_lock:
            if self._killed:
                return
            self._killed = True
            if self._process.poll() is not None:
                return
            logger.debug("Terminating %s (pid=%s)", self.command.tag, self._process.pid)
            _terminate_process(self._process)


def start_process(command: SupervisedCommand) -> ProcessHandle:
    """Spawn ``command`` with both output channels piped as text line streams."""

    try:
        process = subprocess.Popen(  # noqa: S603
            command.argv,
            cwd=command.cwd,
            env=dict(command.env) if command.env is not None else None,
            stdin=subprocess.PIPE if command.input_text is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
    except FileNotFoundError as error:
        raise SpawnError(
            f"Command not found: {command.executable}",
            executable=command.executable,
            missing=True,
        ) from error
    except OSError as error:
        raise SpawnError(
            f"Failed to start {command.executable}: {error}",
            executable=command.executable,
            missing=False,
        ) from error

    logger.debug("Started %s (pid=%s): %s", command.tag, process.pid, command.describe())
    if command.input_text is not None:
        _feed_stdin(process, command.input_text)
    return ProcessHandle(command, process)


def _feed_stdin(process: subprocess.Popen[str], text: str) -> None:
    def _write() -> None:
        if process.stdin is None:
            return
        try:
            process.stdin.write(text)
        except (BrokenPipeError, ValueError):
            logger.debug("Child closed stdin before input was written")
        finally:
            try:
                process.stdin.close()
            except (BrokenPipeError, ValueError):
                pass

    threading.Thread(target=_write, daemon=True, name=f"stdin-{process.pid}").start()


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        try:
            process.wait(timeout=2)
        except subprocess.TimeoutExpired:
            logger.warning("Process %s did not exit after kill", process.pid)
