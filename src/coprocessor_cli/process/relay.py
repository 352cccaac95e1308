"""Concurrent forwarding of a child's stdout and stderr to log sinks."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import IO

from coprocessor_cli.classifier import OutputClassification, match_action_hint
from coprocessor_cli.process.runner import ProcessHandle

relay_logger = logging.getLogger("coprocessor_cli.relay")


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"


LineSink = Callable[[str, Severity, str], None]
"""Receives ``(tag, severity, line)`` for every relayed line."""


def logging_sink(tag: str, severity: Severity, line: str) -> None:
    level = logging.INFO if severity is Severity.INFO else logging.WARNING
    relay_logger.log(level, "%s:: %s", tag, line)


class _StreamPump:
    """Reads one pipe to EOF, forwarding and optionally buffering each line."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        stream: IO[str],
        tag: str,
        severity: Severity,
        sink: LineSink,
        capture: bool,
        watch_actions: bool,
        on_action: Callable[[OutputClassification], None],
    ) -> None:
        self._stream = stream
        self._tag = tag
        self._severity = severity
        self._sink = sink
        self._capture = capture
        self._watch_actions = watch_actions
        self._on_action = on_action
        self._lines: list[str] = []
        self._lock = threading.Lock()
        self._forwarding = True

    @property
    def text(self) -> str:
        with self._lock:
            return "\n".join(self._lines)

    def run(self) -> None:
        try:
            for raw in self._stream:
                line = raw.rstrip("\r\n")
                if self._capture:
                    with self._lock:
                        self._lines.append(line)
                if not self._forwarding or not line.strip():
                    continue
                self._sink(self._tag, self._severity, line)
                if self._watch_actions:
                    hint = match_action_hint(line)
                    if hint is not None:
                        self._on_action(hint)
                        # Keep draining so the child never blocks on a full pipe.
                        self._forwarding = False
        except (ValueError, OSError) as error:
            relay_logger.debug("%s stream closed early: %s", self._tag, error)
        finally:
            try:
                self._stream.close()
            except (ValueError, OSError):
                pass


class DualStreamRelay:
    """Two daemon threads relaying stdout (info) and stderr (warning) lines.

    The relay is scoped to one ``ProcessHandle``. Neither thread is awaited by
    the supervisor loop; ``drain`` gives them a bounded window to flush after
    the process exits.
    """

    def __init__(
        self,
        handle: ProcessHandle,
        *,
        sink: LineSink = logging_sink,
        capture_stdout: bool = True,
        capture_stderr: bool = True,
    ) -> None:
        self._handle = handle
        self._sink = sink
        self._action_lock = threading.Lock()
        self._action: OutputClassification | None = None
        tag = handle.command.tag
        self._threads: list[threading.Thread] = []
        self._stdout_pump = self._make_pump(
            handle.stdout,
            tag=tag,
            severity=Severity.INFO,
            capture=capture_stdout,
            watch_actions=False,
        )
        self._stderr_pump = self._make_pump(
            handle.stderr,
            tag=tag,
            severity=Severity.WARNING,
            capture=capture_stderr,
            watch_actions=True,
        )

    @property
    def stdout_text(self) -> str:
        return self._stdout_pump.text if self._stdout_pump is not None else ""

    @property
    def stderr_text(self) -> str:
        return self._stderr_pump.text if self._stderr_pump is not None else ""

    @property
    def action_required(self) -> OutputClassification | None:
        return self._action

    def start(self) -> DualStreamRelay:
        for pump, channel in ((self._stdout_pump, "stdout"), (self._stderr_pump, "stderr")):
            if pump is None:
                continue
            thread = threading.Thread(
                target=pump.run,
                daemon=True,
                name=f"relay-{self._handle.command.tag}-{channel}",
            )
            thread.start()
            self._threads.append(thread)
        return self

    def drain(self, timeout_seconds: float) -> bool:
        """Wait up to ``timeout_seconds`` for both streams to hit EOF."""

        deadline = time.monotonic() + timeout_seconds
        for thread in self._threads:
            thread.join(timeout=max(0.0, deadline - time.monotonic()))
        return not any(thread.is_alive() for thread in self._threads)

    def _make_pump(
        self,
        stream: IO[str] | None,
        *,
        tag: str,
        severity: Severity,
        capture: bool,
        watch_actions: bool,
    ) -> _StreamPump | None:
        if stream is None:
            return None
        return _StreamPump(
            stream=stream,
            tag=tag,
            severity=severity,
            sink=self._sink,
            capture=capture,
            watch_actions=watch_actions,
            on_action=self._record_action,
        )

    def _record_action(self, classification: OutputClassification) -> None:
        with self._action_lock:
            if self._action is not None:
                return
            self._action = classification
        self._sink(
            f"{self._handle.command.tag}::INSTRUCTION",
            Severity.WARNING,
            classification.hint,
        )
