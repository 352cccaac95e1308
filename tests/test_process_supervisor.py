from __future__ import annotations

import subprocess
import sys
import threading

import allure
import pytest
from fakes import FakeHandle, ListSink, SleepRecorder

from coprocessor_cli.process import (
    BoundedWaitSupervisor,
    OutcomeKind,
    Severity,
    SpawnError,
    SupervisedCommand,
    start_process,
)
from coprocessor_cli.process import runner as runner_module

pytestmark = [
    allure.epic("Process Supervision"),
    allure.feature("Bounded-Wait Supervisor"),
]


def _python(code: str, **options) -> SupervisedCommand:
    return SupervisedCommand(
        executable=sys.executable,
        args=("-c", code),
        name="PY",
        deadline_seconds=options.pop("deadline_seconds", 20.0),
        poll_interval_seconds=options.pop("poll_interval_seconds", 0.05),
        **options,
    )


class _Clock:
    def __init__(self, *values: float) -> None:
        self._values = list(values)

    def __call__(self) -> float:
        if len(self._values) > 1:
            return self._values.pop(0)
        return self._values[0]


def test_success_returns_captured_stdout_and_relays_both_streams() -> None:
    sink = ListSink()
    supervisor = BoundedWaitSupervisor(sink=sink)

    result = supervisor.supervise(
        _python(
            "import sys\n"
            "print('Deployer: 0xabc')\n"
            "print('Deployed to: 0xdef')\n"
            "print('compiling', file=sys.stderr)\n",
            capture_stdout=True,
        ),
    )

    assert result.kind is OutcomeKind.SUCCEEDED
    assert result.exit_code == 0
    assert "Deployer: 0xabc" in result.stdout_text
    assert "Deployed to: 0xdef" in result.stdout_text
    assert ("PY", Severity.INFO, "Deployer: 0xabc") in sink.lines
    assert ("PY", Severity.WARNING, "compiling") in sink.lines


def test_stdout_is_not_buffered_unless_requested() -> None:
    supervisor = BoundedWaitSupervisor(sink=ListSink())

    result = supervisor.supervise(_python("print('noise')"))

    assert result.succeeded
    assert result.stdout_text == ""


def test_non_zero_exit_is_failed_with_stderr() -> None:
    supervisor = BoundedWaitSupervisor(sink=ListSink())

    result = supervisor.supervise(
        _python("import sys\nprint('boom', file=sys.stderr)\nraise SystemExit(3)"),
    )

    assert result.kind is OutcomeKind.FAILED
    assert result.exit_code == 3
    assert "boom" in result.stderr_text


def test_deadline_kills_hanging_process_once(monkeypatch) -> None:
    terminations: list[int] = []
    original = runner_module._terminate_process

    def _counting(process) -> None:
        terminations.append(process.pid)
        original(process)

    monkeypatch.setattr(runner_module, "_terminate_process", _counting)
    handles = []

    def _spawn(command: SupervisedCommand):
        handle = start_process(command)
        handles.append(handle)
        return handle

    supervisor = BoundedWaitSupervisor(sink=ListSink(), spawn=_spawn)
    result = supervisor.supervise(
        _python("import time\ntime.sleep(30)", deadline_seconds=0.5),
    )

    assert result.kind is OutcomeKind.TIMED_OUT
    assert result.timed_out
    assert result.elapsed_seconds >= 0.5
    assert len(terminations) == 1
    handle = handles[0]
    assert handle.killed
    assert handle.poll() is not None

    handle.kill()
    assert len(terminations) == 1


def test_input_text_is_fed_to_stdin() -> None:
    supervisor = BoundedWaitSupervisor(sink=ListSink())

    result = supervisor.supervise(
        _python(
            "import sys\nprint(sys.stdin.read().strip().upper())",
            input_text="hello\n",
            capture_stdout=True,
        ),
    )

    assert result.succeeded
    assert result.stdout_text.strip() == "HELLO"


def test_missing_executable_raises_spawn_error() -> None:
    supervisor = BoundedWaitSupervisor(sink=ListSink())

    with pytest.raises(SpawnError) as raised:
        supervisor.supervise(SupervisedCommand(executable="definitely-not-installed-tool-xyz"))

    assert raised.value.missing
    assert raised.value.executable == "definitely-not-installed-tool-xyz"


def test_exit_seen_on_last_poll_wins_over_deadline() -> None:
    handle = FakeHandle(exit_codes=[None, 0])
    sleep = SleepRecorder()
    supervisor = BoundedWaitSupervisor(
        sink=ListSink(),
        clock=_Clock(0.0, 10.0, 50.0),
        sleep=sleep,
        spawn=lambda _command: handle,
    )

    result = supervisor.supervise(
        SupervisedCommand(executable="fake", deadline_seconds=50.0, poll_interval_seconds=40.0),
    )

    assert result.kind is OutcomeKind.SUCCEEDED
    assert handle.kill_calls == 0
    assert sleep.calls == [40.0]


def test_timeout_with_fake_clock_kills_exactly_once_and_never_oversleeps() -> None:
    handle = FakeHandle(exit_codes=[None])
    sleep = SleepRecorder()
    supervisor = BoundedWaitSupervisor(
        sink=ListSink(),
        clock=_Clock(0.0, 0.0, 5.0, 9.0, 10.0),
        sleep=sleep,
        spawn=lambda _command: handle,
    )

    result = supervisor.supervise(
        SupervisedCommand(executable="fake", deadline_seconds=10.0, poll_interval_seconds=5.0),
    )

    assert result.kind is OutcomeKind.TIMED_OUT
    assert handle.kill_calls == 1
    assert sleep.calls == [5.0, 5.0, 1.0]


def test_action_hint_from_stderr_is_attached_to_outcome() -> None:
    handle = FakeHandle(
        stderr="⁂ Waiting for email verification\n",
        exit_codes=[1],
        name="STORAGE",
    )
    supervisor = BoundedWaitSupervisor(sink=ListSink(), spawn=lambda _command: handle)

    result = supervisor.supervise(SupervisedCommand(executable="w3", name="STORAGE"))

    assert result.kind is OutcomeKind.FAILED
    assert result.action_hint is not None
    assert "verification email" in result.action_hint


class _StubbornProcess:
    """Popen stand-in that never exits, even after ``kill``."""

    pid = 4242
    stdin = None

    def __init__(self) -> None:
        self.calls: list[str] = []

    def terminate(self) -> None:
        self.calls.append("terminate")

    def kill(self) -> None:
        self.calls.append("kill")

    def wait(self, timeout: float | None = None) -> int:
        self.calls.append("wait")
        raise subprocess.TimeoutExpired(cmd="stubborn", timeout=timeout or 0)


def test_terminate_survives_a_process_that_ignores_kill(caplog) -> None:
    process = _StubbornProcess()

    runner_module._terminate_process(process)

    assert process.calls == ["terminate", "wait", "kill", "wait"]
    assert "did not exit after kill" in caplog.text


def test_stdin_writer_skips_process_without_stdin(monkeypatch) -> None:
    errors: list[BaseException] = []
    monkeypatch.setattr(threading, "excepthook", lambda args: errors.append(args.exc_value))
    process = _StubbornProcess()

    runner_module._feed_stdin(process, "payload")
    for thread in threading.enumerate():
        if thread.name == f"stdin-{process.pid}":
            thread.join(timeout=2.0)

    assert errors == []
