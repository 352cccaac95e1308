"""Shared test fixtures."""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import pytest
from fakes import FakeSupervisor, Responder, SleepRecorder, quiet_progress

from coprocessor_cli.config import DevnetSettings, Settings, TimeoutSettings
from coprocessor_cli.pipeline import Toolbox


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    project_dir = tmp_path / "project"
    project_dir.mkdir()
    return Settings(
        project_dir=project_dir,
        timeouts=TimeoutSettings(
            quick_seconds=10.0,
            network_seconds=10.0,
            unbounded_seconds=10.0,
            quick_poll_seconds=0.01,
            poll_seconds=0.01,
            drain_seconds=1.0,
        ),
        devnet=DevnetSettings(repo_dir=tmp_path / "devnet" / "cartesi-coprocessor-repo"),
    )


@pytest.fixture()
def make_toolbox(settings: Settings):
    """Factory for a ``Toolbox`` with a scripted supervisor and recorded sleeps."""

    def _make(
        responder: Responder | None = None,
        *,
        installed: tuple[str, ...] | None = None,
        **overrides,
    ) -> Toolbox:
        def _which(tool: str) -> str | None:
            if installed is None or tool in installed:
                return f"/usr/bin/{tool}"
            return None

        return Toolbox(
            settings=overrides.pop("settings", settings),
            supervisor=FakeSupervisor(responder),
            progress=quiet_progress,
            sleep=SleepRecorder(),
            which=_which,
            **overrides,
        )

    return _make


@pytest.fixture()
def fake_bin(tmp_path: Path, monkeypatch):
    """Write fake executables backed by Python scripts and put them first on PATH."""

    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    def _write(name: str, script: str) -> Path:
        implementation = bin_dir / f"{name}_impl.py"
        implementation.write_text(script.strip() + "\n", "utf-8")
        if os.name == "nt":
            launcher = bin_dir / f"{name}.cmd"
            launcher.write_text(
                f'@echo off\r\n"{sys.executable}" "{implementation}" %*\r\n',
                "utf-8",
            )
        else:
            launcher = bin_dir / name
            launcher.write_text(
                f'#!/usr/bin/env sh\nexec "{sys.executable}" "{implementation}" "$@"\n',
                "utf-8",
            )
            launcher.chmod(launcher.stat().st_mode | stat.S_IXUSR)
        return launcher

    return _write


@pytest.fixture()
def cli_env(tmp_path: Path, monkeypatch) -> Path:
    """Point the CLI at a temporary project with fast polling."""

    project_dir = tmp_path / "cli-project"
    project_dir.mkdir()
    monkeypatch.setenv("COPRO_PROJECT_DIR", str(project_dir))
    monkeypatch.setenv("COPRO_QUICK_POLL_SECONDS", "0.05")
    monkeypatch.setenv("COPRO_POLL_SECONDS", "0.05")
    monkeypatch.setenv("COPRO_SOLVER_RETRY_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("COPRO_DEVNET_REPO_DIR", str(tmp_path / "cli-devnet-repo"))
    return project_dir
