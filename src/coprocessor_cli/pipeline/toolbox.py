"""Collaborators shared by the stage functions of one CLI invocation."""

from __future__ import annotations

import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from coprocessor_cli.config import Settings
from coprocessor_cli.process import (
    BoundedWaitSupervisor,
    CommandSupervisor,
    ProcessOutcome,
    SupervisedCommand,
)
from coprocessor_cli.progress import ProgressIndicator
from coprocessor_cli.remote import IpfsClient, RemoteJobPoller, SolverClient
from coprocessor_cli.remote.poller import JobFetcher


@dataclass(slots=True)
class Toolbox:
    settings: Settings
    supervisor: CommandSupervisor
    progress: Callable[[str], ProgressIndicator] = ProgressIndicator
    solver_factory: Callable[[str], SolverClient] | None = None
    ipfs_factory: Callable[[str], IpfsClient] | None = None
    sleep: Callable[[float], None] = field(default=time.sleep)
    which: Callable[[str], str | None] = field(default=shutil.which)

    @classmethod
    def from_settings(cls, settings: Settings, *, show_progress: bool = True) -> Toolbox:
        def _progress(message: str) -> ProgressIndicator:
            return ProgressIndicator(message, enabled=show_progress)

        return cls(
            settings=settings,
            supervisor=BoundedWaitSupervisor(
                drain_timeout_seconds=settings.timeouts.drain_seconds,
            ),
            progress=_progress,
        )

    def quick(
        self,
        executable: str,
        *args: str,
        name: str,
        **options: Any,
    ) -> ProcessOutcome:
        """Run a short local command (git, forge scaffolding, w3 listings)."""

        return self.run(
            executable,
            *args,
            name=name,
            deadline_seconds=self.settings.timeouts.quick_seconds,
            poll_interval_seconds=self.settings.timeouts.quick_poll_seconds,
            **options,
        )

    def networked(
        self,
        executable: str,
        *args: str,
        name: str,
        **options: Any,
    ) -> ProcessOutcome:
        """Run a command bounded by the network deadline (builds, uploads, logins)."""

        return self.run(
            executable,
            *args,
            name=name,
            deadline_seconds=self.settings.timeouts.network_seconds,
            poll_interval_seconds=self.settings.timeouts.poll_seconds,
            **options,
        )

    def unbounded(
        self,
        executable: str,
        *args: str,
        name: str,
        **options: Any,
    ) -> ProcessOutcome:
        """Run a command with no practical deadline (submodule sync, large uploads)."""

        return self.run(
            executable,
            *args,
            name=name,
            deadline_seconds=self.settings.timeouts.unbounded_seconds,
            poll_interval_seconds=self.settings.timeouts.poll_seconds,
            **options,
        )

    def run(  # noqa: PLR0913
        self,
        executable: str,
        *args: str,
        name: str,
        deadline_seconds: float,
        poll_interval_seconds: float,
        cwd: Path | None = None,
        capture_stdout: bool = False,
        input_text: str | None = None,
    ) -> ProcessOutcome:
        return self.supervisor.supervise(
            SupervisedCommand(
                executable=executable,
                args=tuple(args),
                name=name,
                cwd=cwd if cwd is not None else self.settings.project_dir,
                input_text=input_text,
                deadline_seconds=deadline_seconds,
                poll_interval_seconds=poll_interval_seconds,
                capture_stdout=capture_stdout,
            ),
        )

    def solver(self, base_url: str) -> SolverClient:
        if self.solver_factory is not None:
            return self.solver_factory(base_url)
        return SolverClient(
            base_url,
            timeout_seconds=self.settings.solver.request_timeout_seconds,
        )

    def ipfs(self, base_url: str) -> IpfsClient:
        if self.ipfs_factory is not None:
            return self.ipfs_factory(base_url)
        return IpfsClient(base_url)

    def poller(self, fetch: JobFetcher) -> RemoteJobPoller:
        return RemoteJobPoller(
            fetch=fetch,
            max_retries=self.settings.solver.max_retries,
            interval_seconds=self.settings.solver.retry_interval_seconds,
            sleep=self.sleep,
        )
