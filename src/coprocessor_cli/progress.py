"""Transient spinner shown while a stage waits on a tool or remote job."""

from __future__ import annotations

import logging
from types import TracebackType

from rich.console import Console
from rich.status import Status

logger = logging.getLogger(__name__)

console = Console(stderr=True)


class ProgressIndicator:
    """Cancellable spinner bound to the lifetime of one operation.

    Purely cosmetic: failures never affect the caller. Use as a context manager
    so ``stop`` runs on success, failure, and exception paths alike.
    """

    def __init__(
        self,
        message: str,
        *,
        output: Console | None = None,
        enabled: bool = True,
    ) -> None:
        self._message = message
        self._console = output or console
        self._enabled = enabled
        self._status: Status | None = None
        self._starts = 0
        self._stops = 0

    @property
    def message(self) -> str:
        return self._message

    @property
    def active(self) -> bool:
        return self._starts > self._stops

    def start(self) -> ProgressIndicator:
        if self.active:
            return self
        self._starts += 1
        if self._enabled:
            self._status = Status(self._message, console=self._console, spinner="dots")
            self._status.start()
        logger.debug("Progress started: %s", self._message)
        return self

    def update(self, message: str) -> None:
        self._message = message
        if self._status is not None:
            self._status.update(status=message)

    def stop(self) -> None:
        if not self.active:
            return
        self._stops += 1
        if self._status is not None:
            self._status.stop()
            self._status = None
        logger.debug("Progress stopped: %s", self._message)

    def __enter__(self) -> ProgressIndicator:
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.stop()
