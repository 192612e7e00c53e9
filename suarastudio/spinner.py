from __future__ import annotations

import sys
import traceback
from pathlib import Path
from typing import IO

from rich.console import Console
from rich.panel import Panel
from rich.status import Status
from rich.text import Text
from rich.traceback import Traceback

from .errors import StudioError
from .logging_utils import DEBUG_ENV, debug_enabled, get_log_path


class Spinner:
    """``rich`` status line shown while a request is in flight.

    Disabled automatically when ``stream`` is not a terminal.
    """

    def __init__(
        self,
        message: str,
        *,
        stream: IO[str] | None = None,
        enabled: bool | None = None,
    ) -> None:
        self._message = message
        self._stream = stream or sys.stderr
        self._enabled = self._stream.isatty() if enabled is None else enabled
        self._status: Status | None = None

    def start(self) -> None:
        if self._enabled and self._status is None:
            self._status = Console(file=self._stream).status(self._message, spinner="dots")
            self._status.start()

    def update(self, message: str) -> None:
        self._message = message
        if self._status is not None:
            self._status.update(message)

    def stop(self) -> None:
        status, self._status = self._status, None
        if status is not None:
            status.stop()

    def __enter__(self) -> "Spinner":
        self.start()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.stop()


def _summary(exc: BaseException) -> str:
    return exc.user_message if isinstance(exc, StudioError) else str(exc)


def _error_panel(context: str, exc: BaseException, log_path: Path) -> Panel:
    summary = _summary(exc)
    detail = str(exc)
    body = Text()
    body.append(f"{context} failed\n\n", style="bold")
    body.append(type(exc).__name__, style="bold red")
    body.append(f": {summary}")
    if detail and detail != summary:
        body.append(f"\n{detail}", style="dim")
    body.append(f"\n\nLog file: {log_path}", style="dim")
    body.append(f"\nSet {DEBUG_ENV}=1 to print the traceback here.", style="dim")
    return Panel(body, title="SuaraStudio", border_style="red")


def render_error(
    context: str,
    exc: BaseException,
    *,
    stream: IO[str] | None = None,
) -> None:
    """Show ``exc`` to the user: a panel on a terminal, one line otherwise."""

    target = stream or sys.stderr
    log_path = get_log_path()
    if not target.isatty():
        target.write(f"{context} failed: {type(exc).__name__}: {_summary(exc)} (logs: {log_path})\n")
        if debug_enabled():
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=target)
        return

    console = Console(file=target)
    console.print(_error_panel(context, exc, log_path))
    if debug_enabled():
        console.print(Traceback.from_exception(type(exc), exc, exc.__traceback__))
