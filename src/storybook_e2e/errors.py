"""Error types for storybook-e2e.

Every failure a scenario can hit maps to one of:
- CommandFailed: an external tool exited non-zero (or timed out)
- ParseError: a tool expected to emit JSON emitted something else
- FilesystemError: a move/remove/lock on the workspace failed

None of them are retried. ScenarioFailed wraps whichever one aborted
a scenario together with the step it aborted in.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .scenario import ScenarioStep

# Keep error messages readable when a tool dumps a lot of output
OUTPUT_TAIL_LINES = 20


def tail(output: str, lines: int = OUTPUT_TAIL_LINES) -> str:
    """Return the last `lines` lines of `output`."""
    return "\n".join(output.rstrip().splitlines()[-lines:])


class E2EError(Exception):
    """Base error class for storybook-e2e errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class CommandFailed(E2EError):
    """External command exited with a non-zero status."""

    def __init__(
        self,
        command: str,
        exit_code: int | None,
        output: str = "",
        cwd: str | Path | None = None,
        timed_out: bool = False,
    ):
        self.command = command
        self.exit_code = exit_code
        self.output = output
        self.cwd = str(cwd) if cwd is not None else None
        self.timed_out = timed_out

        if timed_out:
            message = f'Command "{command}" timed out'
        else:
            message = f'Command "{command}" failed with exit code {exit_code}'
        if output.strip():
            message = f"{message}\n{tail(output)}"

        super().__init__(
            message,
            {"command": command, "exit_code": exit_code, "cwd": self.cwd, "timed_out": timed_out},
        )


class ParseError(E2EError):
    """Tool output could not be parsed as the expected structured data."""

    def __init__(self, command: str, output: str, reason: str):
        self.command = command
        self.output = output
        self.reason = reason
        super().__init__(
            f'Could not parse output of "{command}": {reason}',
            {"command": command, "reason": reason},
        )


class FilesystemError(E2EError):
    """Moving, removing or locking part of the workspace failed."""

    def __init__(self, operation: str, path: str | Path, reason: str):
        self.operation = operation
        self.path = str(path)
        self.reason = reason
        super().__init__(
            f"Cannot {operation} {self.path}: {reason}",
            {"operation": operation, "path": self.path},
        )


class ScenarioFailed(E2EError):
    """A scenario aborted; `cause` is the error that stopped it."""

    def __init__(self, name: str, version: str, step: ScenarioStep, cause: BaseException):
        self.name = name
        self.version = version
        self.step = step
        self.cause = cause
        super().__init__(
            f"{name} {version} failed during {step.value}: {cause}",
            {"name": name, "version": version, "step": step.value},
        )
