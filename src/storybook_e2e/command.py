"""Command execution for scenario steps.

Runs an external command line to completion. Output is streamed to the
console while the command runs and captured for error reporting; the exit
status is the only structured signal.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import signal
import time
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

import click

from .errors import CommandFailed
from .shared.logging import get_logger

logger = get_logger(__name__)

READ_CHUNK_SIZE = 4096


@dataclass
class CommandResult:
    """Result of a successful command."""

    command: str
    cwd: str
    exit_code: int
    output: str
    elapsed_seconds: float


async def _pump(stream: asyncio.StreamReader, echo: bool, captured: list[str]) -> None:
    """Copy child output to the console and into `captured`."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        text = decoder.decode(chunk)
        if text:
            captured.append(text)
            if echo:
                click.echo(text, nl=False)
    rest = decoder.decode(b"", final=True)
    if rest:
        captured.append(rest)
        if echo:
            click.echo(rest, nl=False)


def _kill_group(process: asyncio.subprocess.Process) -> None:
    # Group already gone when every member exited in the meantime
    with suppress(ProcessLookupError):
        os.killpg(process.pid, signal.SIGKILL)


async def exec_command(
    command: str,
    cwd: str | Path,
    *,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
    echo: bool = True,
) -> CommandResult:
    """Run a shell command line in `cwd`.

    Args:
        command: Command line, interpreted by the shell
        cwd: Working directory for the child process
        env: Extra environment variables layered over the current environment
        timeout: Seconds before the child is killed (None waits forever)
        echo: Stream output to the console while the command runs

    Returns:
        CommandResult when the command exits with status 0

    Raises:
        CommandFailed: On non-zero exit or timeout, with the captured output
    """
    child_env = {**os.environ, **env} if env else None
    logger.debug("Running command", command=command, cwd=str(cwd))
    start = time.monotonic()

    process = await asyncio.create_subprocess_shell(
        command,
        cwd=str(cwd),
        env=child_env,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        # Own process group, so a kill reaches the tools the shell started
        start_new_session=True,
    )
    captured: list[str] = []

    async def _communicate() -> int:
        assert process.stdout is not None
        await _pump(process.stdout, echo, captured)
        return await process.wait()

    completed = False
    try:
        exit_code = await asyncio.wait_for(_communicate(), timeout=timeout)
        completed = True
    except asyncio.TimeoutError:
        logger.error("Command timed out", command=command, timeout=timeout)
        raise CommandFailed(command, None, "".join(captured), cwd, timed_out=True) from None
    finally:
        # Timeout or cancellation must not leave the child or its descendants running
        if not completed:
            _kill_group(process)
            await process.wait()

    output = "".join(captured)
    elapsed = time.monotonic() - start

    if exit_code != 0:
        logger.debug("Command failed", command=command, exit_code=exit_code)
        raise CommandFailed(command, exit_code, output, cwd)

    logger.debug("Command finished", command=command, elapsed_seconds=round(elapsed, 2))
    return CommandResult(
        command=command,
        cwd=str(cwd),
        exit_code=exit_code,
        output=output,
        elapsed_seconds=elapsed,
    )


def run_command(
    command: str,
    cwd: str | Path,
    *,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
    echo: bool = True,
) -> CommandResult:
    """Synchronous wrapper for exec_command."""
    return asyncio.run(exec_command(command, cwd, env=env, timeout=timeout, echo=echo))
