"""Shared test fixtures for storybook-e2e tests.

This module provides stand-ins for the external collaborators of a scenario:
- StubCommandRunner: records commands instead of spawning them
- StubServerFactory: records server start/stop instead of binding a port
"""

from __future__ import annotations

import socket
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from storybook_e2e.command import CommandResult
from storybook_e2e.config import E2ESettings
from storybook_e2e.errors import CommandFailed
from storybook_e2e.scenario import ScenarioConfig


@dataclass
class RecordedCall:
    """One command the stub was asked to run."""

    command: str
    cwd: Path
    env: dict[str, str] | None
    timeout: float | None


@dataclass
class StubCommandRunner:
    """Command runner double.

    Commands containing `fail_on` exit non-zero; "" fails every command.
    `effects` maps a command fragment to a callable run with the cwd, to
    simulate what the real tool would leave on disk.
    """

    fail_on: str | None = None
    exit_code: int = 1
    effects: dict[str, Callable[[str, Path], None]] = field(default_factory=dict)
    calls: list[RecordedCall] = field(default_factory=list)

    @property
    def commands(self) -> list[str]:
        return [call.command for call in self.calls]

    async def __call__(
        self,
        command: str,
        cwd: str | Path,
        *,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
        echo: bool = True,
    ) -> CommandResult:
        self.calls.append(RecordedCall(command, Path(cwd), env, timeout))
        for fragment, effect in self.effects.items():
            if fragment in command:
                effect(command, Path(cwd))
        if self.fail_on is not None and self.fail_on in command:
            raise CommandFailed(command, self.exit_code, "stub failure output", cwd)
        return CommandResult(command, str(cwd), 0, "", 0.0)


@dataclass
class StubServerFactory:
    """Server factory double recording start and stop."""

    started: list[tuple[Path, int]] = field(default_factory=list)
    stopped: int = 0

    @asynccontextmanager
    async def serve(self, root: Path, port: int) -> AsyncIterator[Any]:
        self.started.append((Path(root), port))
        try:
            yield self
        finally:
            self.stopped += 1


@pytest.fixture
def settings(tmp_path: Path) -> E2ESettings:
    """Settings rooted in a temporary directory, cleaning up without asking."""
    return E2ESettings(root=tmp_path, auto_cleanup=True)


@pytest.fixture
def demo_config() -> ScenarioConfig:
    """Scenario whose commands are easy to tell apart in assertions."""
    return ScenarioConfig(
        name="demo",
        version="1.0.0",
        generator="create-app {{name}}-v{{version}}",
        init_command="sb init",
        deps_command="add deps",
        build_command="build-sb",
        test_command='run tests --env location="{{location}}"',
    )


def touch_last_argument(command: str, cwd: Path) -> None:
    """Simulate a generator creating a project named by its last argument."""
    (cwd / command.split()[-1]).touch()


def write_build_output(command: str, cwd: Path) -> None:
    """Simulate a Storybook build."""
    output = cwd / "storybook-static"
    output.mkdir(exist_ok=True)
    (output / "index.html").write_text("<html>storybook</html>")


@pytest.fixture
def command_runner() -> StubCommandRunner:
    """Stub runner whose generator and build leave files behind."""
    return StubCommandRunner(
        effects={"create-app": touch_last_argument, "build-sb": write_build_output}
    )


@pytest.fixture
def server_factory() -> StubServerFactory:
    return StubServerFactory()


@pytest.fixture
def free_port() -> int:
    """Find a port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
