"""Scenario runner.

A scenario scaffolds a sample application with a project generator,
initializes Storybook in it, builds the static Storybook, serves it and
runs the integration tests against it:

    Init -> DirectoryPrepared -> [PreHookRun] -> Generated -> ToolInitialized
         -> [DepsAdded] -> Built -> Served -> TestsRun -> Cleaned -> Done

Steps run strictly in order. The first failing step aborts the scenario;
cleanup (server stop, quarantine restore, directory removal) still runs.
"""

from __future__ import annotations

import inspect
import shutil
import sys
import time
from collections.abc import Awaitable, Callable, Sequence
from contextlib import AbstractAsyncContextManager, AsyncExitStack, nullcontext
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

import click
import questionary

from .command import CommandResult, exec_command
from .config import DirectoryPolicy, E2ESettings
from .errors import E2EError, FilesystemError, ScenarioFailed
from .quarantine import WorkspaceQuarantine, workspace_lock
from .server import ReadinessPoller, serve
from .shared.logging import get_logger
from .shared.paths import BUILD_OUTPUT_DIR, scenario_dir
from .template import render_template

logger = get_logger(__name__)

DEFAULT_INIT_COMMAND = "npx -p @storybook/cli sb init --skip-install --yes"
DEFAULT_BUILD_COMMAND = "yarn build-storybook"
DEFAULT_TEST_COMMAND = 'yarn cypress run --env location="{{location}}"'

CommandRunner = Callable[..., Awaitable[CommandResult]]
# Runs a command line in a directory with the scenario's runner and timeout
StepRunner = Callable[[str, Path], Awaitable[None]]
PreHook = Callable[[Path, StepRunner], Awaitable[None]]
Confirm = Callable[[], Awaitable[bool] | bool]
ServerFactory = Callable[[Path, int], AbstractAsyncContextManager[Any]]


class ScenarioStep(Enum):
    """Steps of a scenario, in execution order."""

    INIT = "init"
    DIRECTORY_PREPARED = "directory_prepared"
    PRE_HOOK_RUN = "pre_hook_run"
    GENERATED = "generated"
    TOOL_INITIALIZED = "tool_initialized"
    DEPS_ADDED = "deps_added"
    BUILT = "built"
    SERVED = "served"
    TESTS_RUN = "tests_run"
    CLEANED = "cleaned"
    DONE = "done"


@dataclass(frozen=True)
class ScenarioConfig:
    """Definition of one scenario.

    `generator` is a command template; ``{{name}}`` and ``{{version}}`` are
    replaced everywhere. `test_command` additionally gets ``{{location}}``,
    the URL the built Storybook is served at.
    """

    name: str
    generator: str
    version: str = "latest"
    init_command: str = DEFAULT_INIT_COMMAND
    deps_command: str | None = None
    build_command: str = DEFAULT_BUILD_COMMAND
    test_command: str = DEFAULT_TEST_COMMAND
    before: PreHook | None = None
    # Move the root node_modules aside while scaffolding
    quarantine: bool = False
    # Root-relative paths removed along with the working directory
    cleanup_paths: tuple[str, ...] = ()
    output_dir: str = BUILD_OUTPUT_DIR
    description: str = ""

    def with_version(self, version: str) -> ScenarioConfig:
        """Get a copy of this scenario for another generator version."""
        return replace(self, version=version)

    def substitutions(self) -> list[tuple[str, str]]:
        """Placeholder values for the generator template."""
        return [("name", self.name), ("version", self.version)]

    def generator_command(self) -> str:
        """Render the generator command line."""
        return render_template(self.generator, self.substitutions())

    def test_command_for(self, location: str) -> str:
        """Render the test command line for a served location."""
        return render_template(self.test_command, [*self.substitutions(), ("location", location)])


@dataclass
class ScenarioResult:
    """Outcome of a successful scenario."""

    name: str
    version: str
    cwd: Path
    location: str
    completed_steps: list[ScenarioStep] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    cleaned: bool = False


async def prompt_cleanup() -> bool:
    """Ask whether the scenario directory should be removed.

    Runs on the scenario's event loop, so the async prompt is used.
    """
    answer = await questionary.confirm("Should perform cleanup?", default=True).ask_async()
    # ask_async() returns None when the prompt is cancelled
    return bool(answer)


async def resolve_auto_cleanup(
    settings: E2ESettings,
    confirm: Confirm = prompt_cleanup,
    interactive: bool | None = None,
) -> bool:
    """Decide whether to remove the scenario directory afterwards.

    An explicit setting wins. Otherwise CI always cleans up, a reused
    scaffold is kept, an interactive terminal is asked, and anything else
    cleans up.
    """
    if settings.auto_cleanup is not None:
        return settings.auto_cleanup
    if settings.ci:
        return True
    if settings.directory_policy == DirectoryPolicy.REUSE:
        return False
    if interactive is None:
        interactive = sys.stdin.isatty() and sys.stdout.isatty()
    if interactive:
        answer = confirm()
        if inspect.isawaitable(answer):
            answer = await answer
        return bool(answer)
    return True


def remove_path(path: Path) -> bool:
    """Remove a file or directory tree if it exists.

    Raises:
        FilesystemError: If removal fails
    """
    if not path.exists() and not path.is_symlink():
        return False
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as e:
        raise FilesystemError("remove", path, e.strerror or str(e)) from e
    return True


class ScenarioRunner:
    """Run one scenario end to end."""

    def __init__(
        self,
        config: ScenarioConfig,
        settings: E2ESettings,
        *,
        command_runner: CommandRunner = exec_command,
        server_factory: ServerFactory = serve,
        readiness: ReadinessPoller | None = None,
        confirm: Confirm = prompt_cleanup,
    ):
        """Initialize scenario runner.

        Args:
            config: Scenario to run
            settings: Run settings (root, port, timeout, cleanup policy)
            command_runner: Executes external commands
            server_factory: Async context manager serving (directory, port)
            readiness: Optional poller confirming the server answers before tests
            confirm: Asked for cleanup in interactive terminals
        """
        self.config = config
        self.settings = settings
        self.command_runner = command_runner
        self.server_factory = server_factory
        self.readiness = readiness
        self.confirm = confirm

        try:
            self.cwd = scenario_dir(settings.root, config.name, config.version)
        except ValueError as e:
            raise ScenarioFailed(config.name, config.version, ScenarioStep.INIT, e) from e
        self.quarantine = WorkspaceQuarantine(settings.root)
        self.step = ScenarioStep.INIT
        self.completed_steps: list[ScenarioStep] = []
        self.cleaned = False

    @property
    def label(self) -> str:
        return f"{self.config.name} {self.config.version}"

    @property
    def output_path(self) -> Path:
        """Directory the Storybook build writes to."""
        return self.cwd / self.config.output_dir

    async def _advance(
        self,
        step: ScenarioStep,
        action: Callable[[], Any],
        error_message: str | None = None,
    ) -> Any:
        """Run one step; failures abort the scenario tagged with the step."""
        self.step = step
        logger.debug("Entering step", scenario=self.label, step=step.value)
        try:
            result = action()
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            if error_message:
                click.echo(f"‼️ {error_message}", err=True)
            logger.debug("Step failed", scenario=self.label, step=step.value, error=str(e))
            raise ScenarioFailed(self.config.name, self.config.version, step, e) from e
        self.completed_steps.append(step)
        return result

    async def _exec(self, command: str, cwd: Path, env: dict[str, str] | None = None) -> None:
        await self.command_runner(command, cwd, env=env, timeout=self.settings.command_timeout)

    # ── Steps ──

    def _prepare_directory(self) -> bool:
        """Create the working directory.

        Returns:
            True if the project must be scaffolded, False if an existing
            scaffold is reused
        """
        if self.cwd.exists():
            if self.settings.directory_policy == DirectoryPolicy.REUSE:
                return False
            self._remove_artifacts()
        try:
            self.cwd.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError("create", self.cwd, e.strerror or str(e)) from e
        return True

    async def _run_pre_hook(self) -> None:
        assert self.config.before is not None
        click.echo(f"⏹ Running Before hook for {self.label}")
        await self.config.before(self.cwd, self._exec)

    async def _generate(self) -> None:
        command = self.config.generator_command()
        click.echo(f'🏗 Bootstrapping {self.config.name} project with "{command}"')
        await self._exec(command, self.cwd)

    async def _init_tool(self) -> None:
        click.echo("🎨 Initializing Storybook with @storybook/cli")
        await self._exec(self.config.init_command, self.cwd)

    async def _add_deps(self) -> None:
        assert self.config.deps_command is not None
        click.echo("🌍 Adding needed deps & installing all deps")
        await self._exec(self.config.deps_command, self.cwd)

    async def _build(self) -> None:
        click.echo("👷 Building Storybook")
        await self._exec(self.config.build_command, self.cwd)

    async def _start_server(self, stack: AsyncExitStack) -> Any:
        click.echo(f"🤖 Serving Storybook from {self.output_path}")
        server = await stack.enter_async_context(
            self.server_factory(self.output_path, self.settings.port)
        )
        if self.readiness is not None:
            result = await self.readiness.wait_for_ready(self.settings.location)
            if not result.ready:
                raise E2EError(result.error or f"{self.settings.location} was not served")
        return server

    async def _run_tests(self) -> None:
        location = self.settings.location
        click.echo("🤖 Running Cypress tests")
        # Cypress exposes CYPRESS_* variables through Cypress.env()
        await self._exec(
            self.config.test_command_for(location),
            self.settings.root,
            env={"CYPRESS_location": location},
        )

    # ── Cleanup ──

    def _remove_artifacts(self) -> None:
        for relative in self.config.cleanup_paths:
            remove_path(self.settings.root / relative)
        remove_path(self.cwd)

    async def _cleanup(self) -> None:
        if self.config.quarantine:
            self.quarantine.restore()

        if not await resolve_auto_cleanup(self.settings, self.confirm):
            click.echo(f"📁 Keeping test dir for {self.label}: {self.cwd}")
            return

        click.echo(f"🗑 Cleaning test dir for {self.label}")
        self._remove_artifacts()
        self.cleaned = True

    # ── Driver ──

    async def _scaffold(self) -> None:
        if self.config.before is not None:
            await self._advance(ScenarioStep.PRE_HOOK_RUN, self._run_pre_hook)

        quarantine = self.quarantine.hold() if self.config.quarantine else nullcontext()
        # A failing quarantine move is reported against the generate step
        self.step = ScenarioStep.GENERATED
        try:
            with quarantine:
                await self._advance(
                    ScenarioStep.GENERATED,
                    self._generate,
                    f"Error during {self.config.name} bootstrapping",
                )
                await self._advance(
                    ScenarioStep.TOOL_INITIALIZED,
                    self._init_tool,
                    "Error during Storybook initialization",
                )
                if self.config.deps_command:
                    await self._advance(
                        ScenarioStep.DEPS_ADDED,
                        self._add_deps,
                        "Error dependencies installation",
                    )
                await self._advance(
                    ScenarioStep.BUILT, self._build, "Error during Storybook build"
                )
        except FilesystemError as e:
            # Quarantine begin/restore failed outside of a step
            raise ScenarioFailed(self.config.name, self.config.version, self.step, e) from e

    async def _run_locked(self) -> None:
        try:
            scaffold = await self._advance(
                ScenarioStep.DIRECTORY_PREPARED,
                self._prepare_directory,
                f"Error while preparing {self.cwd}",
            )
            if scaffold:
                await self._scaffold()
            else:
                click.echo(f"♻️ Reusing existing scaffold in {self.cwd}")

            async with AsyncExitStack() as stack:
                await self._advance(
                    ScenarioStep.SERVED,
                    lambda: self._start_server(stack),
                    "Error while serving Storybook",
                )
                await self._advance(
                    ScenarioStep.TESTS_RUN,
                    self._run_tests,
                    "Error during cypress tests execution",
                )
            # Server is stopped here, on success and failure alike
        except BaseException:
            try:
                await self._cleanup()
            except E2EError as cleanup_error:
                # Report, but let the original failure propagate
                click.echo(f"‼️ Cleanup failed: {cleanup_error}", err=True)
            raise

        await self._advance(ScenarioStep.CLEANED, self._cleanup, "Error during cleanup")

    async def run(self) -> ScenarioResult:
        """Run the scenario.

        Returns:
            ScenarioResult describing the completed run

        Raises:
            ScenarioFailed: If any step fails; `step` names the failed step
        """
        click.echo(f"📡 Starting E2E for {self.label}")
        start = time.monotonic()

        try:
            with workspace_lock(self.settings.root):
                await self._run_locked()
        except ScenarioFailed:
            raise
        except E2EError as e:
            raise ScenarioFailed(self.config.name, self.config.version, self.step, e) from e

        self.step = ScenarioStep.DONE
        self.completed_steps.append(ScenarioStep.DONE)
        click.echo(f"🎉 Storybook is working great with {self.label}!")

        return ScenarioResult(
            name=self.config.name,
            version=self.config.version,
            cwd=self.cwd,
            location=self.settings.location,
            completed_steps=list(self.completed_steps),
            elapsed_seconds=time.monotonic() - start,
            cleaned=self.cleaned,
        )


async def run_scenarios(
    config: ScenarioConfig,
    versions: Sequence[str],
    settings: E2ESettings,
    **runner_options: Any,
) -> list[ScenarioResult]:
    """Run a scenario for each version, one after another.

    Stops at the first failing version.
    """
    results = []
    for version in versions or ["latest"]:
        runner = ScenarioRunner(config.with_version(version), settings, **runner_options)
        results.append(await runner.run())
    return results
