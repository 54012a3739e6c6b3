"""CLI main entry point."""

import asyncio
import json
import sys
from pathlib import Path

import click

from .config import DirectoryPolicy, E2ESettings, load_settings
from .errors import E2EError
from .formatters import print_packages_table, print_results, print_scenarios, print_settings
from .packages import list_packages
from .presets import get_preset, list_presets
from .scenario import run_scenarios
from .server import ReadinessPoller
from .shared.logging import configure_logging, level_for_verbosity
from .shared.paths import check_path_component


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON (for CI)")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write logs to this file instead of stderr",
)
@click.pass_context
def cli(ctx: click.Context, verbose: int, json_logs: bool, log_file: Path | None) -> None:
    """Storybook end-to-end scenario runner."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level_for_verbosity(verbose), log_file=log_file, json_output=json_logs)


def _settings_from_options(
    root: Path | None,
    config_path: Path | None,
    port: int | None = None,
    timeout: float | None = None,
    reuse: bool = False,
    cleanup: bool | None = None,
) -> E2ESettings:
    settings = load_settings(root, config_path)
    settings.override("port", port)
    settings.override("command_timeout", timeout)
    settings.override("auto_cleanup", cleanup)
    if reuse:
        settings.override("directory_policy", DirectoryPolicy.REUSE)
    return settings


@cli.command()
@click.argument("scenario")
@click.argument("versions", nargs=-1)
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Repository root (default: current directory)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Settings file (default: <root>/sb-e2e.yaml)",
)
@click.option("--port", type=int, default=None, help="Port to serve Storybook on (default: 4000)")
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Per-command timeout in seconds (default: none)",
)
@click.option("--reuse", is_flag=True, help="Reuse an existing scaffold instead of regenerating")
@click.option(
    "--cleanup/--no-cleanup",
    default=None,
    help="Remove the scenario directory afterwards (default: yes in CI, ask otherwise)",
)
def run(
    scenario: str,
    versions: tuple[str, ...],
    root: Path | None,
    config_path: Path | None,
    port: int | None,
    timeout: float | None,
    reuse: bool,
    cleanup: bool | None,
) -> None:
    """Run SCENARIO for each of VERSIONS (default: latest).

    Examples:

        # Latest Angular CLI
        sb-e2e run angular

        # Two create-react-app versions, keep the directories
        sb-e2e run yarn-2-cra 4.0.0 latest --no-cleanup
    """
    try:
        config = get_preset(scenario)
    except KeyError as e:
        raise click.BadParameter(str(e.args[0]), param_hint="SCENARIO") from None
    for version in versions:
        try:
            check_path_component(version, "version")
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="VERSIONS") from None

    settings = _settings_from_options(root, config_path, port, timeout, reuse, cleanup)

    try:
        results = asyncio.run(
            run_scenarios(
                config,
                list(versions) or ["latest"],
                settings,
                readiness=ReadinessPoller(),
            )
        )
    except E2EError as e:
        click.echo(f"🚨 E2E tests fails\n{e}", err=True)
        sys.exit(1)

    print_results(results)


@cli.command()
def scenarios() -> None:
    """List built-in scenarios."""
    print_scenarios(list_presets())


@cli.command()
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Repository root (default: current directory)",
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option("--timeout", type=float, default=None, help="Timeout in seconds (default: none)")
def packages(root: Path | None, json_output: bool, timeout: float | None) -> None:
    """List workspace packages (via lerna)."""
    settings = load_settings(root)
    try:
        found = list_packages(settings.root, timeout=timeout)
    except E2EError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if json_output:
        click.echo(json.dumps([pkg.to_dict() for pkg in found], indent=2))
    else:
        print_packages_table(found)


@cli.command("config")
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Repository root (default: current directory)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Settings file (default: <root>/sb-e2e.yaml)",
)
def show_config(root: Path | None, config_path: Path | None) -> None:
    """Show effective settings and where they come from."""
    print_settings(load_settings(root, config_path))


@cli.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    click.echo(f"storybook-e2e version {__version__}")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
