"""CLI output formatting helpers."""

from typing import Any

import click
import yaml
from rich.console import Console
from rich.table import Table

from .config import E2ESettings
from .packages import PackageInfo
from .scenario import ScenarioConfig, ScenarioResult

console = Console()


def print_packages_table(packages: list[PackageInfo]) -> None:
    """Print workspace packages as a table.

    Args:
        packages: Packages in lerna order
    """
    if not packages:
        click.echo("No packages found.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Private")
    table.add_column("Location", style="dim")

    for pkg in packages:
        table.add_row(
            pkg.name,
            pkg.version or "-",
            "yes" if pkg.private else "",
            pkg.location or "",
        )

    console.print(table)
    click.echo(f"\nTotal: {len(packages)} packages")


def print_scenarios(scenarios: list[ScenarioConfig]) -> None:
    """Print built-in scenarios."""
    for scenario in scenarios:
        click.echo(f"{scenario.name}")
        if scenario.description:
            click.echo(f"  {scenario.description}")
        click.echo(f"  generator: {scenario.generator_command()}")
        if scenario.quarantine:
            click.echo("  quarantines root node_modules while scaffolding")


def print_settings(settings: E2ESettings) -> None:
    """Print effective settings with their sources."""
    data: dict[str, Any] = {
        "root": str(settings.root),
        "port": settings.port,
        "command_timeout": settings.command_timeout,
        "auto_cleanup": settings.auto_cleanup,
        "directory_policy": settings.directory_policy.value,
        "ci": settings.ci,
    }
    yaml_str = yaml.dump(data, default_flow_style=False, sort_keys=False)
    for line in yaml_str.splitlines():
        key = line.split(":", 1)[0]
        click.echo(f"{line}  # {settings.get_source(key)}")


def print_results(results: list[ScenarioResult]) -> None:
    """Print a one-line summary per finished scenario."""
    for result in results:
        status = "cleaned" if result.cleaned else f"kept in {result.cwd}"
        click.echo(
            f"  ✓ {result.name} {result.version} "
            f"({result.elapsed_seconds:.1f}s, {status})"
        )
