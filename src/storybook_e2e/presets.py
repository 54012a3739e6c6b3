"""Built-in scenarios."""

from __future__ import annotations

from pathlib import Path

from .scenario import PreHook, ScenarioConfig, StepRunner


def command_hook(command: str) -> PreHook:
    """Build a pre-hook that runs `command` in the working directory."""

    async def _hook(cwd: Path, run: StepRunner) -> None:
        await run(command, cwd)

    return _hook


ANGULAR = ScenarioConfig(
    name="angular",
    description="Angular CLI app, Storybook installed with the stable CLI",
    generator="""
        npx -p @angular/cli@{{version}} ng new {{name}}-v{{version}}
        --routing=true --minimal=true --style=scss --skipInstall=true --directory ./
    """,
    init_command="npx -p @storybook/cli sb init --skip-install --yes",
    # TODO: drop once @storybook/angular depends on react and react-dom itself
    deps_command="yarn add -D react react-dom",
    test_command=(
        'yarn cypress run --config integrationFolder="cypress/generated" '
        '--env location="{{location}}"'
    ),
    quarantine=True,
)

YARN_2_CRA = ScenarioConfig(
    name="yarn-2-cra",
    description="create-react-app under Yarn 2 (berry), Storybook from the next CLI",
    generator="yarn dlx create-react-app@{{version}} . --quiet",
    before=command_hook("yarn set version berry"),
    init_command="yarn dlx --quiet -p @storybook/cli@next sb init",
    test_command='cypress run --env location="{{location}}"',
    # `yarn set version` writes these next to the root package.json
    cleanup_paths=(".yarn", ".yarnrc.yml"),
)

PRESETS: dict[str, ScenarioConfig] = {
    ANGULAR.name: ANGULAR,
    YARN_2_CRA.name: YARN_2_CRA,
}


def list_presets() -> list[ScenarioConfig]:
    """Get all built-in scenarios, sorted by name."""
    return [PRESETS[name] for name in sorted(PRESETS)]


def get_preset(name: str) -> ScenarioConfig:
    """Get a built-in scenario by name.

    Raises:
        KeyError: If no scenario has that name
    """
    try:
        return PRESETS[name]
    except KeyError:
        raise KeyError(f"Unknown scenario: {name}. Available: {', '.join(sorted(PRESETS))}") from None
