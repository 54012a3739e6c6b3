"""Run settings for storybook-e2e.

Settings come from an optional ``sb-e2e.yaml`` at the repository root,
environment variables, and CLI flags.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .shared.logging import get_logger
from .shared.paths import default_root

logger = get_logger(__name__)

# Default values
DEFAULT_PORT = 4000
CONFIG_FILE_NAME = "sb-e2e.yaml"

# Environment variable mappings
ENV_VARS = {
    "root": "SB_E2E_ROOT",
    "port": "SB_E2E_PORT",
    "command_timeout": "SB_E2E_TIMEOUT",
    "auto_cleanup": "SB_E2E_CLEANUP",
}
CI_ENV_VAR = "CI"

FALSY = {"", "0", "false", "no", "off"}


class DirectoryPolicy(Enum):
    """What to do when a scenario's working directory already exists."""

    FRESH = "fresh"  # Delete and regenerate (CI)
    REUSE = "reuse"  # Treat as already scaffolded, skip to serving (local reruns)


def is_ci(environ: dict[str, str] | None = None) -> bool:
    """Check whether we run under continuous integration."""
    env = os.environ if environ is None else environ
    value = env.get(CI_ENV_VAR)
    return value is not None and value.strip().lower() not in FALSY


def parse_bool(value: str) -> bool:
    """Parse a boolean-ish environment value."""
    return value.strip().lower() not in FALSY


def read_bool(value: Any) -> bool:
    """Read a boolean from YAML, where it may also be written as a quoted string."""
    if isinstance(value, str):
        return parse_bool(value)
    return bool(value)


@dataclass
class E2ESettings:
    """Settings shared by every scenario in a run."""

    root: Path = field(default_factory=default_root)
    port: int = DEFAULT_PORT
    # No timeout unless explicitly configured
    command_timeout: float | None = None
    # None means "decide at cleanup time" (CI, then prompt)
    auto_cleanup: bool | None = None
    directory_policy: DirectoryPolicy = DirectoryPolicy.FRESH
    ci: bool = False

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict)

    @property
    def location(self) -> str:
        """URL the built Storybook is served at."""
        return f"http://localhost:{self.port}"

    def get_source(self, key: str) -> str:
        """Get the source of a setting."""
        return self._sources.get(key, "default")

    def override(self, key: str, value: Any) -> None:
        """Apply a command-line override; None leaves the setting alone."""
        if value is None:
            return
        if not hasattr(self, key) or key.startswith("_"):
            raise KeyError(f"Unknown setting: {key}")
        setattr(self, key, value)
        self._sources[key] = "command line"


# Keys accepted in sb-e2e.yaml and how to read them
FILE_SETTINGS: dict[str, Callable[[Any], Any]] = {
    "port": int,
    "command_timeout": float,
    "auto_cleanup": read_bool,
    "directory_policy": lambda value: DirectoryPolicy(str(value)),
}


def get_config_path(root: Path) -> Path:
    """Get the settings file path for a repository root."""
    return root / CONFIG_FILE_NAME


def _apply_file(settings: E2ESettings, config_path: Path, sources: dict[str, str]) -> None:
    try:
        with open(config_path) as f:
            file_config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable settings file", path=str(config_path), error=str(e))
        return

    if not isinstance(file_config, dict):
        logger.warning("Ignoring settings file without a mapping", path=str(config_path))
        return

    for key, convert in FILE_SETTINGS.items():
        if file_config.get(key) is None:
            continue
        try:
            value = convert(file_config[key])
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid setting", key=key, value=file_config[key])
            continue
        setattr(settings, key, value)
        sources[key] = "config file"


def load_settings(
    root: str | Path | None = None,
    config_path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> E2ESettings:
    """Load run settings.

    Precedence (highest to lowest):
    1. CLI flags (applied afterwards via E2ESettings.override)
    2. Environment variables
    3. Settings file (<root>/sb-e2e.yaml)
    4. Defaults

    Args:
        root: Repository root; falls back to $SB_E2E_ROOT, then the cwd
        config_path: Explicit settings file
        environ: Environment to read (defaults to os.environ)

    Returns:
        E2ESettings with values and sources
    """
    env = os.environ if environ is None else environ
    settings = E2ESettings()
    sources: dict[str, str] = {}

    if root is not None:
        settings.root = Path(root)
        sources["root"] = "command line"
    elif env.get(ENV_VARS["root"]):
        settings.root = Path(env[ENV_VARS["root"]])
        sources["root"] = "environment"
    settings.root = settings.root.resolve()

    path = Path(config_path) if config_path else get_config_path(settings.root)
    if path.exists():
        _apply_file(settings, path, sources)

    if env.get(ENV_VARS["port"]):
        try:
            settings.port = int(env[ENV_VARS["port"]])
            sources["port"] = "environment"
        except ValueError:
            logger.warning("Ignoring invalid port", value=env[ENV_VARS["port"]])
    if env.get(ENV_VARS["command_timeout"]):
        try:
            settings.command_timeout = float(env[ENV_VARS["command_timeout"]])
            sources["command_timeout"] = "environment"
        except ValueError:
            logger.warning("Ignoring invalid timeout", value=env[ENV_VARS["command_timeout"]])
    if env.get(ENV_VARS["auto_cleanup"]) is not None:
        settings.auto_cleanup = parse_bool(env[ENV_VARS["auto_cleanup"]])
        sources["auto_cleanup"] = "environment"

    settings.ci = is_ci(env)
    if settings.ci:
        sources["ci"] = "environment"

    settings._sources = sources
    return settings
