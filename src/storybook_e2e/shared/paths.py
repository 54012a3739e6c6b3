"""Path layout for storybook-e2e.

Every scenario works inside ``<root>/e2e/<name>/<version>/``. The root also
holds the shared ``node_modules`` directory that gets quarantined while a
scaffolding tool runs.
"""

from pathlib import Path

# Directory under the root holding all scenario working directories
E2E_DIR_NAME = "e2e"

# Shared dependency directory at the root, and its quarantine name
SHARED_DEPS_NAME = "node_modules"
QUARANTINE_NAME = "temp_renamed_node_modules"

# Static output produced by `build-storybook`
BUILD_OUTPUT_DIR = "storybook-static"

# Advisory lock guarding the quarantine and the server port
LOCK_FILE_NAME = ".sb-e2e.lock"


def default_root() -> Path:
    """Get the default repository root (the current directory)."""
    return Path.cwd()


def scenario_dir(root: str | Path, name: str, version: str) -> Path:
    """Get the working directory of a scenario.

    Pure function of its arguments: the same (root, name, version) always
    maps to the same directory, and nothing is touched on disk.

    Args:
        root: Repository root
        name: Scenario name (e.g., "angular")
        version: Scaffolding tool version (e.g., "latest", "1.0.0")

    Returns:
        Path to ``<root>/e2e/<name>/<version>``

    Raises:
        ValueError: If name or version would leave ``<root>/e2e/<name>``
    """
    check_path_component(name, "scenario name")
    check_path_component(version, "version")
    return Path(root) / E2E_DIR_NAME / name / version


def check_path_component(value: str, what: str = "path component") -> str:
    """Ensure `value` names exactly one directory level.

    Raises:
        ValueError: If `value` is empty, ``.``/``..``, or contains a separator
    """
    if value in ("", ".", "..") or "/" in value or "\\" in value or "\0" in value:
        raise ValueError(f"Invalid {what}: {value!r} must be a single directory name")
    return value
