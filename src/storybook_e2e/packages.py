"""Workspace package listing.

Asks lerna for the packages of the monorepo and parses its JSON output.
"""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import CommandFailed, ParseError

LERNA_BIN = Path("node_modules") / ".bin" / "lerna"


@dataclass
class PackageInfo:
    """One workspace package as reported by `lerna list --json`."""

    name: str
    version: str | None = None
    private: bool = False
    location: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackageInfo:
        return cls(
            name=str(data["name"]),
            version=data.get("version"),
            private=bool(data.get("private", False)),
            location=data.get("location"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "private": self.private,
            "location": self.location,
        }


def default_command(root: Path) -> str:
    """Get the lerna invocation for a repository root."""
    return f"{root / LERNA_BIN} list --json"


def parse_packages(output: str, command: str = "lerna list --json") -> list[PackageInfo]:
    """Parse `lerna list --json` output.

    Raises:
        ParseError: If the output is not a JSON array of package records
    """
    try:
        data = json.loads(output.strip())
    except json.JSONDecodeError as e:
        raise ParseError(command, output, f"invalid JSON ({e.msg} at line {e.lineno})") from e

    if not isinstance(data, list):
        raise ParseError(command, output, f"expected a JSON array, got {type(data).__name__}")

    packages = []
    for index, item in enumerate(data):
        if not isinstance(item, dict) or "name" not in item:
            raise ParseError(command, output, f"entry {index} is not a package record")
        packages.append(PackageInfo.from_dict(item))
    return packages


def list_packages(
    root: str | Path,
    command: str | None = None,
    timeout: float | None = None,
) -> list[PackageInfo]:
    """List workspace packages, in the order lerna reports them.

    Args:
        root: Repository root; the command runs there
        command: Override for the listing command
        timeout: Seconds before giving up (None waits forever)

    Returns:
        List of PackageInfo

    Raises:
        CommandFailed: If the command exits non-zero or times out
        ParseError: If its output is not valid package JSON
    """
    root = Path(root)
    command = command or default_command(root)

    try:
        result = subprocess.run(
            command,
            shell=True,
            cwd=root,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        output = e.stdout if isinstance(e.stdout, str) else ""
        raise CommandFailed(command, None, output, root, timed_out=True) from e

    if result.returncode != 0:
        raise CommandFailed(command, result.returncode, result.stderr or result.stdout or "", root)

    return parse_packages(result.stdout, command)
