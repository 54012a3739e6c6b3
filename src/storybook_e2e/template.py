"""Placeholder substitution for command templates.

Generator and test commands are written with ``{{placeholder}}`` markers,
e.g. ``create-app {{name}}-v{{version}}``. Substitution is plain string
replacement of every occurrence, applied pair by pair in order.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from .shared.logging import get_logger

logger = get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][\w.-]*)\s*\}\}")

Substitutions = Mapping[str, str] | Iterable[tuple[str, str]]


def placeholder(name: str) -> str:
    """Get the marker for a placeholder name."""
    return "{{" + name + "}}"


def unresolved_placeholders(text: str) -> list[str]:
    """List placeholder names still present in `text`, in order of appearance."""
    seen: list[str] = []
    for match in PLACEHOLDER_PATTERN.finditer(text):
        if match.group(1) not in seen:
            seen.append(match.group(1))
    return seen


def render_template(template: str, substitutions: Substitutions) -> str:
    """Substitute placeholders in a command template.

    Multi-line templates are joined into a single command line; runs of
    whitespace collapse to one space.

    Args:
        template: Command template
        substitutions: Ordered (placeholder, value) pairs, or a mapping

    Returns:
        Rendered command line. Markers with unknown names are left as they
        are and reported as a warning.
    """
    pairs = substitutions.items() if isinstance(substitutions, Mapping) else substitutions

    command = " ".join(template.split())

    for name, value in pairs:
        command = command.replace(placeholder(name), str(value))

    leftover = unresolved_placeholders(command)
    if leftover:
        logger.warning("Unsubstituted placeholders in command", command=command, placeholders=leftover)

    return command
