"""Shared modules for storybook-e2e.

This module provides functionality used by both the scenario runner
and the package lister:
- Path layout of the e2e workspace
- Logging configuration
"""

from .logging import configure_logging, get_logger
from .paths import (
    BUILD_OUTPUT_DIR,
    E2E_DIR_NAME,
    LOCK_FILE_NAME,
    QUARANTINE_NAME,
    SHARED_DEPS_NAME,
    check_path_component,
    default_root,
    scenario_dir,
)

__all__ = [
    # Paths
    "BUILD_OUTPUT_DIR",
    "E2E_DIR_NAME",
    "LOCK_FILE_NAME",
    "QUARANTINE_NAME",
    "SHARED_DEPS_NAME",
    "check_path_component",
    "default_root",
    "scenario_dir",
    # Logging
    "configure_logging",
    "get_logger",
]
