"""Quarantine of the shared dependency directory.

Some scaffolding tools refuse to run, or install a conflicting dependency
tree, when a ``node_modules`` directory exists above them. While they run,
the root ``node_modules`` is renamed out of the way and renamed back
afterwards. State lives entirely on disk: the quarantine is active exactly
when the temporary name exists.
"""

from __future__ import annotations

import fcntl
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from .errors import FilesystemError
from .shared.logging import get_logger
from .shared.paths import LOCK_FILE_NAME, QUARANTINE_NAME, SHARED_DEPS_NAME

logger = get_logger(__name__)


class WorkspaceQuarantine:
    """Move a shared directory aside and put it back."""

    def __init__(
        self,
        root: str | Path,
        shared_name: str = SHARED_DEPS_NAME,
        temp_name: str = QUARANTINE_NAME,
    ):
        """Initialize quarantine.

        Args:
            root: Directory holding the shared directory
            shared_name: Name of the shared directory
            temp_name: Name it is moved to while quarantined
        """
        self.root = Path(root)
        self.shared_path = self.root / shared_name
        self.temp_path = self.root / temp_name

    @property
    def active(self) -> bool:
        """Whether the shared directory is currently moved aside."""
        return self.temp_path.exists()

    def _rename(self, source: Path, target: Path) -> None:
        # Never overwrite: a populated target means a previous run went wrong
        if target.exists():
            raise FilesystemError("move", source, f"{target} already exists")
        try:
            os.rename(source, target)
        except OSError as e:
            raise FilesystemError("move", source, e.strerror or str(e)) from e

    def begin(self) -> bool:
        """Move the shared directory to the temporary name.

        Returns:
            True if a directory was moved, False if there was nothing to move

        Raises:
            FilesystemError: If the move fails or the temporary name is taken
        """
        if not self.shared_path.exists():
            return False
        self._rename(self.shared_path, self.temp_path)
        logger.info("Quarantined shared directory", path=str(self.shared_path))
        return True

    def restore(self) -> bool:
        """Move the temporary name back to the shared directory.

        Restores whatever sits at the temporary name, including leftovers
        from a run that crashed mid-quarantine.

        Returns:
            True if a directory was moved back, False if nothing was quarantined

        Raises:
            FilesystemError: If the move fails or the shared name is taken
        """
        if not self.temp_path.exists():
            return False
        self._rename(self.temp_path, self.shared_path)
        logger.info("Restored shared directory", path=str(self.shared_path))
        return True

    @contextmanager
    def hold(self) -> Iterator[WorkspaceQuarantine]:
        """Keep the shared directory quarantined for the duration of the block."""
        self.begin()
        try:
            yield self
        finally:
            self.restore()


@contextmanager
def workspace_lock(root: str | Path) -> Iterator[Path]:
    """Hold an exclusive advisory lock on the workspace.

    Guards the quarantine directory and the server port against a second
    scenario run on the same root.

    Raises:
        FilesystemError: If another process holds the lock
    """
    lock_path = Path(root) / LOCK_FILE_NAME
    try:
        lock_file = open(lock_path, "a")
    except OSError as e:
        raise FilesystemError("lock", lock_path, e.strerror or str(e)) from e

    with lock_file:
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise FilesystemError("lock", lock_path, "another e2e run is in progress") from e
        try:
            lock_file.truncate(0)
            lock_file.write(str(os.getpid()))
            lock_file.flush()
            yield lock_path
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
