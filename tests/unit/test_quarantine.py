"""Unit tests for the workspace quarantine."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from storybook_e2e.errors import FilesystemError
from storybook_e2e.quarantine import WorkspaceQuarantine, workspace_lock


def make_shared(root: Path) -> Path:
    shared = root / "node_modules"
    (shared / "react").mkdir(parents=True)
    (shared / "react" / "package.json").write_text('{"name": "react"}')
    (shared / ".bin").mkdir()
    return shared


def snapshot(directory: Path) -> dict[str, str]:
    return {
        str(path.relative_to(directory)): path.read_text() if path.is_file() else "<dir>"
        for path in sorted(directory.rglob("*"))
    }


@pytest.mark.cli_unit
class TestWorkspaceQuarantine:
    """Tests for WorkspaceQuarantine."""

    def test_default_names(self, tmp_path):
        """Test the shared and temporary directory names."""
        quarantine = WorkspaceQuarantine(tmp_path)
        assert quarantine.shared_path == tmp_path / "node_modules"
        assert quarantine.temp_path == tmp_path / "temp_renamed_node_modules"

    def test_round_trip_preserves_contents(self, tmp_path):
        """Test begin then restore leaves the shared directory as it was."""
        shared = make_shared(tmp_path)
        before = snapshot(shared)
        quarantine = WorkspaceQuarantine(tmp_path)

        assert quarantine.begin() is True
        assert not shared.exists()
        assert quarantine.active is True

        assert quarantine.restore() is True
        assert snapshot(shared) == before
        assert not quarantine.temp_path.exists()
        assert quarantine.active is False

    def test_begin_moves_instead_of_copying(self, tmp_path):
        """Test the quarantined directory is the same inode, not a copy."""
        shared = make_shared(tmp_path)
        inode = os.stat(shared).st_ino
        quarantine = WorkspaceQuarantine(tmp_path)

        quarantine.begin()

        assert os.stat(quarantine.temp_path).st_ino == inode

    def test_begin_without_shared_directory(self, tmp_path):
        """Test begin is a no-op when there is nothing to quarantine."""
        quarantine = WorkspaceQuarantine(tmp_path)
        assert quarantine.begin() is False
        assert not quarantine.temp_path.exists()

    def test_restore_is_idempotent(self, tmp_path):
        """Test restoring twice in a row does not fail."""
        make_shared(tmp_path)
        quarantine = WorkspaceQuarantine(tmp_path)
        quarantine.begin()

        assert quarantine.restore() is True
        assert quarantine.restore() is False
        assert (tmp_path / "node_modules").exists()

    def test_restore_leftover_from_crashed_run(self, tmp_path):
        """Test a temporary directory this instance did not create is restored."""
        leftover = tmp_path / "temp_renamed_node_modules"
        leftover.mkdir()
        (leftover / "marker").write_text("x")

        assert WorkspaceQuarantine(tmp_path).restore() is True
        assert (tmp_path / "node_modules" / "marker").read_text() == "x"

    def test_begin_refuses_occupied_temp_name(self, tmp_path):
        """Test begin fails rather than overwriting an existing quarantine."""
        make_shared(tmp_path)
        (tmp_path / "temp_renamed_node_modules").mkdir()

        with pytest.raises(FilesystemError) as exc_info:
            WorkspaceQuarantine(tmp_path).begin()

        assert exc_info.value.operation == "move"
        assert (tmp_path / "node_modules" / "react").exists()

    def test_restore_refuses_occupied_shared_name(self, tmp_path):
        """Test restore fails rather than overwriting a new node_modules."""
        make_shared(tmp_path)
        (tmp_path / "temp_renamed_node_modules").mkdir()

        with pytest.raises(FilesystemError):
            WorkspaceQuarantine(tmp_path).restore()

    def test_os_error_becomes_filesystem_error(self, tmp_path):
        """Test rename failures surface as FilesystemError."""
        make_shared(tmp_path)
        with patch("os.rename", side_effect=PermissionError(13, "Permission denied")):
            with pytest.raises(FilesystemError) as exc_info:
                WorkspaceQuarantine(tmp_path).begin()

        assert "Permission denied" in str(exc_info.value)

    def test_hold_restores_on_error(self, tmp_path):
        """Test the shared directory comes back when the block raises."""
        make_shared(tmp_path)
        quarantine = WorkspaceQuarantine(tmp_path)

        with pytest.raises(RuntimeError):
            with quarantine.hold():
                assert not (tmp_path / "node_modules").exists()
                raise RuntimeError("scaffold failed")

        assert (tmp_path / "node_modules" / "react").exists()
        assert quarantine.active is False

    def test_custom_names(self, tmp_path):
        """Test other shared directories can be quarantined."""
        (tmp_path / ".yarn").mkdir()
        quarantine = WorkspaceQuarantine(tmp_path, shared_name=".yarn", temp_name=".yarn-aside")

        quarantine.begin()

        assert (tmp_path / ".yarn-aside").exists()


@pytest.mark.cli_unit
class TestWorkspaceLock:
    """Tests for workspace_lock."""

    def test_lock_writes_pid(self, tmp_path):
        """Test the lock file records the holder."""
        with workspace_lock(tmp_path) as lock_path:
            assert lock_path == tmp_path / ".sb-e2e.lock"
            assert lock_path.read_text() == str(os.getpid())

    def test_second_holder_refused(self, tmp_path):
        """Test a concurrent holder gets FilesystemError."""
        with workspace_lock(tmp_path):
            with pytest.raises(FilesystemError) as exc_info:
                with workspace_lock(tmp_path):
                    pass

        assert "another e2e run" in str(exc_info.value)

    def test_lock_released_after_block(self, tmp_path):
        """Test the lock can be taken again once released."""
        with workspace_lock(tmp_path):
            pass
        with workspace_lock(tmp_path):
            pass

    def test_missing_root(self, tmp_path):
        """Test locking a non-existent root fails cleanly."""
        with pytest.raises(FilesystemError):
            with workspace_lock(tmp_path / "missing"):
                pass
