"""
Tests for directory operations.

Tests cover:
- ensure_directory
- safe_remove_directory
- replace_directory, including restore on failure and cross-device backups
"""

from __future__ import annotations

import errno
import os
import tempfile
from pathlib import Path
from unittest import mock

import pytest

from autoupdater.errors import FailedPreconditionError, SwapError
from autoupdater.updates.operations import (
    ensure_directory,
    replace_directory,
    safe_remove_directory,
)

# =============================================================================
# ensure_directory Tests
# =============================================================================


class TestEnsureDirectory:
    """Tests for ensure_directory function."""

    def test_create_nested_directories(self) -> None:
        """Test creating nested directories."""
        with tempfile.TemporaryDirectory() as tmpdir:
            nested_dir = Path(tmpdir) / "level1" / "level2" / "level3"
            result = ensure_directory(nested_dir)

            assert result == nested_dir
            assert nested_dir.is_dir()

    def test_existing_directory_unchanged(self) -> None:
        """Test that existing directory is not modified."""
        with tempfile.TemporaryDirectory() as tmpdir:
            existing_dir = Path(tmpdir) / "existing"
            existing_dir.mkdir()
            (existing_dir / "test.txt").touch()

            ensure_directory(existing_dir)

            assert (existing_dir / "test.txt").exists()

    def test_file_in_the_way(self, tmp_path: Path) -> None:
        """Test a file at the path raises FailedPreconditionError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")

        with pytest.raises(FailedPreconditionError):
            ensure_directory(blocker / "child")


# =============================================================================
# safe_remove_directory Tests
# =============================================================================


class TestSafeRemoveDirectory:
    """Tests for safe_remove_directory function."""

    def test_remove_nested_directory(self) -> None:
        """Test removing directory with nested contents."""
        with tempfile.TemporaryDirectory() as tmpdir:
            target_dir = Path(tmpdir) / "to_remove"
            nested = target_dir / "level1" / "level2"
            nested.mkdir(parents=True)
            (nested / "deep_file.txt").touch()

            result = safe_remove_directory(target_dir)

            assert result is True
            assert not target_dir.exists()

    def test_remove_nonexistent_directory(self) -> None:
        """Test removing a nonexistent directory returns False."""
        with tempfile.TemporaryDirectory() as tmpdir:
            assert safe_remove_directory(Path(tmpdir) / "does_not_exist") is False

    def test_remove_file(self, tmp_path: Path) -> None:
        """Test a plain file at the path is removed."""
        path = tmp_path / "stale"
        path.write_text("x")

        assert safe_remove_directory(path) is True
        assert not path.exists()

    def test_remove_symlink_keeps_target(self, tmp_path: Path) -> None:
        """Test a symlink is unlinked without touching its target."""
        target = tmp_path / "target"
        target.mkdir()
        (target / "keep.txt").touch()
        link = tmp_path / "link"
        link.symlink_to(target)

        assert safe_remove_directory(link) is True
        assert not link.exists()
        assert (target / "keep.txt").exists()

    def test_error_raised_when_not_ignored(self, tmp_path: Path) -> None:
        """Test removal failures raise when ignore_errors is False."""
        target = tmp_path / "locked"
        target.mkdir()

        with mock.patch(
            "autoupdater.updates.operations.shutil.rmtree",
            side_effect=PermissionError("denied"),
        ):
            with pytest.raises(FailedPreconditionError) as exc_info:
                safe_remove_directory(target, ignore_errors=False)

        assert exc_info.value.details["path"] == str(target)


# =============================================================================
# replace_directory Tests
# =============================================================================


@pytest.fixture
def layout(tmp_path: Path) -> dict[str, Path]:
    """Create a staged release and a live installation."""
    staged = tmp_path / "staging"
    staged.mkdir()
    (staged / "myapp").write_text("new")
    (staged / "resources").mkdir()
    (staged / "resources" / "app.dat").write_text("new-data")

    live = tmp_path / "install" / "app"
    live.mkdir(parents=True)
    (live / "myapp").write_text("old")
    (live / "settings.ini").write_text("old-settings")

    return {"staged": staged, "live": live, "backup": tmp_path / "install" / "app.bak"}


def _leftovers(parent: Path) -> list[str]:
    return sorted(p.name for p in parent.iterdir() if p.name.startswith("."))


class TestReplaceDirectory:
    """Tests for replace_directory function."""

    def test_replace(self, layout: dict[str, Path]) -> None:
        """Test the live tree is replaced and the old one backed up."""
        result = replace_directory(layout["staged"], layout["live"], layout["backup"])

        assert result == layout["backup"]
        assert (layout["live"] / "myapp").read_text() == "new"
        assert (layout["live"] / "resources" / "app.dat").read_text() == "new-data"
        assert not (layout["live"] / "settings.ini").exists()
        assert (layout["backup"] / "myapp").read_text() == "old"
        assert (layout["backup"] / "settings.ini").read_text() == "old-settings"
        assert _leftovers(layout["live"].parent) == []

    def test_source_untouched(self, layout: dict[str, Path]) -> None:
        """Test the staged tree is copied, not moved."""
        replace_directory(layout["staged"], layout["live"], layout["backup"])

        assert (layout["staged"] / "myapp").read_text() == "new"

    def test_previous_backup_overwritten(self, layout: dict[str, Path]) -> None:
        """Test an older backup is replaced."""
        layout["backup"].mkdir()
        (layout["backup"] / "ancient.txt").write_text("x")

        replace_directory(layout["staged"], layout["live"], layout["backup"])

        assert not (layout["backup"] / "ancient.txt").exists()
        assert (layout["backup"] / "myapp").read_text() == "old"

    def test_fresh_install(self, tmp_path: Path, layout: dict[str, Path]) -> None:
        """Test a missing target is simply created without a backup."""
        target = tmp_path / "fresh" / "app"

        replace_directory(layout["staged"], target, tmp_path / "fresh" / "app.bak")

        assert (target / "myapp").read_text() == "new"
        assert not (tmp_path / "fresh" / "app.bak").exists()

    def test_missing_source(self, tmp_path: Path, layout: dict[str, Path]) -> None:
        """Test a missing source raises FailedPreconditionError."""
        with pytest.raises(FailedPreconditionError):
            replace_directory(tmp_path / "nope", layout["live"], layout["backup"])

        assert (layout["live"] / "myapp").read_text() == "old"

    def test_restore_when_promotion_fails(self, layout: dict[str, Path]) -> None:
        """Test the original tree is restored if the final rename fails."""
        real_rename = os.rename

        def flaky_rename(src: os.PathLike[str], dst: os.PathLike[str]) -> None:
            if ".incoming-" in Path(src).name:
                raise OSError(errno.EACCES, "Permission denied")
            real_rename(src, dst)

        with mock.patch("autoupdater.updates.operations.os.rename", side_effect=flaky_rename):
            with pytest.raises(SwapError) as exc_info:
                replace_directory(layout["staged"], layout["live"], layout["backup"])

        assert "Failed to replace" in exc_info.value.message
        assert (layout["live"] / "myapp").read_text() == "old"
        assert (layout["live"] / "settings.ini").read_text() == "old-settings"
        assert _leftovers(layout["live"].parent) == []

    def test_backup_failure_leaves_live_untouched(self, layout: dict[str, Path]) -> None:
        """Test a failed backup move aborts before touching the live tree."""
        real_rename = os.rename

        def flaky_rename(src: os.PathLike[str], dst: os.PathLike[str]) -> None:
            if Path(dst) == layout["backup"]:
                raise OSError(errno.EACCES, "Permission denied")
            real_rename(src, dst)

        with mock.patch("autoupdater.updates.operations.os.rename", side_effect=flaky_rename):
            with pytest.raises(SwapError) as exc_info:
                replace_directory(layout["staged"], layout["live"], layout["backup"])

        assert "Failed to back up" in exc_info.value.message
        assert (layout["live"] / "myapp").read_text() == "old"
        assert _leftovers(layout["live"].parent) == []

    def test_cross_device_backup(self, layout: dict[str, Path]) -> None:
        """Test a backup on another device is copied instead of renamed."""
        real_rename = os.rename

        def cross_device_rename(src: os.PathLike[str], dst: os.PathLike[str]) -> None:
            if Path(dst) == layout["backup"]:
                raise OSError(errno.EXDEV, "Invalid cross-device link")
            real_rename(src, dst)

        with mock.patch(
            "autoupdater.updates.operations.os.rename", side_effect=cross_device_rename
        ):
            replace_directory(layout["staged"], layout["live"], layout["backup"])

        assert (layout["live"] / "myapp").read_text() == "new"
        assert (layout["backup"] / "myapp").read_text() == "old"
        assert _leftovers(layout["live"].parent) == []
