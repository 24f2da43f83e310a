"""
Tests for the bundled swap scripts.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

import pytest

from autoupdater.errors import InvalidArgumentError
from autoupdater.updates.swap_script import (
    POSIX,
    WINDOWS,
    default_script_name,
    render_swap_script,
    write_swap_script,
)


class TestRenderSwapScript:
    """Tests for render_swap_script."""

    @pytest.mark.parametrize("platform", [POSIX, WINDOWS])
    def test_accepts_strategy_arguments(self, platform: str) -> None:
        """Test both scripts parse the ScriptSwap arguments."""
        script = render_swap_script(platform)

        for flag in ("--pid", "--stage", "--install", "--backup", "--executable", "--log"):
            assert flag in script

    def test_posix_shebang(self) -> None:
        """Test the POSIX script is a sh script."""
        assert render_swap_script(POSIX).startswith("#!/bin/sh\n")

    def test_windows_forwards_extra_args(self) -> None:
        """Test the batch script passes arguments after -- to the relaunch."""
        script = render_swap_script(WINDOWS)

        assert 'if "%~1"=="--"' in script
        assert "set ARGS=%ARGS% %1" in script
        assert '"%INSTALL%\\%EXECUTABLE%"%ARGS%' in script

    def test_posix_relaunches_bundle(self) -> None:
        """Test a .app install is relaunched as a bundle through open."""
        assert 'exec open -n -a "$INSTALL" --args "$@"' in render_swap_script(POSIX)

    def test_unknown_platform(self) -> None:
        """Test an unknown platform raises InvalidArgumentError."""
        with pytest.raises(InvalidArgumentError):
            render_swap_script("amiga")

    def test_default_names(self) -> None:
        """Test conventional file names."""
        assert default_script_name(POSIX) == "swap.sh"
        assert default_script_name(WINDOWS) == "swap.bat"


class TestWriteSwapScript:
    """Tests for write_swap_script."""

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_posix_executable(self, tmp_path: Path) -> None:
        """Test the POSIX script is written executable."""
        path = write_swap_script(tmp_path / "bin" / "swap.sh", POSIX)

        assert path.read_text() == render_swap_script(POSIX)
        assert os.access(path, os.X_OK)

    def test_windows_crlf(self, tmp_path: Path) -> None:
        """Test the Windows script uses CRLF line endings."""
        path = write_swap_script(tmp_path / "swap.bat", WINDOWS)

        data = path.read_bytes()
        assert b"\r\n" in data
        assert b"\n" not in data.replace(b"\r\n", b"")


@pytest.mark.integration
@pytest.mark.skipif(
    os.name == "nt" or shutil.which("sh") is None, reason="requires a POSIX shell"
)
class TestPosixSwapScriptRun:
    """Run the POSIX swap script against a real directory layout."""

    def _layout(self, tmp_path: Path) -> dict[str, Path]:
        stage = tmp_path / "stage"
        stage.mkdir()
        app = stage / "myapp"
        app.write_text('#!/bin/sh\necho "relaunched $*" > "$1"\n')
        app.chmod(0o755)

        install = tmp_path / "install"
        install.mkdir()
        (install / "myapp").write_text("old")

        return {
            "stage": stage,
            "install": install,
            "backup": tmp_path / "install.bak",
            "log": tmp_path / "logs" / "swap.log",
            "script": write_swap_script(tmp_path / "swap.sh", POSIX),
        }

    def test_swap_and_relaunch(self, tmp_path: Path) -> None:
        """Test the script swaps directories and relaunches with extra args."""
        paths = self._layout(tmp_path)
        marker = tmp_path / "marker.txt"

        result = subprocess.run(
            [
                "sh",
                str(paths["script"]),
                "--stage",
                str(paths["stage"]),
                "--install",
                str(paths["install"]),
                "--backup",
                str(paths["backup"]),
                "--executable",
                "myapp",
                "--log",
                str(paths["log"]),
                "--",
                str(marker),
            ],
            capture_output=True,
            timeout=30,
        )

        assert result.returncode == 0, result.stderr
        assert (paths["backup"] / "myapp").read_text() == "old"
        assert (paths["install"] / "myapp").read_text().startswith("#!/bin/sh")
        assert marker.read_text().strip() == f"relaunched {marker}"
        assert "Swapped" in paths["log"].read_text()

    def test_missing_arguments(self, tmp_path: Path) -> None:
        """Test the script refuses to run without its required arguments."""
        script = write_swap_script(tmp_path / "swap.sh", POSIX)

        result = subprocess.run(["sh", str(script)], capture_output=True, timeout=30)

        assert result.returncode == 2
