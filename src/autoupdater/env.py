"""
Platform path resolution for the auto-updater.

Resolves the default locations the updater works with: where the running
application lives, where a release is staged, where the previous
installation is backed up to, and where the update log goes. All of them
can be overridden through :class:`autoupdater.config.UpdaterOptions`.
"""

from __future__ import annotations

import os
import platform
import sys
import tempfile
from pathlib import Path

APP_STATE_DIR_NAME = "autoupdater"
UPDATE_DIR_NAME = "autoupdater-staging"
BACKUP_SUFFIX = ".bak"
LOG_FILE_NAME = "autoupdater.log"


def detect_platform(system: str | None = None) -> str:
    """Return the short platform family: ``win``, ``osx`` or ``linux``."""
    system = (system or platform.system()).lower()
    if system.startswith("win"):
        return "win"
    if system == "darwin":
        return "osx"
    return "linux"


def detect_platform_full(system: str | None = None) -> str:
    """Return the platform family with the pointer width, e.g. ``linux64``."""
    bits = "64" if sys.maxsize > 2**32 else "32"
    return f"{detect_platform(system)}{bits}"


def _running_executable() -> str:
    if getattr(sys, "frozen", False):
        return sys.executable
    return sys.argv[0] or sys.executable


def find_app_bundle(executable: Path | str | None = None, system: str | None = None) -> Path | None:
    """Return the ``.app`` bundle enclosing ``executable`` on macOS, if any."""
    if detect_platform(system) != "osx":
        return None
    path = Path(executable or _running_executable()).resolve()
    for parent in path.parents:
        if parent.suffix == ".app":
            return parent
    return None


def detect_exec_dir(executable: Path | str | None = None, system: str | None = None) -> Path:
    """
    Return the directory holding the running application.

    For a frozen application this is the directory of the executable. On
    macOS the directory containing the ``.app`` bundle is returned; the
    bundle itself is ``exec_dir/<executable>`` and is the only thing a
    swap replaces there.
    """
    path = Path(executable or _running_executable()).resolve()
    bundle = find_app_bundle(path, system)
    if bundle is not None:
        return bundle.parent
    return path.parent


def default_backup_dir(executable: Path | str | None = None, system: str | None = None) -> Path:
    """
    Return where the previous installation is moved to.

    This is a ``.bak`` sibling of the unit being replaced: the ``.app``
    bundle on macOS, the installation directory elsewhere.
    """
    bundle = find_app_bundle(executable, system)
    live = bundle if bundle is not None else detect_exec_dir(executable, system)
    return live.with_name(f"{live.name}{BACKUP_SUFFIX}")


def default_log_path(system: str | None = None) -> Path:
    """Return the per-user location of the update log."""
    family = detect_platform(system)
    if family == "win":
        base = Path(os.environ.get("LOCALAPPDATA") or Path.home() / "AppData" / "Local")
    elif family == "osx":
        base = Path.home() / "Library" / "Logs"
    else:
        base = Path(os.environ.get("XDG_STATE_HOME") or Path.home() / ".local" / "state")
    return base / APP_STATE_DIR_NAME / LOG_FILE_NAME


def get_executable(name: str, system: str | None = None) -> str:
    """
    Return the platform executable name for the application ``name``.

    Example:
        >>> get_executable("myapp", system="Windows")
        'myapp.exe'
    """
    family = detect_platform(system)
    if family == "win":
        return f"{name}.exe"
    if family == "osx":
        return f"{name}.app"
    return name


def build_launch_command(
    executable_path: Path | str,
    args: list[str] | tuple[str, ...] = (),
    system: str | None = None,
) -> list[str]:
    """Return the argv that starts ``executable_path`` with ``args``."""
    path = Path(executable_path)
    if detect_platform(system) == "osx" and path.suffix == ".app":
        return ["open", "-n", "-a", str(path), "--args", *args]
    return [str(path), *args]


PLATFORM = detect_platform()
PLATFORM_FULL = detect_platform_full()
EXEC_DIR = detect_exec_dir()
UPDATE_DIR = Path(tempfile.gettempdir()) / UPDATE_DIR_NAME
BACKUP_DIR = default_backup_dir()
LOG_PATH = default_log_path()
