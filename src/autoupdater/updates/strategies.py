"""
Swap strategies for finalizing an update.

A swap strategy takes the unpacked release in the staging directory and
turns it into the live installation, keeping the previous installation
recoverable in the backup directory. Exactly one strategy is bound to an
AutoUpdater when it is constructed.

Concrete implementations:
- AppSwapStrategy: replaces the whole installation directory in-process
- ScriptSwapStrategy: hands the swap off to an external script that runs
  after the application has exited
"""

from __future__ import annotations

import asyncio
import os
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, Field

from autoupdater.config import SwapStrategyKind
from autoupdater.env import build_launch_command
from autoupdater.errors import InvalidArgumentError, SwapError, UpdaterError
from autoupdater.logging import get_logger
from autoupdater.updates.operations import replace_directory

if TYPE_CHECKING:
    from autoupdater.config import UpdaterOptions

logger = get_logger(__name__)


class RelaunchInstruction(BaseModel):
    """
    How to start the application (or the swap script) after a swap.

    Attributes:
        strategy: Strategy that produced the instruction.
        command: Command line to run.
        cwd: Working directory for the command.
        exit_current: Whether the current process must exit afterwards.
    """

    strategy: SwapStrategyKind = Field(
        ...,
        description="Strategy that produced the instruction",
    )
    command: list[str] = Field(
        ...,
        min_length=1,
        description="Command line to run",
    )
    cwd: str | None = Field(
        default=None,
        description="Working directory for the command",
    )
    exit_current: bool = Field(
        default=True,
        description="Whether the current process must exit afterwards",
    )


APP_BUNDLE_SUFFIX = ".app"


def swap_paths(staging_dir: Path, options: UpdaterOptions) -> tuple[Path, Path]:
    """
    Return the staged and live paths a swap exchanges.

    A ``.app`` executable is a macOS bundle living next to other
    applications in ``exec_dir``, so only the bundle is exchanged.
    Otherwise the whole installation directory is.
    """
    executable = str(options.executable)
    if executable.endswith(APP_BUNDLE_SUFFIX):
        return staging_dir / executable, options.exec_dir / executable
    return staging_dir, options.exec_dir


class SwapStrategy(ABC):
    """
    Abstract base class for swap strategies.

    Implementations must back up the previous installation before any
    destructive step and, on failure, leave the live installation either
    untouched or restored, raising SwapError instead of returning a
    relaunch instruction.
    """

    kind: ClassVar[SwapStrategyKind]

    @abstractmethod
    async def apply(
        self,
        staging_dir: Path,
        options: UpdaterOptions,
        extra_args: Sequence[str] = (),
    ) -> RelaunchInstruction:
        """
        Finalize the update.

        Args:
            staging_dir: Directory holding the unpacked release.
            options: Resolved updater options.
            extra_args: Arguments forwarded to the relaunched application.

        Returns:
            RelaunchInstruction describing what to start next.

        Raises:
            SwapError: If the update cannot be finalized.
        """

    def validate_staging(self, staging_dir: Path, options: UpdaterOptions) -> Path:
        """
        Check the staged release before anything live is touched.

        Returns:
            Path of the executable inside ``staging_dir``.

        Raises:
            SwapError: If the staging directory is missing, empty, or lacks
                the application executable.
        """
        if not staging_dir.is_dir() or not any(staging_dir.iterdir()):
            raise SwapError(
                f"Staging directory is missing or empty: {staging_dir}",
                details={"staging_dir": str(staging_dir)},
            )
        if not options.executable:
            raise SwapError(
                "No executable name configured",
                details={"staging_dir": str(staging_dir)},
            )
        executable = staging_dir / options.executable
        if not executable.exists():
            raise SwapError(
                f"Staged release does not contain {options.executable}",
                details={
                    "staging_dir": str(staging_dir),
                    "executable": options.executable,
                },
            )
        return executable


class AppSwapStrategy(SwapStrategy):
    """
    Replace the whole installation directory from within the running process.

    The live directory (or, on macOS, the live ``.app`` bundle) is renamed
    to the backup location and a copy of the staged release is renamed
    into its place (see
    :func:`autoupdater.updates.operations.replace_directory`). The returned
    instruction starts the new executable.
    """

    kind = SwapStrategyKind.APP_SWAP

    async def apply(
        self,
        staging_dir: Path,
        options: UpdaterOptions,
        extra_args: Sequence[str] = (),
    ) -> RelaunchInstruction:
        self.validate_staging(staging_dir, options)
        source, live = swap_paths(staging_dir, options)

        logger.info(
            "Swapping application directory",
            extra={
                "source": str(source),
                "live": str(live),
                "backup_dir": str(options.backup_dir),
            },
        )

        try:
            await asyncio.to_thread(
                replace_directory,
                source,
                live,
                options.backup_dir,
            )
        except SwapError:
            raise
        except UpdaterError as e:
            raise SwapError(e.message, details=e.details) from e

        executable = options.exec_dir / str(options.executable)
        return RelaunchInstruction(
            strategy=self.kind,
            command=build_launch_command(executable, list(extra_args)),
            cwd=str(options.exec_dir),
            exit_current=True,
        )


def _interpreter_for(script: Path) -> list[str]:
    """Return the interpreter prefix needed to run ``script``."""
    suffix = script.suffix.lower()
    if suffix in (".bat", ".cmd"):
        return ["cmd", "/c"]
    if suffix == ".ps1":
        return ["powershell", "-NoProfile", "-ExecutionPolicy", "Bypass", "-File"]
    if suffix == ".sh":
        return ["/bin/sh"]
    return []


class ScriptSwapStrategy(SwapStrategy):
    """
    Hand the swap off to an external script.

    The running executable may not be able to replace itself, so the
    configured swap script is copied out of the installation directory and
    started with the swap parameters once the application exits. The
    script is responsible for the backup, the replacement, and the
    relaunch (see :mod:`autoupdater.updates.swap_script`).
    """

    kind = SwapStrategyKind.SCRIPT_SWAP

    async def apply(
        self,
        staging_dir: Path,
        options: UpdaterOptions,
        extra_args: Sequence[str] = (),
    ) -> RelaunchInstruction:
        self.validate_staging(staging_dir, options)

        script = options.swap_script
        if script is None or not script.is_file():
            raise SwapError(
                f"Swap script not found: {script}",
                details={"swap_script": str(script)},
            )

        try:
            handoff_dir = Path(tempfile.mkdtemp(prefix="autoupdater-swap-"))
            handoff_script = handoff_dir / script.name
            shutil.copy2(script, handoff_script)
            handoff_script.chmod(handoff_script.stat().st_mode | 0o111)
        except OSError as e:
            raise SwapError(
                f"Failed to prepare swap script: {e}",
                details={"swap_script": str(script)},
            ) from e

        source, live = swap_paths(staging_dir, options)
        args = [
            "--pid",
            str(os.getpid()),
            "--stage",
            str(source),
            "--install",
            str(live),
            "--backup",
            str(options.backup_dir),
            "--executable",
            str(options.executable),
            "--log",
            str(options.log_path),
        ]
        if extra_args:
            args.extend(["--", *extra_args])

        logger.info(
            "Handing swap off to script",
            extra={"swap_script": str(handoff_script), "staging_dir": str(staging_dir)},
        )

        return RelaunchInstruction(
            strategy=self.kind,
            command=[*_interpreter_for(handoff_script), str(handoff_script), *args],
            cwd=str(handoff_dir),
            exit_current=True,
        )


_STRATEGIES: dict[SwapStrategyKind, type[SwapStrategy]] = {
    SwapStrategyKind.APP_SWAP: AppSwapStrategy,
    SwapStrategyKind.SCRIPT_SWAP: ScriptSwapStrategy,
}


def create_swap_strategy(kind: SwapStrategyKind | str) -> SwapStrategy:
    """
    Return the swap strategy registered for ``kind``.

    Raises:
        InvalidArgumentError: For an unknown strategy name.
    """
    try:
        return _STRATEGIES[SwapStrategyKind(kind)]()
    except ValueError:
        raise InvalidArgumentError(
            f"Unknown swap strategy: {kind}",
            details={"valid": [k.value for k in SwapStrategyKind]},
        ) from None


def launch(instruction: RelaunchInstruction) -> subprocess.Popen[Any]:
    """
    Start the relaunch command detached from the current process.

    Raises:
        SwapError: If the command cannot be started.
    """
    popen_kwargs: dict[str, Any] = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "close_fds": True,
    }
    if os.name == "nt":  # pragma: no cover - exercised on Windows
        popen_kwargs["creationflags"] = getattr(subprocess, "DETACHED_PROCESS", 0) | getattr(
            subprocess, "CREATE_NEW_PROCESS_GROUP", 0
        )
    else:
        popen_kwargs["start_new_session"] = True

    logger.info(
        "Launching relaunch command",
        extra={"command": instruction.command, "cwd": instruction.cwd},
    )
    try:
        return subprocess.Popen(instruction.command, cwd=instruction.cwd, **popen_kwargs)
    except OSError as e:
        raise SwapError(
            f"Failed to launch {instruction.command[0]}: {e}",
            details={"command": instruction.command},
        ) from e
