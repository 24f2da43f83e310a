"""
Directory operations used by the update pipeline.

- Safe directory creation and removal
- Transactional replacement of an installation directory

CRITICAL: the live installation must never be left half replaced. The
replacement pattern is:
1. Copy the staged tree next to the live tree (same filesystem)
2. Rename the live tree to the backup location
3. Rename the staged copy into the live location

Steps 2 and 3 are single renames; a failure at step 3 renames the backup
back into place.
"""

from __future__ import annotations

import errno
import os
import shutil
import uuid
from pathlib import Path

from autoupdater.errors import FailedPreconditionError, SwapError
from autoupdater.logging import get_logger

logger = get_logger(__name__)


def ensure_directory(path: Path, *, parents: bool = True, mode: int = 0o755) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Path to the directory.
        parents: If True, create parent directories as needed.
        mode: Directory permissions (default 0o755).

    Returns:
        The directory path.

    Raises:
        FailedPreconditionError: If directory cannot be created.
    """
    try:
        path.mkdir(parents=parents, mode=mode, exist_ok=True)
        return path
    except OSError as e:
        raise FailedPreconditionError(
            f"Failed to create directory: {path}",
            details={"path": str(path), "error": str(e)},
        ) from e


def safe_remove_directory(path: Path, *, ignore_errors: bool = True) -> bool:
    """
    Remove a directory and its contents.

    Args:
        path: Path to the directory to remove.
        ignore_errors: If True, ignore errors during removal.

    Returns:
        True if directory was removed, False if it didn't exist.

    Raises:
        FailedPreconditionError: If removal fails and ignore_errors is False.
    """
    if not path.exists() and not path.is_symlink():
        return False

    try:
        if path.is_symlink() or not path.is_dir():
            path.unlink()
        else:
            shutil.rmtree(path, ignore_errors=ignore_errors)
        logger.debug("Removed directory", extra={"path": str(path)})
        return True
    except OSError as e:
        if not ignore_errors:
            raise FailedPreconditionError(
                f"Failed to remove directory: {path}",
                details={"path": str(path), "error": str(e)},
            ) from e
        return False


def _sibling_path(path: Path, tag: str) -> Path:
    """Return an unused hidden path next to ``path``."""
    return path.parent / f".{path.name}.{tag}-{uuid.uuid4().hex[:8]}"


def _move_aside(live: Path, backup: Path) -> Path:
    """
    Move ``live`` out of the way, leaving a complete copy at ``backup``.

    Returns:
        Where the live tree now is: ``backup`` itself after a plain rename,
        or a hidden sibling of ``live`` when the backup lives on another
        device and had to be copied.
    """
    try:
        os.rename(live, backup)
        return backup
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise

    logger.info(
        "Backup is on another device, copying",
        extra={"source": str(live), "backup": str(backup)},
    )
    try:
        shutil.copytree(live, backup, symlinks=True)
    except OSError:
        shutil.rmtree(backup, ignore_errors=True)
        raise

    aside = _sibling_path(live, "previous")
    os.rename(live, aside)
    return aside


def replace_directory(source: Path, target: Path, backup: Path) -> Path:
    """
    Replace ``target`` with a copy of ``source``, keeping the old tree at ``backup``.

    ``source`` is left untouched. A previous backup at ``backup`` is
    overwritten. If ``target`` does not exist yet, no backup is made.

    Args:
        source: Staged tree to promote.
        target: Live installation directory.
        backup: Where the current ``target`` is preserved.

    Returns:
        The backup path.

    Raises:
        FailedPreconditionError: If ``source`` is not a directory.
        SwapError: If any step fails; ``target`` then still holds the
            original tree.
    """
    if not source.is_dir():
        raise FailedPreconditionError(
            f"Staged directory does not exist: {source}",
            details={"source": str(source)},
        )

    ensure_directory(target.parent)
    if target.exists():
        try:
            safe_remove_directory(backup, ignore_errors=False)
        except FailedPreconditionError as e:
            raise SwapError(e.message, details=e.details) from e
        ensure_directory(backup.parent)

    staged = _sibling_path(target, "incoming")
    try:
        shutil.copytree(source, staged, symlinks=True)
    except OSError as e:
        safe_remove_directory(staged)
        raise SwapError(
            f"Failed to stage update next to {target}: {e}",
            details={"source": str(source), "target": str(target)},
        ) from e

    aside: Path | None = None
    if target.exists():
        try:
            aside = _move_aside(target, backup)
        except OSError as e:
            safe_remove_directory(staged)
            raise SwapError(
                f"Failed to back up {target}: {e}",
                details={"target": str(target), "backup": str(backup)},
            ) from e

    try:
        os.rename(staged, target)
    except OSError as e:
        logger.error(
            "Failed to promote staged tree, restoring previous installation",
            extra={"target": str(target), "error": str(e)},
        )
        if aside is not None:
            try:
                os.rename(aside, target)
            except OSError as restore_error:
                raise SwapError(
                    f"Failed to restore {target} from {aside}: {restore_error}",
                    details={"target": str(target), "preserved_at": str(aside)},
                ) from restore_error
        safe_remove_directory(staged)
        raise SwapError(
            f"Failed to replace {target}: {e}",
            details={"target": str(target), "backup": str(backup)},
        ) from e

    if aside is not None and aside != backup:
        safe_remove_directory(aside)

    logger.info(
        "Installation directory replaced",
        extra={"source": str(source), "target": str(target), "backup": str(backup)},
    )
    return backup
