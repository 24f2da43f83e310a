"""
Release archive extraction for the auto-updater.

Supported formats are selected by file name suffix only (case-insensitive):
- ``.tar.gz``: gzip-compressed tar
- ``.zip``

Extraction is blocking and meant to run in a worker thread. Progress is
reported per entry as ``(entries_done, total_entries)``. Entries that
would land outside the destination directory abort the extraction.
"""

from __future__ import annotations

import os
import shutil
import stat
import tarfile
import zipfile
from collections.abc import Callable
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any

from autoupdater.logging import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], Any]


class ArchiveType(str, Enum):
    """Recognized release archive formats, keyed by suffix."""

    TAR_GZ = ".tar.gz"
    ZIP = ".zip"


class UnsafeArchiveError(ValueError):
    """Raised for archive entries that escape the destination directory."""


def detect_archive_type(path: Path | str) -> ArchiveType | None:
    """Return the archive type for ``path`` or None if the suffix is unknown."""
    name = Path(path).name.lower()
    for archive_type in ArchiveType:
        if name.endswith(archive_type.value):
            return archive_type
    return None


def archive_base_name(path: Path | str) -> str:
    """
    Return the archive file name without its format suffix.

    Example:
        >>> archive_base_name("/tmp/app-1.1.0.tar.gz")
        'app-1.1.0'
    """
    name = Path(path).name
    archive_type = detect_archive_type(name)
    if archive_type is None:
        return Path(name).stem
    return name[: -len(archive_type.value)]


def _safe_destination(root: Path, member_name: str) -> Path:
    if PurePosixPath(member_name).is_absolute() or Path(member_name).is_absolute():
        raise UnsafeArchiveError(f"Archive entry has an absolute path: {member_name}")
    destination = (root / member_name).resolve()
    if destination != root and root not in destination.parents:
        raise UnsafeArchiveError(f"Archive entry escapes the destination: {member_name}")
    return destination


def unpack_tar_gz(
    archive_path: Path | str,
    dest_dir: Path | str,
    on_progress: ProgressCallback | None = None,
) -> int:
    """
    Extract a ``.tar.gz`` archive into ``dest_dir``.

    Returns:
        Number of entries extracted.

    Raises:
        tarfile.TarError: If the archive is corrupt or an entry is rejected.
        UnsafeArchiveError: If an entry would escape ``dest_dir``.
        OSError: If files cannot be written.
    """
    root = Path(dest_dir)
    root.mkdir(parents=True, exist_ok=True)
    root = root.resolve()

    with tarfile.open(archive_path, "r:gz") as tar:
        members = tar.getmembers()
        total = len(members)
        for index, member in enumerate(members, start=1):
            _safe_destination(root, member.name)
            tar.extract(member, root, filter="data")
            if on_progress is not None:
                on_progress(index, total)

    logger.debug(
        "Extracted tar.gz archive",
        extra={"path": str(archive_path), "dest": str(root), "entries": total},
    )
    return total


def _safe_link_target(root: Path, link: Path, target: str) -> None:
    if PurePosixPath(target).is_absolute() or Path(target).is_absolute():
        raise UnsafeArchiveError(f"Archive symlink has an absolute target: {link} -> {target}")
    resolved = (link.parent / target).resolve()
    if resolved != root and root not in resolved.parents:
        raise UnsafeArchiveError(f"Archive symlink escapes the destination: {link} -> {target}")


def _extract_zip_symlink(
    archive: zipfile.ZipFile,
    member: zipfile.ZipInfo,
    root: Path,
    destination: Path,
) -> None:
    target = archive.read(member).decode("utf-8")
    _safe_link_target(root, destination, target)
    destination.parent.mkdir(parents=True, exist_ok=True)
    if destination.is_symlink() or destination.is_file():
        destination.unlink()
    os.symlink(target, destination)


def unpack_zip(
    archive_path: Path | str,
    dest_dir: Path | str,
    on_progress: ProgressCallback | None = None,
) -> int:
    """
    Extract a ``.zip`` archive into ``dest_dir``.

    POSIX permission bits stored in the entries are restored so bundled
    executables stay runnable, and symlink entries (macOS framework
    ``Versions/Current`` links, versioned shared libraries) are recreated
    as symlinks.

    Returns:
        Number of entries extracted.

    Raises:
        zipfile.BadZipFile: If the archive is corrupt.
        NotImplementedError: If an entry uses an unsupported compression method.
        RuntimeError: If an entry is encrypted.
        lzma.LZMAError: If LZMA-compressed data is corrupt.
        UnsafeArchiveError: If an entry or symlink target would escape ``dest_dir``.
        OSError: If files cannot be written.
    """
    root = Path(dest_dir)
    root.mkdir(parents=True, exist_ok=True)
    root = root.resolve()

    with zipfile.ZipFile(archive_path) as archive:
        members = archive.infolist()
        total = len(members)
        for index, member in enumerate(members, start=1):
            destination = _safe_destination(root, member.filename)
            mode = member.external_attr >> 16
            if member.is_dir():
                destination.mkdir(parents=True, exist_ok=True)
            elif stat.S_ISLNK(mode):
                _extract_zip_symlink(archive, member, root, destination)
            else:
                destination.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(member) as source, open(destination, "wb") as target:
                    shutil.copyfileobj(source, target)
                if mode & 0o777:
                    os.chmod(destination, mode & 0o777)
            if on_progress is not None:
                on_progress(index, total)

    logger.debug(
        "Extracted zip archive",
        extra={"path": str(archive_path), "dest": str(root), "entries": total},
    )
    return total


UNPACKERS: dict[ArchiveType, Callable[..., int]] = {
    ArchiveType.TAR_GZ: unpack_tar_gz,
    ArchiveType.ZIP: unpack_zip,
}


def resolve_staging_dir(update_dir: Path, archive_path: Path | str) -> Path:
    """
    Return the directory holding the unpacked release.

    Some archivers wrap the contents in a top-level folder named after the
    archive, others do not. When ``update_dir/<archive base name>`` is a
    directory, that nested folder is the effective staging directory.
    """
    nested = update_dir / archive_base_name(archive_path)
    if nested.is_dir():
        return nested
    return update_dir
