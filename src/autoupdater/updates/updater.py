"""
Update orchestration for a locally installed application.

The AutoUpdater exposes the update pipeline as independently awaitable
steps; the caller sequences them and may stop between any two:

    updater = AutoUpdater(local_manifest, {"url": "https://example.com/app/"})
    remote = await updater.read_remote_manifest()
    if await updater.check_new_version(remote):
        archive = await updater.download(remote)
        await updater.unpack(archive)
        instruction = await updater.apply_swap()
        launch(instruction)

Lifecycle states:
- idle: nothing in progress
- checking: fetching the remote manifest
- downloading: transferring the release archive
- downloaded: archive available, not unpacked yet
- unpacking: extracting into the staging directory
- staged: staging directory complete, ready to swap
- swapping: the swap strategy is running
- swapped: the swap strategy finished; relaunch pending
- failed: the last step failed

One pipeline per instance at a time: ``download`` clears the shared
staging directory, so concurrent calls on one instance race.
"""

from __future__ import annotations

import asyncio
import lzma
import tarfile
import tempfile
import time
import zipfile
import zlib
from collections.abc import Sequence
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from autoupdater import env
from autoupdater.config import UpdaterOptions
from autoupdater.errors import (
    DownloadError,
    FailedPreconditionError,
    InvalidArgumentError,
    InvalidManifestError,
    ManifestFetchError,
    SwapError,
    UnpackError,
    UnsupportedArchiveError,
)
from autoupdater.logging import get_logger
from autoupdater.updates.archive import (
    UNPACKERS,
    ArchiveType,
    UnsafeArchiveError,
    detect_archive_type,
    resolve_staging_dir,
)
from autoupdater.updates.debounce import Debouncer
from autoupdater.updates.events import EventEmitter
from autoupdater.updates.manifest import (
    LocalManifest,
    RemoteManifest,
    coerce_remote_manifest,
)
from autoupdater.updates.operations import safe_remove_directory
from autoupdater.updates.strategies import (
    RelaunchInstruction,
    SwapStrategy,
    create_swap_strategy,
)
from autoupdater.updates.transport import download_file, read_json
from autoupdater.updates.version import is_newer_version

logger = get_logger(__name__)

REMOTE_MANIFEST_NAME = "package.json"

# zipfile raises NotImplementedError for unsupported compression methods and
# RuntimeError for encrypted entries.
_UNPACK_ERRORS = (
    tarfile.TarError,
    zipfile.BadZipFile,
    zlib.error,
    lzma.LZMAError,
    UnsafeArchiveError,
    UnicodeDecodeError,
    NotImplementedError,
    RuntimeError,
    EOFError,
    OSError,
)


class UpdateState(str, Enum):
    """Lifecycle states reported through the ``state`` event."""

    IDLE = "idle"
    CHECKING = "checking"
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"
    UNPACKING = "unpacking"
    STAGED = "staged"
    SWAPPING = "swapping"
    SWAPPED = "swapped"
    FAILED = "failed"


class AutoUpdater(EventEmitter):
    """
    Checks for, downloads, unpacks and swaps in new application releases.

    Events:
        download(bytes_transferred): debounced transfer progress.
        install(files_unpacked, total_files): debounced extraction progress.
        state(new_state, old_state): lifecycle transitions.

    Attributes:
        manifest: Manifest of the installed build.
        options: Resolved options snapshot for this update cycle.
        strategy: Swap strategy bound at construction.
        state: Current lifecycle state.
        remote_manifest: Last manifest fetched by read_remote_manifest.
    """

    def __init__(
        self,
        manifest: LocalManifest | dict[str, Any],
        options: UpdaterOptions | dict[str, Any] | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the AutoUpdater.

        Args:
            manifest: Installed application manifest (``name``, ``version``).
            options: UpdaterOptions or a mapping of option names.
            transport: Optional httpx transport used for all requests.

        Raises:
            InvalidManifestError: If the local manifest is invalid.
            InvalidArgumentError: If the options are invalid.
        """
        super().__init__()

        try:
            self._manifest = (
                manifest
                if isinstance(manifest, LocalManifest)
                else LocalManifest.model_validate(manifest)
            )
        except ValidationError as e:
            raise InvalidManifestError(
                "Invalid local manifest",
                details={"errors": [error["msg"] for error in e.errors()]},
            ) from e

        try:
            if options is None:
                options = UpdaterOptions()
            elif not isinstance(options, UpdaterOptions):
                options = UpdaterOptions.model_validate(options)
        except ValidationError as e:
            raise InvalidArgumentError(
                "Invalid updater options",
                details={"errors": [error["msg"] for error in e.errors()]},
            ) from e

        self._started_at = time.time()
        self._options = options.resolved(self._manifest.name, self._started_at)
        self._base_update_dir = self._options.update_dir
        self._strategy = create_swap_strategy(self._options.strategy)
        self._transport = transport
        self._state = UpdateState.IDLE
        self._remote_manifest: RemoteManifest | None = None
        self._staged_dir: Path | None = None

        if self._options.diagnostics:
            logger.info(
                "Paths",
                extra={
                    "platform_full": env.PLATFORM_FULL,
                    "exec_dir_default": str(env.EXEC_DIR),
                    "update_dir_default": str(env.UPDATE_DIR),
                    "backup_dir_default": str(env.BACKUP_DIR),
                    "log_path_default": str(env.LOG_PATH),
                },
            )
            logger.info(
                "Options",
                extra={"options": self._options.model_dump(mode="json")},
            )

    @property
    def manifest(self) -> LocalManifest:
        """Get the installed application manifest."""
        return self._manifest

    @property
    def options(self) -> UpdaterOptions:
        """Get the resolved options snapshot."""
        return self._options

    @property
    def strategy(self) -> SwapStrategy:
        """Get the bound swap strategy."""
        return self._strategy

    @property
    def state(self) -> UpdateState:
        """Get the current lifecycle state."""
        return self._state

    @property
    def remote_manifest(self) -> RemoteManifest | None:
        """Get the last fetched remote manifest."""
        return self._remote_manifest

    @property
    def staged_dir(self) -> Path | None:
        """Get the staging directory produced by the last successful unpack."""
        return self._staged_dir

    def _set_state(self, new_state: UpdateState) -> None:
        old_state = self._state
        if new_state == old_state:
            return
        self._state = new_state
        logger.debug(
            f"State transition: {old_state.value} -> {new_state.value}",
            extra={"old_state": old_state.value, "new_state": new_state.value},
        )
        self.emit("state", new_state, old_state)

    def _release_url(self, relative: str) -> str:
        if not self._options.url:
            raise FailedPreconditionError(
                "No release URL configured",
                details={"hint": "Set the 'url' option to the release location"},
            )
        return self._options.url + relative.lstrip("/")

    def _debounce_ms(self, debounce_time: int | None) -> int:
        return self._options.debounce_time if debounce_time is None else debounce_time

    async def read_remote_manifest(self) -> RemoteManifest:
        """
        Fetch the release manifest from ``<url>package.json``.

        Returns:
            The validated RemoteManifest.

        Raises:
            FailedPreconditionError: If no release URL is configured.
            ManifestFetchError: If the manifest cannot be fetched or parsed.
            InvalidManifestError: If it lacks ``version`` or ``artifact-file``.
        """
        url = self._release_url(REMOTE_MANIFEST_NAME)
        self._set_state(UpdateState.CHECKING)

        try:
            data = await read_json(
                url,
                timeout=self._options.timeout,
                transport=self._transport,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "Failed to read remote manifest",
                extra={"url": url, "error": str(e)},
            )
            self._set_state(UpdateState.FAILED)
            raise ManifestFetchError(url, details={"error": str(e)}) from e

        try:
            remote_manifest = coerce_remote_manifest(data)
        except InvalidManifestError:
            self._set_state(UpdateState.FAILED)
            raise

        self._remote_manifest = remote_manifest
        self._set_state(UpdateState.IDLE)
        logger.info(
            "Remote manifest read",
            extra={"url": url, "version": remote_manifest.version},
        )
        return remote_manifest

    async def check_new_version(
        self,
        remote_manifest: RemoteManifest | dict[str, Any] | None,
    ) -> bool:
        """
        Check whether the remote release is newer than the installed build.

        Returns:
            True iff the remote version is strictly greater.

        Raises:
            InvalidManifestError: If the manifest is absent or malformed.
        """
        remote = coerce_remote_manifest(remote_manifest)
        newer = is_newer_version(remote.version, self._manifest.version)
        logger.info(
            "Update available" if newer else "Already up to date",
            extra={"local_version": self._manifest.version, "remote_version": remote.version},
        )
        return newer

    async def download(
        self,
        remote_manifest: RemoteManifest | dict[str, Any] | None,
        *,
        debounce_time: int | None = None,
    ) -> Path:
        """
        Download the release archive into the platform temp directory.

        The staging directory is removed before the transfer starts.

        Args:
            remote_manifest: Manifest of the release to download.
            debounce_time: Milliseconds between ``download`` events;
                defaults to the ``debounce_time`` option.

        Returns:
            Absolute path of the downloaded archive.

        Raises:
            InvalidManifestError: If the manifest is malformed.
            FailedPreconditionError: If no release URL is configured or the
                staging directory cannot be cleared.
            DownloadError: If the transfer fails.
        """
        remote = coerce_remote_manifest(remote_manifest)
        artifact_url = self._release_url(remote.artifact_file)

        self._staged_dir = None
        self._options = self._options.model_copy(update={"update_dir": self._base_update_dir})
        self._set_state(UpdateState.DOWNLOADING)

        try:
            safe_remove_directory(self._base_update_dir, ignore_errors=False)
        except FailedPreconditionError:
            self._set_state(UpdateState.FAILED)
            raise

        debounced = Debouncer(
            lambda length: self.emit("download", length),
            self._debounce_ms(debounce_time),
        )

        logger.info("Downloading release", extra={"url": artifact_url})
        try:
            update_file = await download_file(
                artifact_url,
                tempfile.gettempdir(),
                debounced,
                timeout=self._options.timeout,
                transport=self._transport,
            )
        except (httpx.HTTPError, OSError, ValueError) as e:
            debounced.cancel()
            logger.error(
                "Failed to download release",
                extra={"url": artifact_url, "error": str(e)},
            )
            self._set_state(UpdateState.FAILED)
            raise DownloadError(artifact_url, details={"error": str(e)}) from e

        debounced.flush()
        self._set_state(UpdateState.DOWNLOADED)
        logger.info(
            "Release downloaded",
            extra={"url": artifact_url, "path": str(update_file)},
        )
        return update_file

    async def unpack(
        self,
        update_file: Path | str | None,
        *,
        debounce_time: int | None = None,
    ) -> Path:
        """
        Extract the downloaded archive into the staging directory.

        When the archive wraps its contents in a folder named after itself,
        that folder becomes the staging directory for the rest of the
        pipeline.

        Args:
            update_file: Archive path returned by ``download``.
            debounce_time: Milliseconds between ``install`` events;
                defaults to the ``debounce_time`` option.

        Returns:
            The effective staging directory.

        Raises:
            FailedPreconditionError: If ``update_file`` is empty.
            UnsupportedArchiveError: If the suffix is neither .tar.gz nor .zip.
            UnpackError: If extraction fails.
        """
        if not update_file:
            raise FailedPreconditionError(
                "You have to call the download method first",
                details={"update_file": update_file},
            )

        update_path = Path(update_file)
        archive_type = detect_archive_type(update_path)
        if archive_type is None:
            raise UnsupportedArchiveError(str(update_path))

        update_dir = self._options.update_dir
        if self._options.diagnostics:
            logger.info(
                "Unpack",
                extra={"update_file": str(update_path), "update_dir": str(update_dir)},
            )

        self._staged_dir = None
        self._set_state(UpdateState.UNPACKING)

        loop = asyncio.get_running_loop()
        debounced = Debouncer(
            lambda done, total: self.emit("install", done, total),
            self._debounce_ms(debounce_time),
        )

        def on_progress(done: int, total: int) -> None:
            loop.call_soon_threadsafe(debounced, done, total)

        try:
            await asyncio.to_thread(
                UNPACKERS[archive_type],
                update_path,
                update_dir,
                on_progress,
            )
        except _UNPACK_ERRORS as e:
            debounced.cancel()
            logger.error(
                "Failed to unpack release",
                extra={"path": str(update_path), "error": str(e)},
            )
            self._set_state(UpdateState.FAILED)
            if archive_type == ArchiveType.ZIP:
                message = f"Cannot unpack .zip package {update_path}: {e}"
            else:
                message = f"Cannot unpack .tar.gz package {update_path}"
            raise UnpackError(message, str(update_path), details={"error": str(e)}) from e

        debounced.flush()

        staging_dir = resolve_staging_dir(update_dir, update_path)
        if staging_dir != update_dir:
            logger.debug(
                "Archive unpacked into a nested folder",
                extra={"update_dir": str(update_dir), "staging_dir": str(staging_dir)},
            )
            self._options = self._options.model_copy(update={"update_dir": staging_dir})

        self._staged_dir = staging_dir
        self._set_state(UpdateState.STAGED)
        logger.info(
            "Release unpacked",
            extra={"path": str(update_path), "staging_dir": str(staging_dir)},
        )
        return staging_dir

    async def apply_swap(self, extra_args: Sequence[str] = ()) -> RelaunchInstruction:
        """
        Run the bound swap strategy on the staged release.

        Args:
            extra_args: Arguments forwarded to the relaunched application.

        Returns:
            RelaunchInstruction to hand to :func:`launch`.

        Raises:
            FailedPreconditionError: If no unpack has succeeded since the
                last download.
            SwapError: If the strategy fails; the live installation is then
                untouched or restored.
        """
        if self._staged_dir is None:
            raise FailedPreconditionError(
                "Nothing staged: call unpack first",
                details={"state": self._state.value},
            )

        self._set_state(UpdateState.SWAPPING)
        try:
            instruction = await self._strategy.apply(
                self._staged_dir,
                self._options,
                extra_args,
            )
        except SwapError as e:
            logger.error(
                "Swap failed",
                extra={"strategy": self._strategy.kind.value, "error": e.message},
            )
            self._set_state(UpdateState.FAILED)
            raise

        self._set_state(UpdateState.SWAPPED)
        logger.info(
            "Swap finished",
            extra={"strategy": self._strategy.kind.value, "command": instruction.command},
        )
        return instruction
