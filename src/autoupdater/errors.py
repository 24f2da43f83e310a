"""
Error types for the application auto-updater.

This module defines the UpdaterError base class and one subclass per
pipeline failure kind. Every stage catches the failure of the library it
delegates to (httpx, tarfile, zipfile, the filesystem) and re-raises one
of these summarized errors, chaining the original exception as the cause.

Callers should branch on the class (or ``error_code``) only; the chained
``__cause__`` is kept for logging and diagnostics.
"""

from __future__ import annotations

from typing import Any


class UpdaterError(Exception):
    """
    Base exception class for update pipeline errors.

    Attributes:
        error_code: Stable error code string (e.g., "invalid_manifest",
            "download_failed", "unpack_failed").
        message: Human-readable error message.
        details: Structured context (URL, path, version, ...).
        retryable: Whether repeating the whole update cycle may succeed.

    Example:
        >>> raise UpdaterError(
        ...     error_code="download_failed",
        ...     message="Cannot download package from https://example.com/app.zip",
        ...     details={"url": "https://example.com/app.zip"},
        ... )
    """

    retryable: bool = True

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize an UpdaterError.

        Args:
            error_code: Error code string identifying the error category.
            message: Human-readable error message.
            details: Optional dictionary with structured error details.
        """
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for serialization.

        Returns:
            Dictionary with error_code, message, retryable and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class InvalidArgumentError(UpdaterError):
    """
    Error raised for malformed input such as an invalid semantic version
    or an unusable option value.
    """

    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InvalidArgumentError."""
        super().__init__(
            error_code="invalid_argument", message=message, details=details
        )


class InvalidManifestError(UpdaterError):
    """
    Error raised when a manifest is absent or lacks required fields.

    Raised before any network or disk side effect takes place.
    """

    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InvalidManifestError."""
        super().__init__(
            error_code="invalid_manifest", message=message, details=details
        )


class ManifestFetchError(UpdaterError):
    """Error raised when the remote manifest cannot be fetched or parsed."""

    def __init__(self, url: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a ManifestFetchError for ``url``."""
        super().__init__(
            error_code="manifest_fetch_failed",
            message=f"Cannot read remote manifest from {url}",
            details={"url": url, **(details or {})},
        )
        self.url = url


class DownloadError(UpdaterError):
    """Error raised when the release artifact cannot be transferred."""

    def __init__(self, url: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a DownloadError for ``url``."""
        super().__init__(
            error_code="download_failed",
            message=f"Cannot download package from {url}",
            details={"url": url, **(details or {})},
        )
        self.url = url


class FailedPreconditionError(UpdaterError):
    """
    Error raised when a pipeline step is invoked out of order, e.g.
    ``unpack`` before a successful ``download``.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a FailedPreconditionError."""
        super().__init__(
            error_code="failed_precondition", message=message, details=details
        )


class UnsupportedArchiveError(UpdaterError):
    """
    Error raised when the release archive suffix is not recognized.

    This is terminal: retrying the same artifact can never succeed.
    """

    retryable = False

    def __init__(self, path: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an UnsupportedArchiveError for ``path``."""
        super().__init__(
            error_code="unsupported_archive_type",
            message="Release archive of unsupported type",
            details={"path": path, **(details or {})},
        )
        self.path = path


class UnpackError(UpdaterError):
    """Error raised when a recognized archive cannot be extracted."""

    def __init__(self, message: str, path: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an UnpackError for the archive at ``path``."""
        super().__init__(
            error_code="unpack_failed",
            message=message,
            details={"path": path, **(details or {})},
        )
        self.path = path


class SwapError(UpdaterError):
    """
    Error raised when the swap strategy cannot finalize the update.

    When raised, the live installation is either untouched or fully
    restored from the backup, and no relaunch has been attempted.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a SwapError."""
        super().__init__(error_code="swap_failed", message=message, details=details)
