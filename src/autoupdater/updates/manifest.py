"""
Manifest models for the auto-updater.

- LocalManifest: the installed build (``name`` and ``version`` from the
  application's package.json).
- RemoteManifest: the release description fetched from the release
  location; requires ``version`` and ``artifact-file``, other fields are
  kept but ignored.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from autoupdater.errors import InvalidArgumentError, InvalidManifestError
from autoupdater.updates.version import parse_semantic_version

ERR_INVALID_REMOTE_MANIFEST = "Invalid manifest structure"


def _check_version(v: str) -> str:
    try:
        parse_semantic_version(v)
    except InvalidArgumentError as e:
        raise ValueError(e.message) from e
    return v


class LocalManifest(BaseModel):
    """
    Manifest of the currently installed build.

    Attributes:
        name: Application name; also the default executable name.
        version: Installed semantic version.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(
        ...,
        min_length=1,
        description="Application name",
    )
    version: str = Field(
        ...,
        description="Installed semantic version",
    )

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate the version is a valid semantic version."""
        return _check_version(v)


class RemoteManifest(BaseModel):
    """
    Manifest describing the release published at the release location.

    Attributes:
        version: Released semantic version.
        artifact_file: Archive path relative to the release base URL
            (``artifact-file`` in the JSON document).
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    version: str = Field(
        ...,
        description="Released semantic version",
    )
    artifact_file: str = Field(
        ...,
        alias="artifact-file",
        min_length=1,
        description="Release archive path relative to the base URL",
    )

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate the version is a valid semantic version."""
        return _check_version(v)


def coerce_remote_manifest(remote_manifest: RemoteManifest | dict[str, Any] | None) -> RemoteManifest:
    """
    Validate a remote manifest given as a model or a raw JSON mapping.

    Raises:
        InvalidManifestError: If the manifest is absent, not a mapping, or
            lacks ``version``/``artifact-file``.
    """
    if isinstance(remote_manifest, RemoteManifest):
        return remote_manifest

    if not remote_manifest or not isinstance(remote_manifest, dict):
        raise InvalidManifestError(
            ERR_INVALID_REMOTE_MANIFEST,
            details={"manifest": remote_manifest},
        )

    try:
        return RemoteManifest.model_validate(remote_manifest)
    except ValidationError as e:
        raise InvalidManifestError(
            ERR_INVALID_REMOTE_MANIFEST,
            details={
                "manifest": remote_manifest,
                "errors": [error["msg"] for error in e.errors()],
            },
        ) from e


def load_local_manifest(path: Path | str) -> LocalManifest:
    """
    Load the installed application's manifest from a package.json file.

    Raises:
        InvalidManifestError: If the file is missing, unreadable or invalid.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return LocalManifest.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise InvalidManifestError(
            f"Cannot load local manifest from {path}: {e}",
            details={"path": str(path)},
        ) from e
