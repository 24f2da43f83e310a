"""
Semantic version parsing and precedence for the auto-updater.

Implements the ordering rules of Semantic Versioning 2.0.0:
- MAJOR.MINOR.PATCH compared numerically
- a pre-release version has lower precedence than the release
- pre-release identifiers compared field by field, numeric identifiers
  numerically and below alphanumeric ones, a shorter set below a longer one
- build metadata is ignored
"""

from __future__ import annotations

import re
from typing import Any

from autoupdater.errors import InvalidArgumentError

# Accepts: 1.0.0, 1.2.3, 2.0.0-beta.1, 1.0.0-alpha+build.123
SEMVER_PATTERN = re.compile(
    r"^(?P<major>0|[1-9]\d*)"
    r"\.(?P<minor>0|[1-9]\d*)"
    r"\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+(?P<buildmetadata>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)


def parse_semantic_version(version: str) -> dict[str, Any]:
    """
    Parse and validate a semantic version string.

    A single leading ``v`` or ``=`` is tolerated, as release tooling
    commonly writes tags that way.

    Args:
        version: Version string (e.g., "1.0.0", "1.2.3-beta.1").

    Returns:
        Dictionary with major, minor, patch, prerelease and buildmetadata.

    Raises:
        InvalidArgumentError: If version string is invalid.
    """
    if not version or not isinstance(version, str):
        raise InvalidArgumentError(
            "Version string cannot be empty",
            details={"version": version},
        )

    candidate = version.strip()
    if candidate[:1] in ("v", "="):
        candidate = candidate[1:]

    match = SEMVER_PATTERN.match(candidate)
    if not match:
        raise InvalidArgumentError(
            f"Invalid semantic version: {version}",
            details={
                "version": version,
                "format": "MAJOR.MINOR.PATCH[-PRERELEASE][+BUILDMETADATA]",
                "examples": ["1.0.0", "1.2.3", "2.0.0-beta.1"],
            },
        )

    return {
        "major": int(match.group("major")),
        "minor": int(match.group("minor")),
        "patch": int(match.group("patch")),
        "prerelease": match.group("prerelease"),
        "buildmetadata": match.group("buildmetadata"),
    }


def _compare_prerelease(pre1: str, pre2: str) -> int:
    """Compare two dot-separated pre-release strings."""
    ids1 = pre1.split(".")
    ids2 = pre2.split(".")

    for a, b in zip(ids1, ids2):
        if a == b:
            continue
        a_numeric = a.isdigit()
        b_numeric = b.isdigit()
        if a_numeric and b_numeric:
            return -1 if int(a) < int(b) else 1
        # Numeric identifiers always sort below alphanumeric ones
        if a_numeric:
            return -1
        if b_numeric:
            return 1
        return -1 if a < b else 1

    if len(ids1) == len(ids2):
        return 0
    return -1 if len(ids1) < len(ids2) else 1


def compare_versions(v1: str, v2: str) -> int:
    """
    Compare two semantic versions.

    Args:
        v1: First version string.
        v2: Second version string.

    Returns:
        -1 if v1 < v2, 0 if v1 == v2, 1 if v1 > v2

    Raises:
        InvalidArgumentError: If either version is invalid.
    """
    p1 = parse_semantic_version(v1)
    p2 = parse_semantic_version(v2)

    for key in ("major", "minor", "patch"):
        if p1[key] < p2[key]:
            return -1
        if p1[key] > p2[key]:
            return 1

    pre1 = p1["prerelease"]
    pre2 = p2["prerelease"]

    if pre1 is None and pre2 is None:
        return 0
    if pre1 is None:
        return 1
    if pre2 is None:
        return -1
    return _compare_prerelease(pre1, pre2)


def is_newer_version(candidate: str, current: str) -> bool:
    """Return True iff ``candidate`` has strictly higher precedence than ``current``."""
    return compare_versions(candidate, current) > 0
