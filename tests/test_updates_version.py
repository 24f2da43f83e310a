"""
Tests for the semantic version module.

Tests cover:
- Semantic version parsing and validation
- Precedence rules including pre-release identifiers
- The strictly-newer check used by the update gate
"""

from __future__ import annotations

import pytest

from autoupdater.errors import InvalidArgumentError
from autoupdater.updates.version import (
    compare_versions,
    is_newer_version,
    parse_semantic_version,
)

# =============================================================================
# Semantic Version Parsing Tests
# =============================================================================


class TestParseSemanticVersion:
    """Tests for parse_semantic_version function."""

    def test_parse_simple_version(self) -> None:
        """Test parsing simple version like 1.0.0."""
        result = parse_semantic_version("1.0.0")
        assert result["major"] == 1
        assert result["minor"] == 0
        assert result["patch"] == 0
        assert result["prerelease"] is None
        assert result["buildmetadata"] is None

    def test_parse_version_with_prerelease_and_build(self) -> None:
        """Test parsing version with both prerelease and build metadata."""
        result = parse_semantic_version("2.1.3-alpha.2+build.456")
        assert result["major"] == 2
        assert result["minor"] == 1
        assert result["patch"] == 3
        assert result["prerelease"] == "alpha.2"
        assert result["buildmetadata"] == "build.456"

    def test_accept_v_prefix(self) -> None:
        """Test that a leading 'v' or '=' is tolerated."""
        assert parse_semantic_version("v1.2.3")["minor"] == 2
        assert parse_semantic_version("=1.2.3")["patch"] == 3

    def test_reject_empty_string(self) -> None:
        """Test that empty string is rejected."""
        with pytest.raises(InvalidArgumentError) as exc_info:
            parse_semantic_version("")
        assert "empty" in exc_info.value.message.lower()

    def test_reject_invalid_format(self) -> None:
        """Test that invalid formats are rejected."""
        invalid_versions = ["latest", "1.0", "1.0.0.0", "1.a.0", "01.0.0", "1.0.0-", "1.0.0+"]
        for version in invalid_versions:
            with pytest.raises(InvalidArgumentError):
                parse_semantic_version(version)


class TestCompareVersions:
    """Tests for compare_versions function."""

    def test_compare_equal_versions(self) -> None:
        """Test comparing equal versions."""
        assert compare_versions("1.0.0", "1.0.0") == 0

    def test_numeric_not_lexical(self) -> None:
        """Test components are compared numerically."""
        assert compare_versions("1.10.0", "1.9.0") == 1
        assert compare_versions("1.0.9", "1.0.10") == -1

    def test_compare_prerelease_vs_release(self) -> None:
        """Test that release > prerelease."""
        assert compare_versions("1.0.0", "1.0.0-beta") == 1
        assert compare_versions("1.0.0-beta", "1.0.0") == -1

    def test_prerelease_ordering(self) -> None:
        """Test the pre-release precedence chain from the semver rules."""
        chain = [
            "1.0.0-alpha",
            "1.0.0-alpha.1",
            "1.0.0-alpha.beta",
            "1.0.0-beta",
            "1.0.0-beta.2",
            "1.0.0-beta.11",
            "1.0.0-rc.1",
            "1.0.0",
        ]
        for lower, higher in zip(chain, chain[1:]):
            assert compare_versions(lower, higher) == -1
            assert compare_versions(higher, lower) == 1

    def test_build_metadata_ignored(self) -> None:
        """Test build metadata does not affect precedence."""
        assert compare_versions("1.0.0+build.1", "1.0.0+build.2") == 0

    def test_invalid_version_raises(self) -> None:
        """Test an invalid operand raises InvalidArgumentError."""
        with pytest.raises(InvalidArgumentError):
            compare_versions("1.0.0", "one")


class TestIsNewerVersion:
    """Tests for is_newer_version function."""

    @pytest.mark.parametrize(
        ("candidate", "current", "expected"),
        [
            ("1.1.0", "1.0.0", True),
            ("1.0.0", "1.0.0", False),
            ("0.9.0", "1.0.0", False),
            ("1.0.0", "1.0.0-rc.1", True),
            ("2.0.0-beta", "1.9.9", True),
        ],
    )
    def test_strictly_greater(self, candidate: str, current: str, expected: bool) -> None:
        """Test only strictly greater versions count as newer."""
        assert is_newer_version(candidate, current) is expected
