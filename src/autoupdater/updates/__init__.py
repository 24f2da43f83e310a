"""
Update pipeline for the application auto-updater.

This package implements the individual update stages:
- Version comparison and manifest models
- Artifact download over HTTP with debounced progress
- Release archive extraction into a staging directory
- Swap strategies that promote the staged release
- The AutoUpdater orchestrator tying the stages together
"""

from autoupdater.updates.archive import ArchiveType, detect_archive_type
from autoupdater.updates.debounce import Debouncer
from autoupdater.updates.events import EventEmitter
from autoupdater.updates.manifest import (
    LocalManifest,
    RemoteManifest,
    load_local_manifest,
)
from autoupdater.updates.operations import (
    ensure_directory,
    replace_directory,
    safe_remove_directory,
)
from autoupdater.updates.strategies import (
    AppSwapStrategy,
    RelaunchInstruction,
    ScriptSwapStrategy,
    SwapStrategy,
    create_swap_strategy,
    launch,
)
from autoupdater.updates.swap_script import render_swap_script, write_swap_script
from autoupdater.updates.updater import AutoUpdater, UpdateState
from autoupdater.updates.version import (
    compare_versions,
    is_newer_version,
    parse_semantic_version,
)

__all__ = [
    # Orchestrator
    "AutoUpdater",
    "UpdateState",
    "EventEmitter",
    "Debouncer",
    # Manifests and versions
    "LocalManifest",
    "RemoteManifest",
    "load_local_manifest",
    "compare_versions",
    "is_newer_version",
    "parse_semantic_version",
    # Archives
    "ArchiveType",
    "detect_archive_type",
    # Operations
    "ensure_directory",
    "replace_directory",
    "safe_remove_directory",
    # Swap strategies
    "SwapStrategy",
    "AppSwapStrategy",
    "ScriptSwapStrategy",
    "RelaunchInstruction",
    "create_swap_strategy",
    "launch",
    "render_swap_script",
    "write_swap_script",
]
