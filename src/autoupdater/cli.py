"""
Command-line interface for the application auto-updater.

Usage:
    autoupdater [--config PATH] [--log-level LEVEL] [--debug] COMMAND

Commands:
    check              Report whether a newer release is available
    update             Download, unpack and swap in the newer release
    write-swap-script  Write the bundled swap script for ScriptSwap

Exit status is 0 on success, 1 on error and, for ``check``, 10 when an
update is available.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import httpx
import yaml
from pydantic import ValidationError

from autoupdater import __version__
from autoupdater.config import AppConfig, add_config_arguments, load_config
from autoupdater.errors import UpdaterError
from autoupdater.logging import get_logger, setup_logging
from autoupdater.updates.manifest import load_local_manifest
from autoupdater.updates.strategies import launch
from autoupdater.updates.swap_script import POSIX, WINDOWS, write_swap_script
from autoupdater.updates.updater import AutoUpdater

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_UPDATE_AVAILABLE = 10


def build_parser() -> argparse.ArgumentParser:
    """Build the ``autoupdater`` argument parser."""
    parser = argparse.ArgumentParser(
        prog="autoupdater",
        description="Application auto-updater",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    add_config_arguments(parser)

    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="Check for a newer release")
    check.add_argument(
        "--manifest",
        required=True,
        help="Path to the installed application's package.json",
    )

    update = subparsers.add_parser("update", help="Download and install a newer release")
    update.add_argument(
        "--manifest",
        required=True,
        help="Path to the installed application's package.json",
    )
    update.add_argument(
        "--no-swap",
        action="store_true",
        help="Stop after unpacking; leave the live installation untouched",
    )

    script = subparsers.add_parser("write-swap-script", help="Write the bundled swap script")
    script.add_argument("path", help="Destination file")
    script.add_argument(
        "--platform",
        choices=[WINDOWS, POSIX],
        default=None,
        help="Script flavour (defaults to the running platform)",
    )

    return parser


async def _check(updater: AutoUpdater) -> int:
    remote = await updater.read_remote_manifest()
    if await updater.check_new_version(remote):
        print(f"Update available: {updater.manifest.version} -> {remote.version}")
        return EXIT_UPDATE_AVAILABLE
    print(f"Up to date: {updater.manifest.version}")
    return EXIT_OK


async def _update(updater: AutoUpdater, *, swap: bool) -> int:
    remote = await updater.read_remote_manifest()
    if not await updater.check_new_version(remote):
        print(f"Up to date: {updater.manifest.version}")
        return EXIT_OK

    updater.on("download", lambda received: print(f"Downloaded {received} bytes"))
    updater.on("install", lambda done, total: print(f"Unpacked {done}/{total} entries"))

    print(f"Updating {updater.manifest.version} -> {remote.version}")
    archive = await updater.download(remote)
    staging_dir = await updater.unpack(archive)
    print(f"Release staged in {staging_dir}")

    if not swap:
        return EXIT_OK

    instruction = await updater.apply_swap()
    launch(instruction)
    print(f"Relaunching: {' '.join(instruction.command)}")
    return EXIT_OK


def _configure_logging(config: AppConfig) -> None:
    logging_config = config.logging
    if logging_config.log_path is None:
        logging_config = logging_config.model_copy(
            update={"log_path": str(config.updater.log_path)}
        )
    setup_logging(logging_config)


def main(
    argv: list[str] | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """
    Run the ``autoupdater`` command line.

    Args:
        argv: Arguments without the program name. If None, uses sys.argv.
        transport: Optional httpx transport for all requests.

    Returns:
        Process exit status.
    """
    if argv is None:
        argv = sys.argv[1:]

    args = build_parser().parse_args(argv)

    try:
        config = load_config(cli_args=argv)
    except (FileNotFoundError, yaml.YAMLError, ValidationError) as e:
        print(f"invalid_argument: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        _configure_logging(config)
    except OSError as e:
        print(f"failed_precondition: cannot open log file: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        if args.command == "write-swap-script":
            path = write_swap_script(args.path, args.platform)
            print(f"Wrote swap script to {path}")
            return EXIT_OK

        manifest = load_local_manifest(args.manifest)
        updater = AutoUpdater(manifest, config.updater, transport=transport)

        if args.command == "check":
            return asyncio.run(_check(updater))
        return asyncio.run(_update(updater, swap=not args.no_swap))
    except UpdaterError as e:
        logger.error(
            f"Command '{args.command}' failed: {e.message}",
            extra={"error_code": e.error_code, "details": e.details},
        )
        print(f"{e.error_code}: {e.message}", file=sys.stderr)
        return EXIT_ERROR
