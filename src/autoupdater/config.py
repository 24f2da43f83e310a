"""
Configuration management for the application auto-updater.

This module implements the UpdaterOptions and AppConfig Pydantic models and
configuration loading.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults, platform paths from ``env``)
2. YAML config file (``--config`` path or ./autoupdater.yml)
3. Environment variables (AUTOUPDATER_* prefix, __ for nesting)
4. Command-line arguments (highest precedence)
"""

from __future__ import annotations

import argparse
import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from autoupdater import env

DEFAULT_CONFIG_PATH = Path("autoupdater.yml")
DEFAULT_ENV_PREFIX = "AUTOUPDATER_"

# Milliseconds between coalesced progress events
DEFAULT_DEBOUNCE_TIME = 100


def rtrim_separators(value: str) -> str:
    """Strip trailing path separators, keeping a bare root intact."""
    stripped = value.rstrip("/\\")
    return stripped or value[:1]


# =============================================================================
# Updater Options
# =============================================================================


class SwapStrategyKind(str, Enum):
    """Available swap finalization strategies."""

    APP_SWAP = "AppSwap"
    SCRIPT_SWAP = "ScriptSwap"


class UpdaterOptions(BaseModel):
    """Options recognized by the AutoUpdater.

    Both the snake_case field names and the camelCase spellings used by
    release tooling (``backupDir``, ``execDir``, ...) are accepted.

    Attributes:
        url: Base URL of the release location; ``package.json`` and the
            artifact file are resolved relative to it.
        executable: Executable name override.
        backup_dir: Where the previous installation (or .app bundle) is
            moved to.
        exec_dir: The live installation directory. When ``executable``
            names a ``.app`` bundle, the folder containing that bundle; only
            the bundle is swapped.
        update_dir: Staging directory the release archive is unpacked into.
        log_path: Log file used by the updater and the swap script.
        verbose: Log resolved paths and options at construction.
        debug: Alias of ``verbose``.
        swap_script: Swap script path (required for ScriptSwap).
        strategy: Swap strategy to bind to the updater.
        accumulative_backup: Keep every backup by suffixing a timestamp.
        timeout: HTTP timeout in seconds.
        debounce_time: Minimum milliseconds between progress events.
    """

    model_config = ConfigDict(populate_by_name=True)

    url: str | None = Field(
        default=None,
        description="Base URL of the release location",
    )
    executable: str | None = Field(
        default=None,
        description="Executable name override",
    )
    backup_dir: Path = Field(
        default_factory=lambda: env.BACKUP_DIR,
        alias="backupDir",
        description="Backup directory for the previous installation",
    )
    exec_dir: Path = Field(
        default_factory=lambda: env.EXEC_DIR,
        alias="execDir",
        description="Live installation directory",
    )
    update_dir: Path = Field(
        default_factory=lambda: env.UPDATE_DIR,
        alias="updateDir",
        description="Staging directory for unpacked releases",
    )
    log_path: Path = Field(
        default_factory=lambda: env.LOG_PATH,
        alias="logPath",
        description="Update log file",
    )
    verbose: bool = Field(
        default=False,
        description="Enable diagnostic logging of resolved paths and options",
    )
    debug: bool = Field(
        default=False,
        description="Alias of verbose",
    )
    swap_script: Path | None = Field(
        default=None,
        alias="swapScript",
        description="External swap script (required for ScriptSwap)",
    )
    strategy: SwapStrategyKind = Field(
        default=SwapStrategyKind.APP_SWAP,
        description="Swap strategy: 'AppSwap' or 'ScriptSwap'",
    )
    accumulative_backup: bool = Field(
        default=False,
        alias="accumulativeBackup",
        description="Suffix the backup directory with the update start time",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout in seconds",
    )
    debounce_time: int = Field(
        default=DEFAULT_DEBOUNCE_TIME,
        ge=0,
        description="Minimum milliseconds between progress events",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Ensure the base URL ends with a slash so relative paths append."""
        if v is None or v == "":
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Release URL must be http(s): {v}")
        return v if v.endswith("/") else f"{v}/"

    @field_validator("exec_dir", mode="before")
    @classmethod
    def strip_exec_dir(cls, v: Any) -> Any:
        """Strip trailing separators from the installation directory."""
        if isinstance(v, str):
            return rtrim_separators(v)
        return v

    @model_validator(mode="after")
    def validate_swap_script(self) -> UpdaterOptions:
        """ScriptSwap cannot work without a script to hand off to."""
        if self.strategy == SwapStrategyKind.SCRIPT_SWAP and self.swap_script is None:
            raise ValueError("The ScriptSwap strategy requires the swap_script option")
        return self

    @property
    def diagnostics(self) -> bool:
        """Whether verbose diagnostic logging was requested."""
        return self.verbose or self.debug

    def resolved(self, app_name: str, started_at: float) -> UpdaterOptions:
        """
        Return the normalized snapshot used for one update cycle.

        Args:
            app_name: Application name from the local manifest.
            started_at: Unix timestamp the update cycle started at.

        Returns:
            A copy with the executable name defaulted, ``exec_dir`` stripped
            of trailing separators and, for accumulative backups, the backup
            directory suffixed with the start time in whole seconds.
        """
        update: dict[str, Any] = {
            "exec_dir": Path(rtrim_separators(str(self.exec_dir))),
            "executable": self.executable or env.get_executable(app_name),
        }
        if self.accumulative_backup:
            update["backup_dir"] = self.backup_dir.with_name(
                f"{self.backup_dir.name}_{int(started_at)}"
            )
        return self.model_copy(update=update)


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        log_to_stdout: Whether to log to stdout.
        json_format: Emit JSON records instead of plain text.
        log_path: Optional log file; falls back to the updater's log_path
            when unset.
    """

    level: str = Field(
        default="info",
        description="Log level: debug, info, warning, error",
    )
    log_to_stdout: bool = Field(
        default=True,
        description="Whether to log to stdout",
    )
    json_format: bool = Field(
        default=True,
        description="Emit JSON formatted log records",
    )
    log_path: str | None = Field(
        default=None,
        description="Log file path",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"debug", "info", "warn", "warning", "error", "critical"}
        v_lower = v.lower()
        if v_lower not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(sorted(valid_levels))}"
            )
        if v_lower == "warn":
            return "warning"
        return v_lower


# =============================================================================
# Main Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """
    Main configuration model.

    Attributes:
        updater: AutoUpdater options.
        logging: Logging configuration.
    """

    updater: UpdaterOptions = Field(
        default_factory=UpdaterOptions,
        description="AutoUpdater options",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: The base dictionary.
        override: The dictionary with values to override.

    Returns:
        A new dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to appropriate Python type.

    Args:
        value: String value from environment variable.

    Returns:
        Parsed value (bool, int, float, list, or string).
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    if "," in value:
        return [_parse_env_value(item.strip()) for item in value.split(",")]

    return value


def _load_env_config(prefix: str = DEFAULT_ENV_PREFIX) -> dict[str, Any]:
    """
    Load configuration from environment variables.

    Environment variables are parsed with the following rules:
    - Prefix: AUTOUPDATER_ (configurable)
    - Nested keys: Double underscore (__) separator
    - Example: AUTOUPDATER_UPDATER__URL=https://example.com/releases/

    Args:
        prefix: Environment variable prefix.

    Returns:
        Dictionary with configuration values.
    """
    result: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        parts = key[len(prefix) :].lower().split("__")

        current = result
        for part in parts[:-1]:
            current = current.setdefault(part, {})

        current[parts[-1]] = _parse_env_value(value)

    return result


def add_config_arguments(parser: argparse.ArgumentParser) -> None:
    """Register the global configuration flags on ``parser``."""
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging of resolved paths and options",
    )
    parser.add_argument(
        "--url",
        type=str,
        help="Release base URL",
    )
    parser.add_argument(
        "--strategy",
        type=str,
        choices=[kind.value for kind in SwapStrategyKind],
        help="Swap strategy",
    )


def _namespace_to_overrides(parsed: argparse.Namespace) -> dict[str, Any]:
    """Translate parsed global flags into a configuration dictionary."""
    result: dict[str, Any] = {}

    if getattr(parsed, "config", None):
        result["_config_path"] = parsed.config

    if getattr(parsed, "log_level", None):
        result["logging"] = {"level": parsed.log_level}

    if getattr(parsed, "debug", False):
        result.setdefault("updater", {})["debug"] = True
        result.setdefault("logging", {})["level"] = "debug"

    if getattr(parsed, "url", None):
        result.setdefault("updater", {})["url"] = parsed.url

    if getattr(parsed, "strategy", None):
        result.setdefault("updater", {})["strategy"] = parsed.strategy

    return result


def _parse_cli_args(args: list[str] | None = None) -> dict[str, Any]:
    """
    Parse the global configuration flags out of command-line arguments.

    Unknown arguments (subcommands and their options) are ignored.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Dictionary with parsed arguments.
    """
    parser = argparse.ArgumentParser(add_help=False)
    add_config_arguments(parser)
    parsed, _unknown = parser.parse_known_args(args)
    return _namespace_to_overrides(parsed)


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_args: list[str] | None = None,
) -> AppConfig:
    """
    Load configuration from all sources with layered precedence.

    Later sources override earlier ones: defaults, YAML file, environment
    variables, command-line flags.

    Args:
        config_path: Path to YAML configuration file. If None, uses the
            ``--config`` argument or ./autoupdater.yml when present.
        env_prefix: Prefix for environment variables.
        cli_args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Fully configured AppConfig instance.

    Raises:
        FileNotFoundError: If the specified config file doesn't exist.
        ValidationError: If configuration is invalid.

    Example:
        >>> config = load_config(cli_args=["--url", "https://example.com/app/"])
        >>> config.updater.url
        'https://example.com/app/'
    """
    config_dict: dict[str, Any] = {}

    cli_config = _parse_cli_args(cli_args)

    if config_path is None:
        if "_config_path" in cli_config:
            config_path = Path(cli_config.pop("_config_path"))
        elif DEFAULT_CONFIG_PATH.exists():
            config_path = DEFAULT_CONFIG_PATH
    else:
        cli_config.pop("_config_path", None)
        config_path = Path(config_path)

    if config_path is not None:
        config_dict = _deep_merge(config_dict, _load_yaml_config(config_path))

    config_dict = _deep_merge(config_dict, _load_env_config(env_prefix))
    config_dict = _deep_merge(config_dict, cli_config)

    return AppConfig(**config_dict)
