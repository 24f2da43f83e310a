"""
Structured logging for the application auto-updater.

Log records are emitted as JSON objects so update runs can be inspected
after the fact, which matters because the most interesting part of an
update (the swap) happens while the application is shutting down.

Features:
- JSON-formatted log output with ``extra`` fields preserved
- Optional log file alongside stdout (the ``log_path`` option)
- Child loggers under the ``autoupdater`` namespace
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from autoupdater.config import LoggingConfig

# Default log format for plain-text output
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

ROOT_LOGGER_NAME = "autoupdater"

# Attributes present on every LogRecord; anything else came in via ``extra``
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JSONFormatter(logging.Formatter):
    """
    A logging formatter that outputs log records as JSON objects.

    Each log record is formatted as a JSON object with consistent fields:
    - timestamp: ISO 8601 formatted timestamp in UTC
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - logger: Logger name
    - message: Log message
    - Additional fields from the record's extra dict
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            JSON-formatted string representation of the log record.
        """
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in set(record.__dict__.keys()) - _RESERVED_RECORD_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def setup_logging(
    config: LoggingConfig | None = None,
    *,
    level: str = "INFO",
    json_format: bool = True,
    log_to_stdout: bool = True,
    log_path: Path | str | None = None,
) -> logging.Logger:
    """
    Configure the ``autoupdater`` logger.

    Args:
        config: Optional LoggingConfig. If provided, overrides the keyword
            arguments.
        level: Log level if no config is provided.
        json_format: Whether to use JSON formatting (default: True).
        log_to_stdout: Whether to log to stdout (default: True).
        log_path: Optional file to append log records to.

    Returns:
        The package logger.

    Example:
        >>> from autoupdater.logging import setup_logging
        >>> logger = setup_logging(level="DEBUG", log_path="/tmp/update.log")
        >>> logger.info("Update check started", extra={"url": "https://..."})
    """
    if config is not None:
        log_level = config.level.upper()
        json_format = config.json_format
        log_to_stdout = config.log_to_stdout
        log_path = config.log_path
    else:
        log_level = level.upper()

    numeric_level = getattr(logging, log_level, logging.INFO)
    formatter: logging.Formatter = (
        JSONFormatter() if json_format else logging.Formatter(DEFAULT_LOG_FORMAT)
    )

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    if log_to_stdout:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setLevel(numeric_level)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if log_path:
        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Prevent propagation to root logger to avoid duplicate logs
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: The name for the logger, typically ``__name__``. The
            "autoupdater." prefix is added automatically if not present.

    Returns:
        A logger under the ``autoupdater`` namespace.
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)
