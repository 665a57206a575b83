"""System logger for operational events.

This module provides a singleton system logger for everything the control
plane does against the managed server: admin exchanges, config pushes and
pulls, drift checks, rollbacks and health status changes.

Logging strategy:
- Console (stderr): INFO and above, human readable
- File (system.jsonl): Only issues (WARNING, ERROR, CRITICAL) as JSONL

Records are dicts with an "event" key so both handlers can render them:

    logger.warning({"event": "sync_to_caddy", "success": False, "error": "..."})

The file handler is configured separately via configure_system_logger_file()
once the settings' log_dir is known.
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "configure_system_logger_file",
    "get_system_logger",
    "log_timed_event",
]

import logging
import sys
import time
from pathlib import Path
from typing import Any

from caddy_control.constants import APP_NAME
from caddy_control.utils.logging.iso_formatter import ISO8601Formatter


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Extracts 'message' or 'event' field from dict messages for cleaner stderr output.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human-readable console output.

        Args:
            record: The log record to format.

        Returns:
            str: Formatted log message with level prefix.
        """
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            return f"{record.levelname}: {msg}"
        return f"{record.levelname}: {record.getMessage()}"


# Module-level singleton logger
_system_logger: logging.Logger | None = None
_file_handler_configured: bool = False


def get_system_logger() -> logging.Logger:
    """Get the singleton system logger instance.

    Creates the logger on first call with stderr handler only.
    File handler is added later via configure_system_logger_file().

    Returns:
        logging.Logger: Configured system logger instance.
    """
    global _system_logger

    if _system_logger is not None:
        return _system_logger

    # DEBUG on the logger so per-exchange events reach handlers that ask for them
    _system_logger = logging.getLogger(f"{APP_NAME}.system")
    _system_logger.setLevel(logging.DEBUG)
    _system_logger.propagate = False

    for handler in _system_logger.handlers:
        handler.close()
    _system_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.INFO)
    stderr_handler.setFormatter(ConsoleFormatter())
    _system_logger.addHandler(stderr_handler)

    return _system_logger


def configure_system_logger_file(log_path: Path) -> None:
    """Configure the system logger's file handler.

    Should be called once after settings are loaded.
    The file handler logs WARNING, ERROR, CRITICAL only.

    Args:
        log_path: Path to the system log file (see AdminSettings.system_log_path()).
    """
    global _file_handler_configured

    if _file_handler_configured:
        return

    logger = get_system_logger()

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if sys.platform != "win32":
            try:
                log_path.parent.chmod(0o700)
            except OSError:
                pass  # Permission changes might fail on some systems
    except OSError:
        pass  # stderr still works without a log directory

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(ISO8601Formatter())
    logger.addHandler(file_handler)

    _file_handler_configured = True


def log_timed_event(
    event: str,
    started_at: float,
    *,
    success: bool,
    level: int | None = None,
    **details: Any,
) -> None:
    """Log an operation outcome with its duration.

    Args:
        event: Event name (e.g., "sync_to_caddy", "rollback").
        started_at: time.monotonic() value captured before the operation.
        success: Whether the operation succeeded.
        level: Explicit log level. Defaults to INFO on success, WARNING on failure.
        **details: Extra fields included in the record.
    """
    if level is None:
        level = logging.INFO if success else logging.WARNING

    duration_ms = round((time.monotonic() - started_at) * 1000, 2)
    get_system_logger().log(
        level,
        {
            "event": event,
            "success": success,
            "duration_ms": duration_ms,
            **details,
        },
    )
