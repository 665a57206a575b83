"""System operational logging.

Provides the system logger for operational events: admin exchanges,
sync outcomes, rollbacks and health status changes.
"""

from caddy_control.telemetry.system_logger import (
    ConsoleFormatter,
    configure_system_logger_file,
    get_system_logger,
    log_timed_event,
)

__all__ = [
    "ConsoleFormatter",
    "configure_system_logger_file",
    "get_system_logger",
    "log_timed_event",
]
