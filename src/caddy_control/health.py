"""Periodic health checking of the managed Caddy instance.

HealthMonitor probes the admin API on a fixed interval and submits each
outcome to the ConfigManager (health_ok / health_fail), so a synced instance
that stops answering becomes degraded and recovers once it answers again.
"""

from __future__ import annotations

__all__ = [
    "CaddyStatus",
    "HealthMonitor",
    "status_from_health",
]

import asyncio
import logging
from enum import Enum
from typing import Any

from caddy_control.admin.api import AdminApi
from caddy_control.config_manager import ConfigManager
from caddy_control.constants import DEFAULT_HEALTH_INTERVAL_SECONDS
from caddy_control.result import Err, Result
from caddy_control.telemetry.system_logger import get_system_logger

# Connection failures meaning nothing is listening at the admin endpoint
_NOT_LISTENING_REASONS = frozenset({"connection_refused", "socket_not_found"})
_CONNECTION_FAILED_PREFIX = "Connection failed: "


class CaddyStatus(str, Enum):
    """Observed status of the managed server."""

    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


def status_from_health(result: Result[Any]) -> CaddyStatus:
    """Map a health_check() result to a server status.

    Args:
        result: Outcome of AdminApi.health_check().

    Returns:
        RUNNING on success, STOPPED when the connection was refused
        (or the socket file is gone), UNKNOWN for any other failure.
    """
    if not isinstance(result, Err):
        return CaddyStatus.RUNNING

    message = str(result.reason)
    if message.startswith(_CONNECTION_FAILED_PREFIX):
        if message[len(_CONNECTION_FAILED_PREFIX) :] in _NOT_LISTENING_REASONS:
            return CaddyStatus.STOPPED
    return CaddyStatus.UNKNOWN


class HealthMonitor:
    """Background task feeding health results into a ConfigManager.

    Usage:
        monitor = HealthMonitor(api, manager, settings.health_interval_seconds)
        await monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        api: AdminApi,
        manager: ConfigManager,
        interval_seconds: float = DEFAULT_HEALTH_INTERVAL_SECONDS,
        system_logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            api: Admin API to probe.
            manager: ConfigManager receiving health events.
            interval_seconds: Delay between probes.
            system_logger: Logger for status changes.
        """
        self._api = api
        self._manager = manager
        self._interval_seconds = interval_seconds
        self._logger = system_logger or get_system_logger()

        self._caddy_status = CaddyStatus.UNKNOWN
        self._task: asyncio.Task[None] | None = None

    @property
    def caddy_status(self) -> CaddyStatus:
        return self._caddy_status

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start periodic checks. Does nothing if already running."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the periodic task and wait for it to finish."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def check_once(self) -> CaddyStatus:
        """Run one probe and submit it to the manager.

        Returns:
            The status derived from this probe.
        """
        result = await self._api.health_check()
        status = status_from_health(result)

        if status != self._caddy_status:
            previous, self._caddy_status = self._caddy_status, status
            level = logging.INFO if status == CaddyStatus.RUNNING else logging.WARNING
            self._logger.log(
                level,
                {
                    "event": "health_status_changed",
                    "message": f"Caddy status {previous.value} -> {status.value}",
                    "from_status": previous.value,
                    "to_status": status.value,
                    "error": result.reason if isinstance(result, Err) else None,
                },
            )

        await self._manager.record_health(status == CaddyStatus.RUNNING)
        return status

    async def _run(self) -> None:
        try:
            while True:
                try:
                    await self.check_once()
                except Exception as e:
                    self._logger.error(
                        {
                            "event": "health_check_failed",
                            "message": f"Health check raised, continuing: {e}",
                            "error_type": type(e).__name__,
                            "error_message": str(e),
                        }
                    )
                await asyncio.sleep(self._interval_seconds)
        except asyncio.CancelledError:
            raise
