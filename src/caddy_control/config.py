"""Settings for caddy-control.

Defines the settings model for reaching and monitoring the admin API.
Settings are stored as JSON in the OS-appropriate config directory.

Example usage:
    # Load from settings file (defaults if missing or invalid)
    settings = load_settings()

    # Strict variant for long-running managers (raises on bad settings)
    settings = load_settings_strict()

    # Save settings
    save_settings(settings)
"""

from __future__ import annotations

__all__ = [
    "AdminSettings",
    "DEFAULT_LOG_DIR",
    "get_settings_path",
    "load_settings",
    "load_settings_strict",
    "save_settings",
]

import json
import logging
import os
import sys
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from caddy_control.admin.transport import AdminEndpoint, parse_url, resolve_endpoint_strict
from caddy_control.constants import (
    APP_NAME,
    DEFAULT_ADMIN_URL,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_HEALTH_INTERVAL_SECONDS,
    DEFAULT_RECV_TIMEOUT_SECONDS,
    DEFAULT_UNIX_HOST,
    MAX_TIMEOUT_SECONDS,
    MIN_HEALTH_INTERVAL_SECONDS,
    MIN_TIMEOUT_SECONDS,
)
from caddy_control.exceptions import ConfigurationError
from caddy_control.result import Err
from caddy_control.utils.file_helpers import get_app_dir, set_secure_permissions

_logger = logging.getLogger(f"{APP_NAME}.config")


def _get_platform_log_dir() -> str:
    """Get platform-appropriate base log directory following OS conventions.

    Platform conventions:
        - macOS: ~/Library/Logs
        - Linux: $XDG_STATE_HOME (~/.local/state)
        - Windows: ~/AppData/Local
    """
    if sys.platform == "darwin":
        return "~/Library/Logs"
    elif sys.platform == "win32":
        return "~/AppData/Local"
    return os.environ.get("XDG_STATE_HOME", "~/.local/state")


DEFAULT_LOG_DIR = _get_platform_log_dir()


class AdminSettings(BaseModel):
    """Admin API connection and monitoring settings.

    Attributes:
        admin_url: Admin endpoint, unix:///path/to.sock or http://host[:port].
        admin_host: Host header sent over unix sockets (must be in Caddy's origins).
        connect_timeout_seconds: Bound on opening the admin connection.
        recv_timeout_seconds: Bound on each read while receiving a response.
        send_content_length: Add a Content-Length header to request bodies.
        health_interval_seconds: Period of the background health check.
        log_dir: Base directory for logs (<log_dir>/caddy-control/system.jsonl).
    """

    admin_url: str = Field(default=DEFAULT_ADMIN_URL, min_length=1)
    admin_host: str = Field(default=DEFAULT_UNIX_HOST, min_length=1)
    connect_timeout_seconds: float = Field(
        default=DEFAULT_CONNECT_TIMEOUT_SECONDS,
        gt=MIN_TIMEOUT_SECONDS,
        le=MAX_TIMEOUT_SECONDS,
    )
    recv_timeout_seconds: float = Field(
        default=DEFAULT_RECV_TIMEOUT_SECONDS,
        gt=MIN_TIMEOUT_SECONDS,
        le=MAX_TIMEOUT_SECONDS,
    )
    send_content_length: bool = Field(
        default=False,
        description="Frame request bodies with Content-Length instead of relying on the server",
    )
    health_interval_seconds: float = Field(
        default=DEFAULT_HEALTH_INTERVAL_SECONDS,
        ge=MIN_HEALTH_INTERVAL_SECONDS,
    )
    log_dir: str = Field(default=DEFAULT_LOG_DIR, min_length=1)

    model_config = {"extra": "ignore", "frozen": True}

    @field_validator("admin_url")
    @classmethod
    def _check_admin_url(cls, value: str) -> str:
        result = parse_url(value)
        if isinstance(result, Err):
            raise ValueError(f"invalid admin_url ({result.reason})")
        return value

    def endpoint(self) -> AdminEndpoint:
        """Resolve admin_url into an endpoint (validated at construction)."""
        return resolve_endpoint_strict(self.admin_url)

    def system_log_path(self) -> Path:
        """Full path to the system log file."""
        return Path(self.log_dir).expanduser() / APP_NAME / "system.jsonl"


def get_settings_path() -> Path:
    """Get the full path to the settings file.

    Returns:
        Path to settings.json in the config directory.
    """
    return get_app_dir() / "settings.json"


def load_settings(path: Path | None = None) -> AdminSettings:
    """Load settings from file.

    If the file doesn't exist, returns default settings.
    Invalid JSON or validation errors return defaults with a warning.

    Args:
        path: Override settings file path.

    Returns:
        AdminSettings: Loaded or default settings.
    """
    settings_path = path or get_settings_path()

    if not settings_path.exists():
        return AdminSettings()

    try:
        with settings_path.open(encoding="utf-8") as f:
            data = json.load(f)
        return AdminSettings.model_validate(data)
    except (json.JSONDecodeError, ValidationError, OSError) as e:
        _logger.warning(
            {
                "event": "settings_invalid",
                "message": f"Failed to load settings, using defaults: {e}",
                "error_type": type(e).__name__,
                "error_message": str(e),
                "details": {"settings_path": str(settings_path)},
            }
        )
        return AdminSettings()


def load_settings_strict(path: Path | None = None) -> AdminSettings:
    """Load settings, raising on any error.

    Unlike load_settings(), an unreadable or invalid file is fatal.
    A missing file still yields defaults.

    Args:
        path: Override settings file path.

    Returns:
        AdminSettings: Validated settings.

    Raises:
        ConfigurationError: If the file is unreadable, not JSON, or invalid.
    """
    settings_path = path or get_settings_path()

    if not settings_path.exists():
        return AdminSettings()

    try:
        with settings_path.open(encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {settings_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {settings_path}: {e}") from e

    try:
        return AdminSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings in {settings_path}: {e}") from e


def save_settings(settings: AdminSettings, path: Path | None = None) -> Path:
    """Save settings to file with owner-only permissions (0600).

    Args:
        settings: Settings to save.
        path: Override settings file path.

    Returns:
        Path the settings were written to.

    Raises:
        OSError: If unable to write the file.
    """
    settings_path = path or get_settings_path()
    settings_path.parent.mkdir(parents=True, exist_ok=True)

    with settings_path.open("w", encoding="utf-8") as f:
        json.dump(settings.model_dump(), f, indent=2)
        f.write("\n")

    set_secure_permissions(settings_path)
    return settings_path
