"""Shared file utilities for caddy-control.

- get_app_dir: OS-appropriate application directory
- set_secure_permissions: Owner-only file/directory permissions
"""

from __future__ import annotations

__all__ = [
    "get_app_dir",
    "set_secure_permissions",
]

import sys
from pathlib import Path

import click

from caddy_control.constants import APP_NAME


def get_app_dir() -> Path:
    """Get the OS-appropriate application directory.

    Uses click.get_app_dir() which returns:
    - macOS: ~/Library/Application Support/caddy-control
    - Linux: ~/.config/caddy-control (XDG compliant)
    - Windows: C:\\Users\\<user>\\AppData\\Roaming\\caddy-control

    Returns:
        Path to the application directory.
    """
    return Path(click.get_app_dir(APP_NAME))


def set_secure_permissions(path: Path, *, is_directory: bool = False) -> None:
    """Set owner-only permissions on a file (0o600) or directory (0o700).

    Does nothing on Windows. Permission errors are ignored.

    Args:
        path: Path to file or directory.
        is_directory: If True, use directory permissions (0o700).
    """
    if sys.platform == "win32":
        return

    try:
        path.chmod(0o700 if is_directory else 0o600)
    except OSError:
        pass  # Permission changes might fail on some systems
