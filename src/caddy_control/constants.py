"""Application-wide constants for caddy-control.

Constants that define application behavior.
For user-configurable settings per deployment, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    # Admin endpoint
    "DEFAULT_ADMIN_PORT",
    "DEFAULT_UNIX_HOST",
    "ADMIN_SOCKET_PATH",
    "DEFAULT_ADMIN_URL",
    "RUNTIME_DIR",
    # Timeouts
    "DEFAULT_CONNECT_TIMEOUT_SECONDS",
    "DEFAULT_RECV_TIMEOUT_SECONDS",
    "MIN_TIMEOUT_SECONDS",
    "MAX_TIMEOUT_SECONDS",
    # Health monitoring
    "DEFAULT_HEALTH_INTERVAL_SECONDS",
    "MIN_HEALTH_INTERVAL_SECONDS",
    # Wire protocol
    "JSON_CONTENT_TYPE",
    "CADDYFILE_CONTENT_TYPE",
    "MAX_LINE_BYTES",
    # Drift detection
    "TRANSIENT_CONFIG_KEYS",
    "ADMIN_CONFIG_KEY",
]

from pathlib import Path

from platformdirs import user_runtime_dir

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for directory names and logger names
APP_NAME: str = "caddy-control"

# ============================================================================
# Admin Endpoint
# ============================================================================

# Caddy's admin API listens on localhost:2019 unless told otherwise
DEFAULT_ADMIN_PORT: int = 2019

# Virtual host sent as the Host header over a unix socket.
# Caddy enforces its "origins" list against this value even locally.
DEFAULT_UNIX_HOST: str = "caddy-admin.local"

# Runtime directory for the admin socket
# - macOS: ~/Library/Caches/TemporaryItems/caddy-control/
# - Linux: $XDG_RUNTIME_DIR/caddy-control/
RUNTIME_DIR: Path = Path(user_runtime_dir(APP_NAME))

ADMIN_SOCKET_PATH: Path = RUNTIME_DIR / "caddy.sock"

DEFAULT_ADMIN_URL: str = f"unix://{ADMIN_SOCKET_PATH}"

# ============================================================================
# Timeouts
# ============================================================================

# Bounded connect timeout for the admin socket (seconds)
DEFAULT_CONNECT_TIMEOUT_SECONDS: float = 5.0

# Per-read timeout while receiving a response (seconds).
# A timeout aborts only the exchange in flight.
DEFAULT_RECV_TIMEOUT_SECONDS: float = 5.0

MIN_TIMEOUT_SECONDS: float = 0.0  # exclusive
MAX_TIMEOUT_SECONDS: float = 300.0  # 5 minutes

# ============================================================================
# Health Monitoring
# ============================================================================

DEFAULT_HEALTH_INTERVAL_SECONDS: float = 30.0
MIN_HEALTH_INTERVAL_SECONDS: float = 1.0

# ============================================================================
# Wire Protocol
# ============================================================================

JSON_CONTENT_TYPE: str = "application/json"

# Content type Caddy's /adapt endpoint uses to pick the caddyfile adapter
CADDYFILE_CONTENT_TYPE: str = "text/caddyfile"

# Upper bound for a status, header or chunk-size line
MAX_LINE_BYTES: int = 64 * 1024

# ============================================================================
# Drift Detection
# ============================================================================

# Keys Caddy may add to a live config that never come from the adapter
TRANSIENT_CONFIG_KEYS: frozenset[str] = frozenset({"etag"})

# Top-level key AdminApi.load() copies from the live config into a pushed
# document; ignored by drift checks when the memory document has none
ADMIN_CONFIG_KEY: str = "admin"
