"""caddy-control: control plane for a local Caddy server's admin API.

Layers (leaf to root):
- admin.transport / admin.wire: endpoint resolution and HTTP/1.1 exchanges
- admin.api / admin.resources: admin operations and config subtree helpers
- state: lifecycle state machine
- config_manager: serialized memory/runtime synchronization
- health: periodic health checks feeding the config manager
"""

from caddy_control.config import AdminSettings, load_settings, load_settings_strict
from caddy_control.admin.api import AdminApi
from caddy_control.admin.resources import AdminResources
from caddy_control.admin.wire import Response, SocketWireClient, WireClient
from caddy_control.config_manager import ConfigManager, DriftReport, SyncState
from caddy_control.health import CaddyStatus, HealthMonitor
from caddy_control.result import Err, Ok
from caddy_control.state import LifecycleEvent, LifecycleState

__version__ = "0.1.0"

__all__ = [
    "AdminApi",
    "AdminResources",
    "AdminSettings",
    "CaddyStatus",
    "ConfigManager",
    "DriftReport",
    "Err",
    "HealthMonitor",
    "LifecycleEvent",
    "LifecycleState",
    "Ok",
    "Response",
    "SocketWireClient",
    "SyncState",
    "WireClient",
    "__version__",
    "load_settings",
    "load_settings_strict",
]
