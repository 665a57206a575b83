"""Admin API client layers.

- transport.py: Admin URL parsing, Host header, bounded connect
- wire.py: HTTP/1.1 request framing and response parsing over a stream
- api.py: Method-shaped admin operations (neutral values on failure)
- resources.py: Result-returning helpers for named config subtrees

Only the transport layer is re-exported here; import the other layers
from their modules (they depend on caddy_control.config, which itself
depends on the transport).
"""

from caddy_control.admin.transport import (
    AdminEndpoint,
    TcpEndpoint,
    UnixEndpoint,
    connect,
    host_header,
    parse_url,
)

__all__ = [
    "AdminEndpoint",
    "TcpEndpoint",
    "UnixEndpoint",
    "connect",
    "host_header",
    "parse_url",
]
