"""Transport layer for the Caddy admin API.

Resolves an admin URL into an endpoint and opens a raw stream to it.
Both Unix domain sockets and loopback TCP are supported, so the same client
works for an embedded Caddy (socket file) and an externally managed one.

URL formats:
- unix:///path/to/socket  -> UnixEndpoint("/path/to/socket")
- http://host[:port]      -> TcpEndpoint(host, port), port defaults to 2019

HTTPS is rejected: the admin API is plaintext over a trusted local transport.

Endpoints are resolved on every call and never pooled; each exchange gets
its own connection.
"""

from __future__ import annotations

__all__ = [
    "AdminEndpoint",
    "TcpEndpoint",
    "UnixEndpoint",
    "connect",
    "describe_socket_error",
    "host_header",
    "parse_url",
    "resolve_endpoint_strict",
]

import asyncio
import errno
import re
from dataclasses import dataclass
from typing import Literal, Union

from caddy_control.constants import (
    DEFAULT_ADMIN_PORT,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_UNIX_HOST,
    MAX_LINE_BYTES,
)
from caddy_control.exceptions import AdminTransportError, ConfigurationError
from caddy_control.result import Err, Ok, Result

_PORT_PATTERN = re.compile(r"[0-9]+")


@dataclass(frozen=True, slots=True)
class UnixEndpoint:
    """Admin API reachable through a Unix domain socket."""

    path: str
    kind: Literal["unix"] = "unix"


@dataclass(frozen=True, slots=True)
class TcpEndpoint:
    """Admin API reachable over (loopback) TCP."""

    host: str
    port: int = DEFAULT_ADMIN_PORT
    kind: Literal["tcp"] = "tcp"


AdminEndpoint = Union[UnixEndpoint, TcpEndpoint]


# =============================================================================
# URL parsing
# =============================================================================


def parse_url(url: str) -> Result[AdminEndpoint]:
    """Parse an admin URL into an endpoint.

    Args:
        url: Admin URL (unix:///path or http://host[:port][/ignored]).

    Returns:
        Ok(UnixEndpoint | TcpEndpoint), or Err with one of
        "invalid_url", "https_not_supported", "invalid_port", "invalid_host".

    Example:
        >>> parse_url("unix:///tmp/caddy.sock")
        Ok(value=UnixEndpoint(path='/tmp/caddy.sock', kind='unix'))
        >>> parse_url("http://localhost")
        Ok(value=TcpEndpoint(host='localhost', port=2019, kind='tcp'))
    """
    if not isinstance(url, str) or not url:
        return Err("invalid_url")

    scheme, separator, rest = url.partition("://")
    if not separator:
        return Err("invalid_url")

    scheme = scheme.lower()
    if scheme == "https":
        return Err("https_not_supported")
    if scheme == "unix":
        # unix:///abs/path; the socket path must be absolute
        if not rest.startswith("/"):
            return Err("invalid_url")
        return Ok(UnixEndpoint(path=rest))
    if scheme == "http":
        if not rest:
            return Err("invalid_url")
        return _parse_tcp(rest)

    return Err("invalid_url")


def _parse_tcp(rest: str) -> Result[AdminEndpoint]:
    # The API path is supplied per request, so any path here is dropped
    host_port = rest.split("/", 1)[0]

    if host_port.startswith("["):
        # Bracketed IPv6 literal: [::1]:2019
        host, bracket, tail = host_port[1:].partition("]")
        if not bracket or not host:
            return Err("invalid_host")
        if not tail:
            return Ok(TcpEndpoint(host=host))
        if not tail.startswith(":"):
            return Err("invalid_host")
        return _with_port(host, tail[1:])

    parts = host_port.split(":")
    if len(parts) == 1 and parts[0]:
        return Ok(TcpEndpoint(host=parts[0]))
    if len(parts) == 2 and parts[0]:
        return _with_port(parts[0], parts[1])
    return Err("invalid_host")


def _with_port(host: str, port_str: str) -> Result[AdminEndpoint]:
    if not _PORT_PATTERN.fullmatch(port_str):
        return Err("invalid_port")
    port = int(port_str)
    if not 0 < port < 65536:
        return Err("invalid_port")
    return Ok(TcpEndpoint(host=host, port=port))


def resolve_endpoint_strict(url: str) -> AdminEndpoint:
    """Parse an admin URL, raising on any error.

    A malformed admin URL is a fatal configuration error, so callers that
    set up a long-lived manager use this instead of parse_url().

    Raises:
        ConfigurationError: If the URL cannot be parsed.
    """
    result = parse_url(url)
    if isinstance(result, Err):
        raise ConfigurationError(f"Invalid admin URL {url!r}: {result.reason}")
    return result.value


def host_header(endpoint: AdminEndpoint, unix_host: str = DEFAULT_UNIX_HOST) -> str:
    """Get the Host header value for requests to an endpoint.

    Caddy checks the Host header against its allowed origins even on a
    local socket, so unix endpoints send a stable virtual host.

    Args:
        endpoint: Resolved admin endpoint.
        unix_host: Virtual host to use for unix endpoints.

    Returns:
        Host header value.
    """
    if isinstance(endpoint, UnixEndpoint):
        return unix_host
    if ":" in endpoint.host:
        return f"[{endpoint.host}]:{endpoint.port}"
    return f"{endpoint.host}:{endpoint.port}"


# =============================================================================
# Connecting
# =============================================================================


def describe_socket_error(exc: BaseException) -> str:
    """Map a socket-level exception to a short snake_case reason.

    Args:
        exc: Exception raised while connecting, sending or receiving.

    Returns:
        Reason string such as "timeout", "connection_refused", "econnaborted".
    """
    if isinstance(exc, AdminTransportError):
        return exc.reason
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return "timeout"
    if isinstance(exc, asyncio.IncompleteReadError):
        return "connection_closed"
    if isinstance(exc, ConnectionRefusedError):
        return "connection_refused"
    if isinstance(exc, ConnectionResetError):
        return "connection_reset"
    if isinstance(exc, BrokenPipeError):
        return "broken_pipe"
    if isinstance(exc, FileNotFoundError):
        return "socket_not_found"
    if isinstance(exc, PermissionError):
        return "permission_denied"
    if isinstance(exc, OSError) and exc.errno is not None:
        return errno.errorcode.get(exc.errno, "os_error").lower()
    return type(exc).__name__.lower()


async def connect(
    endpoint: AdminEndpoint,
    timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
) -> Result[tuple[asyncio.StreamReader, asyncio.StreamWriter]]:
    """Open a stream to the admin endpoint.

    Never retries; retry policy belongs to the caller.

    Args:
        endpoint: Resolved admin endpoint.
        timeout: Connect timeout in seconds.

    Returns:
        Ok((reader, writer)) or Err(reason) on any socket failure.
    """
    try:
        if isinstance(endpoint, UnixEndpoint):
            opening = asyncio.open_unix_connection(endpoint.path, limit=MAX_LINE_BYTES)
        else:
            opening = asyncio.open_connection(endpoint.host, endpoint.port, limit=MAX_LINE_BYTES)
        reader, writer = await asyncio.wait_for(opening, timeout=timeout)
    except (OSError, asyncio.TimeoutError) as e:
        return Err(describe_socket_error(e))
    return Ok((reader, writer))
