"""HTTP/1.1 wire client for the Caddy admin API.

Frames one request and parses one response per connection, directly on an
asyncio stream, for both unix sockets and TCP.

Request framing:
    METHOD /path HTTP/1.1\\r\\n
    Host: <host_header(endpoint)>\\r\\n
    Content-Type: <type>\\r\\n          (only when a body is sent)
    \\r\\n
    <body bytes>

Response parsing is strictly sequential:
    1. status line -> numeric status
    2. header lines until the blank line (ordered, duplicates kept)
    3. body: Content-Length bytes, else chunked decoding, else empty
    4. application/json bodies are strictly decoded

Any socket or parse failure aborts the whole exchange and is returned as
Err(reason); nothing partially read is ever handed back.
"""

from __future__ import annotations

__all__ = [
    "Response",
    "SocketWireClient",
    "WireClient",
    "encode_request",
    "read_chunked_body",
    "read_response",
]

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from caddy_control.admin.transport import connect, describe_socket_error, host_header
from caddy_control.config import AdminSettings
from caddy_control.constants import DEFAULT_RECV_TIMEOUT_SECONDS, JSON_CONTENT_TYPE
from caddy_control.exceptions import AdminProtocolError, AdminTransportError
from caddy_control.result import Err, Ok, Result
from caddy_control.telemetry.system_logger import log_timed_event

_STATUS_LINE = re.compile(rb"HTTP/(\d)\.(\d) (\d{3})(?: .*)?")
_CHUNK_SIZE = re.compile(rb"[0-9a-fA-F]+")


@dataclass(slots=True)
class Response:
    """One parsed admin API response.

    Attributes:
        status: HTTP status code. 0 means no response was obtained at all;
            a server never produces it.
        headers: Header (name, value) pairs in arrival order, duplicates kept.
        body: Decoded JSON value for application/json responses, raw bytes otherwise.
    """

    status: int = 0
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: Any = b""

    def header(self, name: str) -> str | None:
        """First value of a header (case-insensitive), or None."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    def header_values(self, name: str) -> list[str]:
        """All values of a header (case-insensitive), in arrival order."""
        wanted = name.lower()
        return [value for key, value in self.headers if key.lower() == wanted]

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


@runtime_checkable
class WireClient(Protocol):
    """One request/response exchange per call against the admin API.

    SocketWireClient is the real implementation; tests substitute fakes
    that return canned Response values.
    """

    async def get(self, path: str) -> Result[Response]: ...

    async def post(
        self, path: str, body: bytes | str, content_type: str = JSON_CONTENT_TYPE
    ) -> Result[Response]: ...

    async def put(
        self, path: str, body: bytes | str, content_type: str = JSON_CONTENT_TYPE
    ) -> Result[Response]: ...

    async def patch(
        self, path: str, body: bytes | str, content_type: str = JSON_CONTENT_TYPE
    ) -> Result[Response]: ...

    async def delete(
        self, path: str, body: bytes | str = b"", content_type: str = JSON_CONTENT_TYPE
    ) -> Result[Response]: ...


# =============================================================================
# Framing
# =============================================================================


def encode_request(
    method: str,
    path: str,
    host: str,
    body: bytes | str | None = None,
    content_type: str | None = None,
    *,
    content_length: bool = False,
) -> bytes:
    """Serialize a request head and body.

    Args:
        method: HTTP method (case-insensitive).
        path: Request target, e.g. "/config/apps".
        host: Host header value.
        body: Request body; None for bodiless requests (GET).
        content_type: Content-Type sent alongside a body.
        content_length: Also send Content-Length for the body.

    Returns:
        Bytes ready to be written to the socket.
    """
    lines = [f"{method.upper()} {path} HTTP/1.1", f"Host: {host}"]

    payload = b""
    if body is not None:
        payload = body.encode("utf-8") if isinstance(body, str) else body
        if content_type:
            lines.append(f"Content-Type: {content_type}")
        if content_length:
            lines.append(f"Content-Length: {len(payload)}")

    head = "\r\n".join(lines) + "\r\n\r\n"
    return head.encode("utf-8") + payload


# =============================================================================
# Parsing
# =============================================================================


async def _read_line(reader: asyncio.StreamReader, timeout: float) -> bytes:
    """Read one CRLF (or LF) terminated line, without the terminator."""
    try:
        line = await asyncio.wait_for(reader.readuntil(b"\n"), timeout=timeout)
    except asyncio.IncompleteReadError as e:
        raise AdminTransportError("connection_closed") from e
    except asyncio.LimitOverrunError as e:
        raise AdminProtocolError("line_too_long") from e
    return line.rstrip(b"\r\n")


async def _read_exactly(reader: asyncio.StreamReader, size: int, timeout: float) -> bytes:
    try:
        return await asyncio.wait_for(reader.readexactly(size), timeout=timeout)
    except asyncio.IncompleteReadError as e:
        raise AdminTransportError("connection_closed") from e


async def read_chunked_body(
    reader: asyncio.StreamReader,
    timeout: float = DEFAULT_RECV_TIMEOUT_SECONDS,
) -> bytes:
    """Decode a chunked transfer-encoded body.

    Reads a hex size line, then exactly that many bytes, then discards the
    2-byte chunk terminator, until a zero-size chunk ends the body.
    Chunk extensions (";name=value") are ignored.

    Args:
        reader: Stream positioned at the first chunk-size line.
        timeout: Per-read timeout in seconds.

    Returns:
        The concatenated chunk payloads.

    Raises:
        AdminProtocolError: On a malformed chunk-size line.
        AdminTransportError: If the stream ends mid-body.
        asyncio.TimeoutError: If a read times out.
    """
    chunks: list[bytes] = []
    while True:
        line = await _read_line(reader, timeout)
        size_token = line.split(b";", 1)[0].strip()
        if not _CHUNK_SIZE.fullmatch(size_token):
            raise AdminProtocolError("malformed_chunk_size", line.decode("latin-1"))

        size = int(size_token, 16)
        if size == 0:
            return b"".join(chunks)

        chunks.append(await _read_exactly(reader, size, timeout))
        await _read_exactly(reader, 2, timeout)


def _decode_body(body: bytes, content_type: str | None) -> Any:
    if content_type is None:
        return body
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type != JSON_CONTENT_TYPE:
        return body
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise AdminProtocolError("invalid_json", str(e)) from e


async def read_response(
    reader: asyncio.StreamReader,
    timeout: float = DEFAULT_RECV_TIMEOUT_SECONDS,
) -> Response:
    """Parse one HTTP/1.1 response from a stream.

    Args:
        reader: Stream positioned at the status line.
        timeout: Per-read timeout in seconds.

    Returns:
        Parsed Response with a decoded body.

    Raises:
        AdminProtocolError: On a malformed status line, header, length or JSON body.
        AdminTransportError: If the stream ends early.
        asyncio.TimeoutError: If a read times out.
    """
    status_line = await _read_line(reader, timeout)
    match = _STATUS_LINE.fullmatch(status_line)
    if match is None:
        raise AdminProtocolError("malformed_status_line", status_line.decode("latin-1"))
    response = Response(status=int(match.group(3)))

    while True:
        line = await _read_line(reader, timeout)
        if not line:
            break
        name, colon, value = line.decode("latin-1").partition(":")
        if not colon or not name.strip():
            raise AdminProtocolError("malformed_header", line.decode("latin-1"))
        response.headers.append((name.strip(), value.strip()))

    content_length = response.header("Content-Length")
    transfer_encoding = response.header("Transfer-Encoding")

    if content_length is not None:
        if not content_length.isascii() or not content_length.isdigit():
            raise AdminProtocolError("malformed_content_length", content_length)
        body = await _read_exactly(reader, int(content_length), timeout)
    elif transfer_encoding is not None and transfer_encoding.lower().split(",")[-1].strip() == "chunked":
        body = await read_chunked_body(reader, timeout)
    else:
        body = b""

    response.body = _decode_body(body, response.header("Content-Type"))
    return response


# =============================================================================
# Socket client
# =============================================================================


class SocketWireClient:
    """WireClient over a real unix/TCP socket.

    The endpoint is re-resolved from settings on every call and each call
    uses its own connection, so concurrent callers never share a stream.

    Usage:
        client = SocketWireClient(AdminSettings(admin_url="http://localhost:2019"))
        match await client.get("/config/"):
            case Ok(response): ...
            case Err(reason): ...
    """

    def __init__(self, settings: AdminSettings | None = None) -> None:
        """Initialize the client.

        Args:
            settings: Admin settings. Defaults to AdminSettings().
        """
        self._settings = settings or AdminSettings()

    @property
    def settings(self) -> AdminSettings:
        return self._settings

    async def request(
        self,
        method: str,
        path: str,
        body: bytes | str | None = None,
        content_type: str | None = None,
    ) -> Result[Response]:
        """Perform one request/response exchange.

        Args:
            method: HTTP method.
            path: Request target.
            body: Request body, None for bodiless requests.
            content_type: Content-Type for the body.

        Returns:
            Ok(Response) for any HTTP response (including non-2xx),
            Err(reason) when no response could be obtained.
        """
        started_at = time.monotonic()
        settings = self._settings
        endpoint = settings.endpoint()

        connected = await connect(endpoint, timeout=settings.connect_timeout_seconds)
        if isinstance(connected, Err):
            log_timed_event(
                "admin_request",
                started_at,
                success=False,
                level=logging.DEBUG,
                method=method,
                path=path,
                error=connected.reason,
            )
            return connected

        reader, writer = connected.value
        try:
            writer.write(
                encode_request(
                    method,
                    path,
                    host_header(endpoint, settings.admin_host),
                    body,
                    content_type,
                    content_length=settings.send_content_length,
                )
            )
            await asyncio.wait_for(writer.drain(), timeout=settings.recv_timeout_seconds)
            response = await read_response(reader, timeout=settings.recv_timeout_seconds)
        except AdminProtocolError as e:
            result: Result[Response] = Err(e.reason)
        except (OSError, asyncio.TimeoutError, AdminTransportError) as e:
            result = Err(describe_socket_error(e))
        else:
            result = Ok(response)
        finally:
            try:
                writer.close()
                await writer.wait_closed()
            except OSError:
                pass  # Already closed

        log_timed_event(
            "admin_request",
            started_at,
            success=isinstance(result, Ok),
            level=logging.DEBUG,
            method=method,
            path=path,
            status=result.value.status if isinstance(result, Ok) else 0,
            error=None if isinstance(result, Ok) else result.reason,
        )
        return result

    async def get(self, path: str) -> Result[Response]:
        return await self.request("GET", path)

    async def post(
        self, path: str, body: bytes | str, content_type: str = JSON_CONTENT_TYPE
    ) -> Result[Response]:
        return await self.request("POST", path, body, content_type)

    async def put(
        self, path: str, body: bytes | str, content_type: str = JSON_CONTENT_TYPE
    ) -> Result[Response]:
        return await self.request("PUT", path, body, content_type)

    async def patch(
        self, path: str, body: bytes | str, content_type: str = JSON_CONTENT_TYPE
    ) -> Result[Response]:
        return await self.request("PATCH", path, body, content_type)

    async def delete(
        self, path: str, body: bytes | str = b"", content_type: str = JSON_CONTENT_TYPE
    ) -> Result[Response]:
        return await self.request("DELETE", path, body, content_type)
