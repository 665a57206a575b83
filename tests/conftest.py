"""Shared fixtures: a fake WireClient and a canned admin server on a unix socket."""

from __future__ import annotations

import asyncio
import json
import os
import re
import tempfile
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from caddy_control.admin.api import AdminApi
from caddy_control.admin.wire import Response
from caddy_control.config import AdminSettings
from caddy_control.constants import JSON_CONTENT_TYPE
from caddy_control.result import Err, Ok, Result

_CONTENT_LENGTH = re.compile(rb"content-length: *(\d+)", re.IGNORECASE)


# ============================================================================
# Fake wire client
# ============================================================================


class FakeWireClient:
    """In-memory WireClient returning canned results per (method, path).

    Queued results are returned in order; the last one repeats. Unrouted
    requests get `default` (connection refused unless changed).
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, bytes | str | None, str | None]] = []
        self.default: Result[Response] = Err("connection_refused")
        self._routes: dict[tuple[str, str], list[Result[Response]]] = {}

    def respond(
        self,
        method: str,
        path: str,
        status: int = 200,
        body: Any = None,
        headers: list[tuple[str, str]] | None = None,
    ) -> None:
        if headers is None:
            headers = [("Content-Type", JSON_CONTENT_TYPE)]
        response = Response(status=status, headers=headers, body=body)
        self._routes.setdefault((method, path), []).append(Ok(response))

    def fail(self, method: str, path: str, reason: str = "connection_refused") -> None:
        self._routes.setdefault((method, path), []).append(Err(reason))

    def requests(self, method: str | None = None, path: str | None = None) -> list[tuple[str, str, Any, Any]]:
        return [
            call
            for call in self.calls
            if (method is None or call[0] == method) and (path is None or call[1] == path)
        ]

    def json_body(self, method: str, path: str, index: int = -1) -> Any:
        body = self.requests(method, path)[index][2]
        return json.loads(body)

    async def _handle(
        self, method: str, path: str, body: bytes | str | None, content_type: str | None
    ) -> Result[Response]:
        self.calls.append((method, path, body, content_type))
        queue = self._routes.get((method, path))
        if not queue:
            return self.default
        return queue.pop(0) if len(queue) > 1 else queue[0]

    async def get(self, path: str) -> Result[Response]:
        return await self._handle("GET", path, None, None)

    async def post(
        self, path: str, body: bytes | str, content_type: str = JSON_CONTENT_TYPE
    ) -> Result[Response]:
        return await self._handle("POST", path, body, content_type)

    async def put(
        self, path: str, body: bytes | str, content_type: str = JSON_CONTENT_TYPE
    ) -> Result[Response]:
        return await self._handle("PUT", path, body, content_type)

    async def patch(
        self, path: str, body: bytes | str, content_type: str = JSON_CONTENT_TYPE
    ) -> Result[Response]:
        return await self._handle("PATCH", path, body, content_type)

    async def delete(
        self, path: str, body: bytes | str = b"", content_type: str = JSON_CONTENT_TYPE
    ) -> Result[Response]:
        return await self._handle("DELETE", path, body, content_type)


@pytest.fixture
def fake_wire() -> FakeWireClient:
    return FakeWireClient()


@pytest.fixture
def api(fake_wire: FakeWireClient) -> AdminApi:
    """AdminApi wired to the fake client."""
    return AdminApi(AdminSettings(admin_url="http://localhost:2019"), wire=fake_wire)


# ============================================================================
# Canned admin server
# ============================================================================


@pytest.fixture
def temp_socket_path() -> Iterator[Path]:
    """Create a temporary socket path with a short path (Unix socket limit ~104 chars)."""
    # Use /tmp directly for shorter paths (pytest tmp_path is too long for Unix sockets)
    tmpdir = tempfile.mkdtemp(prefix="cc_", dir="/tmp")
    socket_path = Path(tmpdir) / "admin.sock"
    yield socket_path
    socket_path.unlink(missing_ok=True)
    try:
        os.rmdir(tmpdir)
    except OSError:
        pass


@pytest.fixture
def socket_settings(temp_socket_path: Path) -> AdminSettings:
    return AdminSettings(
        admin_url=f"unix://{temp_socket_path}",
        connect_timeout_seconds=1.0,
        recv_timeout_seconds=1.0,
    )


CannedServer = Callable[..., Awaitable[list[bytes]]]


@pytest.fixture
async def admin_server(temp_socket_path: Path) -> AsyncIterator[CannedServer]:
    """Factory starting a unix server that answers every request with raw bytes.

    Usage:
        received = await admin_server(b"HTTP/1.1 200 OK\\r\\n...", pause=0.01)

    Each reply part is written separately (with `pause` seconds between),
    so parsers see realistically split reads. With hang=True the server
    never answers and waits for the client to give up. The returned list
    collects each raw request (head plus Content-Length body).
    """
    servers: list[asyncio.AbstractServer] = []

    async def start(*parts: bytes, pause: float = 0.0, hang: bool = False) -> list[bytes]:
        received: list[bytes] = []

        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            try:
                head = await reader.readuntil(b"\r\n\r\n")
                body = b""
                match = _CONTENT_LENGTH.search(head)
                if match:
                    body = await reader.readexactly(int(match.group(1)))
                received.append(head + body)

                if hang:
                    await reader.read()
                    return

                for part in parts:
                    writer.write(part)
                    await writer.drain()
                    if pause:
                        await asyncio.sleep(pause)
            except (asyncio.IncompleteReadError, ConnectionError):
                pass
            finally:
                writer.close()

        server = await asyncio.start_unix_server(handle, path=str(temp_socket_path))
        servers.append(server)
        return received

    yield start

    for server in servers:
        server.close()
        await server.wait_closed()
