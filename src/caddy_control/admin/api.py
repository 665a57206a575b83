"""Method-shaped operations on the Caddy admin API.

Each call performs exactly one exchange through a WireClient and folds the
outcome into the shape callers expect:

- get / load / stop return the full Response (status 0 when no response
  was obtained).
- *_config operations return the decoded body, or None on transport failure.
- adapt returns the adapted structure, or {} on any failure.
- health_check / server_info return Ok(details) or Err(message).
"""

from __future__ import annotations

__all__ = [
    "AdminApi",
    "config_path",
]

import json
from typing import Any

from caddy_control.admin.wire import Response, SocketWireClient, WireClient
from caddy_control.config import AdminSettings
from caddy_control.constants import ADMIN_CONFIG_KEY, CADDYFILE_CONTENT_TYPE, JSON_CONTENT_TYPE
from caddy_control.result import Err, Ok, Result
from caddy_control.telemetry.system_logger import get_system_logger


def config_path(path: str = "") -> str:
    """Build a /config/ request path.

    Args:
        path: Sub-path below the config root, with or without a leading slash.

    Returns:
        Request path, e.g. config_path("apps/http") -> "/config/apps/http".
    """
    return "/config/" + path.lstrip("/")


def _encode_json(data: Any) -> bytes:
    return json.dumps(data, separators=(",", ":")).encode("utf-8")


class AdminApi:
    """Admin API operations over a WireClient.

    Transport failures are never raised. Operations that only collect data
    return a neutral value instead; health_check and server_info report the
    failure explicitly.
    """

    def __init__(
        self,
        settings: AdminSettings | None = None,
        wire: WireClient | None = None,
    ) -> None:
        """Initialize the API.

        Args:
            settings: Admin settings, used to build the default wire client.
            wire: WireClient override (tests inject fakes here).
        """
        self._settings = settings or AdminSettings()
        self._wire = wire or SocketWireClient(self._settings)

    @property
    def wire(self) -> WireClient:
        return self._wire

    # -------------------------------------------------------------------------
    # Response-level operations
    # -------------------------------------------------------------------------

    async def get(self, path: str) -> Response:
        """GET an arbitrary admin path, returning the full response.

        Returns:
            Response with decoded body; Response(status=0) on transport failure.
        """
        result = await self._wire.get(path)
        if isinstance(result, Err):
            return Response()
        return result.value

    async def load(self, config: dict[str, Any] | list[Any] | str | bytes) -> Response:
        """Replace the running configuration via POST /load.

        Raw text or bytes are posted as-is. A structured document first gets
        the live "admin" subtree merged in, so a full reload never drops the
        admin listener the control plane is talking to.

        Args:
            config: Serialized or structured configuration document.

        Returns:
            Response from /load; Response(status=0) on transport failure.
        """
        if isinstance(config, (str, bytes)):
            body: bytes | str = config
        else:
            if isinstance(config, dict):
                live_admin = await self.get_config(ADMIN_CONFIG_KEY)
                if live_admin is not None:
                    config = {**config, ADMIN_CONFIG_KEY: live_admin}
            body = _encode_json(config)

        result = await self._wire.post("/load", body, JSON_CONTENT_TYPE)
        if isinstance(result, Err):
            return Response()
        return result.value

    async def stop(self) -> Response:
        """Ask the server to exit via POST /stop."""
        result = await self._wire.post("/stop", b"", JSON_CONTENT_TYPE)
        if isinstance(result, Err):
            return Response()
        return result.value

    async def patch(self, path: str, data: Any) -> Response:
        """PATCH a config path, returning the full response.

        Like patch_config(), but keeps status and body for callers that
        report HTTP errors.
        """
        result = await self._wire.patch(config_path(path), _encode_json(data), JSON_CONTENT_TYPE)
        if isinstance(result, Err):
            return Response()
        return result.value

    # -------------------------------------------------------------------------
    # /config/ primitives
    # -------------------------------------------------------------------------

    async def get_config(self, path: str = "") -> Any:
        """Get a config subtree. Returns the decoded body, or None on failure."""
        result = await self._wire.get(config_path(path))
        return self._body_or_none(result)

    async def post_config(self, data: Any, path: str = "") -> Any:
        """POST to a config path (appends to arrays, creates/replaces objects)."""
        result = await self._wire.post(config_path(path), _encode_json(data), JSON_CONTENT_TYPE)
        return self._body_or_none(result)

    async def put_config(self, data: Any, path: str = "") -> Any:
        """PUT to a config path (creates or inserts, never replaces)."""
        result = await self._wire.put(config_path(path), _encode_json(data), JSON_CONTENT_TYPE)
        return self._body_or_none(result)

    async def patch_config(self, data: Any, path: str = "") -> Any:
        """PATCH a config path (replaces an existing value)."""
        result = await self._wire.patch(config_path(path), _encode_json(data), JSON_CONTENT_TYPE)
        return self._body_or_none(result)

    async def delete_config(self, path: str = "") -> Any:
        """DELETE a config path."""
        result = await self._wire.delete(config_path(path))
        return self._body_or_none(result)

    async def adapt(self, text: str) -> dict[str, Any]:
        """Adapt Caddyfile text to structured JSON via POST /adapt.

        Nothing is applied to the running server.

        Args:
            text: Caddyfile source.

        Returns:
            The adapted configuration (the "result" member when the server
            wraps it), or {} on any failure.
        """
        result = await self._wire.post("/adapt", text, CADDYFILE_CONTENT_TYPE)
        if isinstance(result, Err) or not result.value.is_success:
            return {}

        body = result.value.body
        if not isinstance(body, dict):
            return {}
        adapted = body.get("result", body)
        return adapted if isinstance(adapted, dict) else {}

    # -------------------------------------------------------------------------
    # Explicit-result operations
    # -------------------------------------------------------------------------

    async def health_check(self) -> Result[dict[str, Any]]:
        """Check the admin API by fetching the config root.

        Returns:
            Ok({"status": "healthy", "config_loaded": bool}) on HTTP 200,
            Err("Server returned status N") on any other status,
            Err("Connection failed: <reason>") on transport failure.
        """
        result = await self._wire.get(config_path())
        if isinstance(result, Err):
            return Err(f"Connection failed: {result.reason}")

        response = result.value
        if response.status != 200:
            return Err(f"Server returned status {response.status}")
        return Ok({"status": "healthy", "config_loaded": bool(response.body)})

    async def server_info(self) -> Result[dict[str, Any]]:
        """Get basic information from the admin root (GET /).

        Returns:
            Ok({"status", "headers", "body"}) on a 2xx response (headers as
            ordered (name, value) pairs, duplicates kept), otherwise
            the same error messages as health_check().
        """
        result = await self._wire.get("/")
        if isinstance(result, Err):
            return Err(f"Connection failed: {result.reason}")

        response = result.value
        if not response.is_success:
            return Err(f"Server returned status {response.status}")

        body = response.body
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        return Ok(
            {
                "status": response.status,
                "headers": list(response.headers),
                "body": body,
            }
        )

    # -------------------------------------------------------------------------

    @staticmethod
    def _body_or_none(result: Result[Response]) -> Any:
        if isinstance(result, Err):
            get_system_logger().debug(
                {"event": "admin_request_folded", "error": result.reason}
            )
            return None
        return result.value.body


