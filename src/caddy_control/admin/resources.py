"""Typed helpers for named subtrees of the Caddy configuration.

Unlike AdminApi, every helper returns a Result:

    Getters:   Ok(value) | Err("not_found") | Err(HttpError(status, body))
    Mutators:  Ok(value) | Err("failed")
    Deletes:   Ok(None)  | Err("failed")

get_upstreams and the PKI helpers read top-level endpoints outside /config/
and report HTTP status explicitly:

    Ok(body) | Err("connection_failed") | Err(HttpError(status))
"""

from __future__ import annotations

__all__ = [
    "AdminResources",
]

from typing import Any

from caddy_control.admin.api import AdminApi, config_path
from caddy_control.result import Err, HttpError, Ok, Result

_HTTP_SERVERS = "apps/http/servers"


def _check_index(index: int) -> int:
    if index < 0:
        raise ValueError(f"Route index must be non-negative, got {index}")
    return index


def _changed(value: Any) -> Result[Any]:
    return Err("failed") if value is None else Ok(value)


def _deleted(value: Any) -> Result[None]:
    return Err("failed") if value is None else Ok(None)


class AdminResources:
    """Result-returning wrappers around AdminApi for fixed config paths.

    Example:
        resources = AdminResources(api)
        match await resources.get_routes("srv0"):
            case Ok(routes): ...
            case Err("not_found"): ...
    """

    def __init__(self, api: AdminApi) -> None:
        self._api = api

    # =========================================================================
    # Apps
    # =========================================================================

    async def get_apps(self) -> Result[Any]:
        return await self._get_config("apps")

    async def get_app(self, name: str) -> Result[Any]:
        return await self._get_config(f"apps/{name}")

    async def set_app(self, name: str, config: dict[str, Any]) -> Result[Any]:
        return _changed(await self._api.patch_config(config, f"apps/{name}"))

    async def delete_app(self, name: str) -> Result[None]:
        return _deleted(await self._api.delete_config(f"apps/{name}"))

    # =========================================================================
    # HTTP servers
    # =========================================================================

    async def get_http_servers(self) -> Result[Any]:
        return await self._get_config(_HTTP_SERVERS)

    async def get_http_server(self, name: str) -> Result[Any]:
        return await self._get_config(f"{_HTTP_SERVERS}/{name}")

    async def set_http_server(self, name: str, config: dict[str, Any]) -> Result[Any]:
        """Replace an existing server definition (PATCH)."""
        return _changed(await self._api.patch_config(config, f"{_HTTP_SERVERS}/{name}"))

    async def create_http_server(self, name: str, config: dict[str, Any]) -> Result[Any]:
        """Create a new server definition (PUT); fails if it already exists."""
        return _changed(await self._api.put_config(config, f"{_HTTP_SERVERS}/{name}"))

    async def delete_http_server(self, name: str) -> Result[None]:
        return _deleted(await self._api.delete_config(f"{_HTTP_SERVERS}/{name}"))

    # =========================================================================
    # Routes
    # =========================================================================

    async def get_routes(self, server: str) -> Result[Any]:
        return await self._get_config(f"{_HTTP_SERVERS}/{server}/routes")

    async def get_route(self, server: str, index: int) -> Result[Any]:
        """Get one route by position.

        Raises:
            ValueError: If index is negative.
        """
        path = f"{_HTTP_SERVERS}/{server}/routes/{_check_index(index)}"
        return await self._get_config(path)

    async def add_route(self, server: str, route: dict[str, Any]) -> Result[Any]:
        """Append a route to the end of the server's route list (POST)."""
        return _changed(await self._api.post_config(route, f"{_HTTP_SERVERS}/{server}/routes"))

    async def update_route(self, server: str, index: int, route: dict[str, Any]) -> Result[Any]:
        """Replace the route at index (PATCH).

        Raises:
            ValueError: If index is negative.
        """
        path = f"{_HTTP_SERVERS}/{server}/routes/{_check_index(index)}"
        return _changed(await self._api.patch_config(route, path))

    async def insert_route(self, server: str, index: int, route: dict[str, Any]) -> Result[Any]:
        """Insert a route before the one currently at index (PUT).

        Raises:
            ValueError: If index is negative.
        """
        path = f"{_HTTP_SERVERS}/{server}/routes/{_check_index(index)}"
        return _changed(await self._api.put_config(route, path))

    async def delete_route(self, server: str, index: int) -> Result[None]:
        path = f"{_HTTP_SERVERS}/{server}/routes/{_check_index(index)}"
        return _deleted(await self._api.delete_config(path))

    # =========================================================================
    # TLS and admin
    # =========================================================================

    async def get_tls(self) -> Result[Any]:
        return await self._get_config("apps/tls")

    async def set_tls(self, config: dict[str, Any]) -> Result[Any]:
        return _changed(await self._api.patch_config(config, "apps/tls"))

    async def get_tls_automation(self) -> Result[Any]:
        return await self._get_config("apps/tls/automation")

    async def set_tls_automation(self, config: dict[str, Any]) -> Result[Any]:
        return _changed(await self._api.patch_config(config, "apps/tls/automation"))

    async def get_admin(self) -> Result[Any]:
        return await self._get_config("admin")

    async def set_admin(self, config: dict[str, Any]) -> Result[Any]:
        return _changed(await self._api.patch_config(config, "admin"))

    # =========================================================================
    # Top-level endpoints
    # =========================================================================

    async def get_upstreams(self) -> Result[Any]:
        """Current reverse-proxy upstream health list."""
        return await self._get_status_mapped("/reverse_proxy/upstreams")

    async def get_pki_ca(self, ca_id: str) -> Result[Any]:
        """Information about a PKI certificate authority (e.g. "local")."""
        return await self._get_status_mapped(f"/pki/ca/{ca_id}")

    async def get_pki_certificates(self, ca_id: str) -> Result[Any]:
        """Certificate chain of a PKI certificate authority."""
        return await self._get_status_mapped(f"/pki/ca/{ca_id}/certificates")

    async def _get_config(self, path: str) -> Result[Any]:
        response = await self._api.get(config_path(path))
        if response.status == 0:
            return Err("not_found")
        if not response.is_success:
            return Err(HttpError(response.status, response.body))
        if response.body is None:
            return Err("not_found")
        return Ok(response.body)

    async def _get_status_mapped(self, path: str) -> Result[Any]:
        response = await self._api.get(path)
        if response.status == 0:
            return Err("connection_failed")
        if not response.is_success:
            return Err(HttpError(response.status))
        return Ok(response.body)
