"""Configuration synchronization between memory and a running Caddy.

ConfigManager keeps the in-memory configuration (Caddyfile text), pushes it
to the server, pulls the live configuration back, detects drift and rolls
back to the last configuration that was confirmed loaded.

Every mutating operation runs under one asyncio.Lock, so a push and a drift
check for the same instance never interleave. Health results from the
HealthMonitor go through the same lock.

Lifecycle events are fed into caddy_control.state; an event the table does
not define for the current state is ignored (logged at debug) and never
changes the outcome of the operation that produced it.
"""

from __future__ import annotations

__all__ = [
    "ConfigManager",
    "DriftReport",
    "SyncState",
    "compute_diff",
    "normalize_config",
]

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from caddy_control.admin.api import AdminApi, config_path
from caddy_control.admin.wire import Response
from caddy_control.constants import ADMIN_CONFIG_KEY, TRANSIENT_CONFIG_KEYS
from caddy_control.result import (
    AdaptationFailed,
    Err,
    HttpError,
    Ok,
    Result,
    ValidationFailed,
)
from caddy_control.state import (
    LifecycleEvent,
    LifecycleState,
    is_configured,
    is_ready,
    transition,
)
from caddy_control.telemetry.system_logger import get_system_logger, log_timed_event

ConfigSource = Literal["runtime", "memory", "both"]
MemoryFormat = Literal["caddyfile", "json"]


@dataclass(frozen=True, slots=True)
class DriftReport:
    """Top-level differences between the memory and runtime configurations.

    Attributes:
        only_in_memory: Keys present only in the adapted memory config.
        only_in_runtime: Keys present only in the live config.
        different_values: Keys present in both whose values differ.
    """

    only_in_memory: list[str] = field(default_factory=list)
    only_in_runtime: list[str] = field(default_factory=list)
    different_values: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SyncState:
    """Snapshot of sync bookkeeping.

    Attributes:
        last_sync_time: When the last successful sync (either direction) finished.
        last_sync_status: "in_sync" after a successful sync, None before any.
        last_known_good_config: Document confirmed loaded by the last
            successful push; the rollback target.
    """

    last_sync_time: datetime | None = None
    last_sync_status: Literal["in_sync"] | None = None
    last_known_good_config: Any = None


# =============================================================================
# Drift helpers
# =============================================================================


def normalize_config(config: Any) -> Any:
    """Drop transient keys (etag) at every level for comparison."""
    if isinstance(config, dict):
        return {
            key: normalize_config(value)
            for key, value in config.items()
            if key not in TRANSIENT_CONFIG_KEYS
        }
    if isinstance(config, list):
        return [normalize_config(item) for item in config]
    return config


def compute_diff(memory: Any, runtime: Any) -> DriftReport:
    """Compare two configurations key by key at the top level.

    Non-object documents are compared as empty objects.

    Returns:
        DriftReport with sorted key lists.
    """
    memory = normalize_config(memory) if isinstance(memory, dict) else {}
    runtime = normalize_config(runtime) if isinstance(runtime, dict) else {}

    memory_keys = set(memory)
    runtime_keys = set(runtime)
    return DriftReport(
        only_in_memory=sorted(memory_keys - runtime_keys),
        only_in_runtime=sorted(runtime_keys - memory_keys),
        different_values=sorted(
            key for key in memory_keys & runtime_keys if memory[key] != runtime[key]
        ),
    )


def _without_injected_admin(memory: Any, runtime: Any) -> Any:
    """Drop the live admin block that AdminApi.load() merged into a push.

    Kept when the memory document declares its own admin block.
    """
    if (
        isinstance(memory, dict)
        and isinstance(runtime, dict)
        and ADMIN_CONFIG_KEY not in memory
        and ADMIN_CONFIG_KEY in runtime
    ):
        return {key: value for key, value in runtime.items() if key != ADMIN_CONFIG_KEY}
    return runtime


def _http_result(response: Response) -> Result[None]:
    if response.status == 0:
        return Err("caddy_not_available")
    if not response.is_success:
        return Err(HttpError(response.status, response.body))
    return Ok(None)


# =============================================================================
# ConfigManager
# =============================================================================


class ConfigManager:
    """Serialized coordinator for one managed Caddy instance.

    Usage:
        manager = ConfigManager(AdminApi(settings))
        await manager.initialize()
        await manager.set_caddyfile(text)
        match await manager.sync_to_caddy():
            case Ok(): ...
            case Err(HttpError(status=status)): ...
    """

    def __init__(
        self,
        api: AdminApi | None = None,
        *,
        caddyfile: str = "",
        system_logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            api: Admin API client. Defaults to AdminApi() with default settings.
            caddyfile: Initial in-memory configuration text.
            system_logger: Logger for operational events.
        """
        self._api = api or AdminApi()
        self._logger = system_logger or get_system_logger()
        self._caddyfile = caddyfile

        self._state = LifecycleState.INITIALIZING
        self._sync = SyncState()

        # Linearizes every mutating operation
        self._lock = asyncio.Lock()

    @property
    def api(self) -> AdminApi:
        return self._api

    # -------------------------------------------------------------------------
    # Lifecycle projections
    # -------------------------------------------------------------------------

    def get_state(self) -> LifecycleState:
        return self._state

    def is_ready(self) -> bool:
        """True only when synced."""
        return is_ready(self._state)

    def is_configured(self) -> bool:
        """True when configured, synced or degraded."""
        return is_configured(self._state)

    def get_sync_state(self) -> SyncState:
        return self._sync

    async def initialize(self, has_config: bool | None = None) -> LifecycleState:
        """Leave the initializing state.

        Args:
            has_config: Whether a configuration exists. Defaults to whether
                the in-memory text is non-empty.

        Returns:
            The state after the startup event.
        """
        async with self._lock:
            if has_config is None:
                has_config = bool(self._caddyfile.strip())
            event = LifecycleEvent.STARTUP_WITH_CONFIG if has_config else LifecycleEvent.STARTUP_EMPTY
            self._fire(event)
            return self._state

    async def record_health(self, healthy: bool) -> LifecycleState:
        """Submit a health check outcome.

        Returns:
            The state after the health event.
        """
        async with self._lock:
            self._fire(LifecycleEvent.HEALTH_OK if healthy else LifecycleEvent.HEALTH_FAIL)
            return self._state

    # -------------------------------------------------------------------------
    # Reading configuration
    # -------------------------------------------------------------------------

    async def get_runtime_config(self, path: str | None = None) -> Result[Any]:
        """Get the live configuration, or the subtree at path.

        Returns:
            Ok(doc), Err(HttpError(status, body)) on a non-2xx answer,
            Err("caddy_not_available") for the root, or Err("not_found")
            for a path that is missing or unreachable.
        """
        started_at = time.monotonic()
        if path is None:
            result = await self._fetch_runtime()
        else:
            response = await self._api.get(config_path(path))
            if response.status == 0 or (response.is_success and response.body is None):
                result = Err("not_found")
            elif not response.is_success:
                result = Err(HttpError(response.status, response.body))
            else:
                result = Ok(response.body)

        log_timed_event(
            "get_runtime_config",
            started_at,
            success=isinstance(result, Ok),
            level=logging.DEBUG,
            path=path,
        )
        return result

    async def get_memory_config(self, format: MemoryFormat = "caddyfile") -> Result[Any]:
        """Get the in-memory configuration.

        Args:
            format: "caddyfile" for the stored text, "json" for the adapted document.

        Returns:
            Ok(text) / Ok(doc), or Err(AdaptationFailed) when adapting fails.

        Raises:
            ValueError: If format is not recognized.
        """
        if format == "caddyfile":
            return Ok(self._caddyfile)
        if format == "json":
            return await self._adapt_memory()
        raise ValueError(f"Unknown memory config format: {format!r}")

    async def get_config(self, source: ConfigSource = "runtime") -> Result[Any]:
        """Get configuration from the runtime, from memory (adapted), or both.

        Returns:
            Ok(doc), or for "both" Ok({"memory": ..., "runtime": ...}).

        Raises:
            ValueError: If source is not recognized.
        """
        if source == "runtime":
            return await self.get_runtime_config()
        if source == "memory":
            return await self.get_memory_config("json")
        if source == "both":
            memory = await self.get_memory_config("json")
            if isinstance(memory, Err):
                return memory
            runtime = await self.get_runtime_config()
            if isinstance(runtime, Err):
                return runtime
            return Ok({"memory": memory.value, "runtime": runtime.value})
        raise ValueError(f"Unknown config source: {source!r}")

    # -------------------------------------------------------------------------
    # Memory configuration
    # -------------------------------------------------------------------------

    async def validate_config(self, caddyfile: str) -> Result[None]:
        """Check that Caddyfile text adapts, without storing or applying it.

        Returns:
            Ok(None) or Err(ValidationFailed).
        """
        adapted = await self._api.adapt(caddyfile)
        if not adapted:
            return Err(ValidationFailed("adapt_failed"))
        return Ok(None)

    async def set_caddyfile(
        self,
        caddyfile: str,
        *,
        validate: bool = True,
        sync: bool = False,
    ) -> Result[None]:
        """Store Caddyfile text in memory.

        Args:
            caddyfile: New configuration text.
            validate: Adapt the text first and reject it if that fails.
            sync: Push to the server right after storing.

        Returns:
            Ok(None), Err(ValidationFailed), or the sync_to_caddy() error.
        """
        async with self._lock:
            if validate:
                validated = await self.validate_config(caddyfile)
                if isinstance(validated, Err):
                    self._logger.info(
                        {
                            "event": "config_rejected",
                            "message": "Caddyfile failed validation, not stored",
                        }
                    )
                    return validated

            self._caddyfile = caddyfile
            self._fire(LifecycleEvent.CONFIG_SET)

            if sync:
                return await self._sync_to_caddy(force=False, backup=True)
            return Ok(None)

    async def clear_config(self) -> Result[None]:
        """Empty the in-memory configuration."""
        async with self._lock:
            self._caddyfile = ""
            self._fire(LifecycleEvent.CONFIG_CLEARED)
            return Ok(None)

    # -------------------------------------------------------------------------
    # Synchronization
    # -------------------------------------------------------------------------

    async def sync_to_caddy(self, *, force: bool = False, backup: bool = True) -> Result[None]:
        """Push the in-memory configuration to the server.

        Args:
            force: Skip validation; an adapt failure is then reported as
                AdaptationFailed instead of ValidationFailed.
            backup: Capture the live configuration before pushing.

        Returns:
            Ok(None), Err(ValidationFailed | AdaptationFailed),
            Err(HttpError(status, body)) when /load rejects the document, or
            Err("caddy_not_available") on transport failure.
        """
        async with self._lock:
            return await self._sync_to_caddy(force=force, backup=backup)

    async def _sync_to_caddy(self, *, force: bool, backup: bool) -> Result[None]:
        started_at = time.monotonic()
        backup_captured = False

        if backup:
            backup_captured = (await self._fetch_runtime()).ok

        document = None
        result: Result[None]
        adapted = await self._adapt_memory()
        if isinstance(adapted, Err):
            result = adapted if force else Err(ValidationFailed(adapted.reason.reason))
        else:
            document = adapted.value
            result = _http_result(await self._api.load(document))

        if isinstance(result, Ok):
            self._sync = SyncState(
                last_sync_time=datetime.now(timezone.utc),
                last_sync_status="in_sync",
                last_known_good_config=document,
            )
            self._fire(LifecycleEvent.SYNC_SUCCESS)
        else:
            self._fire(LifecycleEvent.SYNC_FAILURE)

        log_timed_event(
            "sync_to_caddy",
            started_at,
            success=isinstance(result, Ok),
            backup_captured=backup_captured,
            forced=force,
            error=None if isinstance(result, Ok) else repr(result.reason),
        )
        return result

    async def sync_from_caddy(self) -> Result[None]:
        """Replace the in-memory configuration with the live one.

        The live document is stored as pretty-printed JSON text. The
        last-known-good snapshot is left untouched.

        Returns:
            Ok(None), Err("caddy_not_available"), or Err(HttpError).
        """
        async with self._lock:
            started_at = time.monotonic()
            fetched = await self._fetch_runtime()

            if isinstance(fetched, Ok):
                self._caddyfile = json.dumps(fetched.value, indent=2)
                self._sync = SyncState(
                    last_sync_time=datetime.now(timezone.utc),
                    last_sync_status="in_sync",
                    last_known_good_config=self._sync.last_known_good_config,
                )
                if not is_configured(self._state):
                    self._fire(LifecycleEvent.CONFIG_SET)
                result: Result[None] = Ok(None)
            else:
                result = fetched

            log_timed_event(
                "sync_from_caddy",
                started_at,
                success=isinstance(result, Ok),
                error=None if isinstance(result, Ok) else repr(result.reason),
            )
            return result

    async def check_sync_status(self) -> Result[Literal["in_sync"] | DriftReport]:
        """Compare the adapted memory configuration with the live one.

        etag keys are ignored at every level, and so is a live "admin" block
        when the memory document has none (load() merges it into every push).
        Nothing is changed.

        Returns:
            Ok("in_sync"), Ok(DriftReport), or the error from adapting or fetching.
        """
        async with self._lock:
            started_at = time.monotonic()
            result: Result[Literal["in_sync"] | DriftReport]

            memory = await self._adapt_memory()
            if isinstance(memory, Err):
                result = memory
            else:
                runtime = await self._fetch_runtime()
                if isinstance(runtime, Err):
                    result = runtime
                else:
                    live = _without_injected_admin(memory.value, runtime.value)
                    if normalize_config(memory.value) == normalize_config(live):
                        result = Ok("in_sync")
                    else:
                        result = Ok(compute_diff(memory.value, live))

            if isinstance(result, Err):
                status = "error"
            else:
                status = "in_sync" if result.value == "in_sync" else "drift_detected"
            log_timed_event(
                "drift_check",
                started_at,
                success=isinstance(result, Ok),
                level=logging.DEBUG if status == "in_sync" else None,
                status=status,
            )
            return result

    async def apply_runtime_config(self, config: Any, path: str = "/") -> Result[None]:
        """Push a document straight to the server, bypassing memory.

        Args:
            config: Structured document to apply.
            path: "/" for a full /load, otherwise a config sub-path to PATCH.

        Returns:
            Ok(None), Err(HttpError(status, body)), Err("caddy_not_available")
            for a failed /load or Err("patch_failed") for a failed PATCH.
        """
        async with self._lock:
            started_at = time.monotonic()

            if path in ("", "/"):
                result = _http_result(await self._api.load(config))
            else:
                response = await self._api.patch(path, config)
                if response.status == 0:
                    result = Err("patch_failed")
                else:
                    result = _http_result(response)

            log_timed_event(
                "apply_runtime_config",
                started_at,
                success=isinstance(result, Ok),
                path=config_path(path) if path not in ("", "/") else "/load",
            )
            return result

    async def rollback(self) -> Result[None]:
        """Reload the last-known-good configuration.

        Returns:
            Ok(None), Err("no_rollback_available") before any successful
            push, Err(HttpError) or Err("caddy_not_available").
        """
        async with self._lock:
            started_at = time.monotonic()
            snapshot = self._sync.last_known_good_config

            if snapshot is None:
                result: Result[None] = Err("no_rollback_available")
            else:
                result = _http_result(await self._api.load(snapshot))

            log_timed_event(
                "rollback",
                started_at,
                success=isinstance(result, Ok),
                error=None if isinstance(result, Ok) else repr(result.reason),
            )
            return result

    # -------------------------------------------------------------------------
    # Internals (caller holds the lock where state is touched)
    # -------------------------------------------------------------------------

    async def _fetch_runtime(self) -> Result[Any]:
        response = await self._api.get(config_path())
        if response.status == 0:
            return Err("caddy_not_available")
        if not response.is_success:
            return Err(HttpError(response.status, response.body))
        # An unconfigured server answers with a JSON null
        return Ok({} if response.body is None else response.body)

    async def _adapt_memory(self) -> Result[Any]:
        stored = _as_json_document(self._caddyfile)
        if stored is not None:
            return Ok(stored)

        adapted = await self._api.adapt(self._caddyfile)
        if not adapted:
            return Err(AdaptationFailed("adapt_failed"))
        return Ok(adapted)

    def _fire(self, event: LifecycleEvent) -> None:
        result = transition(self._state, event)
        if isinstance(result, Err):
            self._logger.debug(
                {
                    "event": "lifecycle_event_ignored",
                    "state": self._state.value,
                    "lifecycle_event": event.value,
                }
            )
            return

        previous, self._state = self._state, result.value
        if previous != self._state:
            self._logger.info(
                {
                    "event": "lifecycle_state_changed",
                    "message": f"Lifecycle {previous.value} -> {self._state.value} ({event.value})",
                    "from_state": previous.value,
                    "to_state": self._state.value,
                    "lifecycle_event": event.value,
                }
            )


def _as_json_document(text: str) -> dict[str, Any] | None:
    """Memory text pulled by sync_from_caddy is JSON, not a Caddyfile."""
    stripped = text.lstrip()
    if not stripped.startswith("{"):
        return None
    try:
        document = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    return document if isinstance(document, dict) else None
