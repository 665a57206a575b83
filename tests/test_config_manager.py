"""Tests for ConfigManager synchronization, drift detection and rollback."""

from __future__ import annotations

import asyncio
import json

import pytest

from caddy_control.admin.api import AdminApi
from caddy_control.config_manager import (
    ConfigManager,
    DriftReport,
    compute_diff,
    normalize_config,
)
from caddy_control.result import (
    AdaptationFailed,
    Err,
    HttpError,
    Ok,
    ValidationFailed,
)
from caddy_control.state import LifecycleState

CADDYFILE = "example.com {\n\trespond \"hi\"\n}\n"
ADAPTED = {"apps": {"http": {"servers": {"srv0": {"listen": [":443"]}}}}}
LIVE_ADMIN = {"listen": "unix//run/caddy.sock"}


@pytest.fixture
def manager(api: AdminApi) -> ConfigManager:
    return ConfigManager(api)


def _adapt_ok(fake_wire, document=ADAPTED) -> None:
    fake_wire.respond("POST", "/adapt", 200, {"result": document, "warnings": []})


def _live(fake_wire, document) -> None:
    fake_wire.respond("GET", "/config/", 200, document)


async def _configured(manager: ConfigManager, fake_wire) -> None:
    _adapt_ok(fake_wire)
    await manager.initialize()
    assert await manager.set_caddyfile(CADDYFILE) == Ok(None)


# ============================================================================
# Drift helpers
# ============================================================================


class TestNormalizeConfig:
    def test_drops_etag_at_every_level(self) -> None:
        config = {"etag": "1", "apps": {"etag": "2", "list": [{"etag": "3", "k": 1}]}}
        assert normalize_config(config) == {"apps": {"list": [{"k": 1}]}}

    def test_scalars_unchanged(self) -> None:
        assert normalize_config(5) == 5


class TestComputeDiff:
    def test_reports_top_level_keys(self) -> None:
        memory = {"apps": {"a": 1}, "logging": {}, "storage": {}}
        runtime = {"apps": {"a": 2}, "admin": {}, "storage": {}, "etag": "x"}

        assert compute_diff(memory, runtime) == DriftReport(
            only_in_memory=["logging"],
            only_in_runtime=["admin"],
            different_values=["apps"],
        )


# ============================================================================
# Lifecycle
# ============================================================================


class TestLifecycle:
    """Tests for state transitions driven by ConfigManager operations."""

    def test_starts_initializing(self, manager: ConfigManager) -> None:
        assert manager.get_state() == LifecycleState.INITIALIZING
        assert not manager.is_ready()
        assert not manager.is_configured()

    async def test_initialize_empty(self, manager: ConfigManager) -> None:
        assert await manager.initialize() == LifecycleState.UNCONFIGURED

    async def test_initialize_with_config(self, api: AdminApi) -> None:
        manager = ConfigManager(api, caddyfile=CADDYFILE)
        assert await manager.initialize() == LifecycleState.CONFIGURED
        assert manager.is_configured()

    async def test_full_lifecycle(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        assert manager.get_state() == LifecycleState.CONFIGURED

        fake_wire.respond("POST", "/load", 200, b"")
        assert await manager.sync_to_caddy() == Ok(None)
        assert manager.is_ready()

        assert await manager.record_health(False) == LifecycleState.DEGRADED
        assert manager.is_configured()
        assert not manager.is_ready()

        assert await manager.sync_to_caddy() == Ok(None)
        assert manager.get_state() == LifecycleState.SYNCED

    async def test_health_recovers_degraded(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        fake_wire.respond("POST", "/load", 200, b"")
        await manager.sync_to_caddy()

        await manager.record_health(False)
        assert await manager.record_health(True) == LifecycleState.SYNCED

    async def test_invalid_event_leaves_state(self, manager: ConfigManager) -> None:
        await manager.initialize()

        assert await manager.record_health(True) == LifecycleState.UNCONFIGURED

    async def test_clear_config(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)

        assert await manager.clear_config() == Ok(None)

        assert manager.get_state() == LifecycleState.UNCONFIGURED
        assert await manager.get_memory_config() == Ok("")


# ============================================================================
# Memory configuration
# ============================================================================


class TestSetCaddyfile:
    async def test_validation_rejects(self, manager: ConfigManager, fake_wire) -> None:
        await manager.initialize()
        fake_wire.respond("POST", "/adapt", 400, {"error": "unrecognized directive"})

        result = await manager.set_caddyfile("bogus {")

        assert result == Err(ValidationFailed("adapt_failed"))
        assert await manager.get_memory_config() == Ok("")
        assert manager.get_state() == LifecycleState.UNCONFIGURED

    async def test_without_validation_skips_adapt(self, manager: ConfigManager, fake_wire) -> None:
        await manager.initialize()

        assert await manager.set_caddyfile("anything", validate=False) == Ok(None)

        assert fake_wire.requests("POST", "/adapt") == []
        assert await manager.get_memory_config("caddyfile") == Ok("anything")

    async def test_sync_option_pushes(self, manager: ConfigManager, fake_wire) -> None:
        await manager.initialize()
        _adapt_ok(fake_wire)
        fake_wire.respond("POST", "/load", 200, b"")

        assert await manager.set_caddyfile(CADDYFILE, sync=True) == Ok(None)

        assert manager.get_state() == LifecycleState.SYNCED
        assert len(fake_wire.requests("POST", "/load")) == 1

    async def test_validate_config(self, manager: ConfigManager, fake_wire) -> None:
        assert await manager.validate_config("x") == Err(ValidationFailed("adapt_failed"))
        _adapt_ok(fake_wire)
        assert await manager.validate_config(CADDYFILE) == Ok(None)


class TestGetConfig:
    async def test_memory_json_adapts(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        assert await manager.get_memory_config("json") == Ok(ADAPTED)

    async def test_memory_json_adapt_failure_surfaced(self, api: AdminApi) -> None:
        manager = ConfigManager(api, caddyfile=CADDYFILE)
        assert await manager.get_memory_config("json") == Err(AdaptationFailed("adapt_failed"))

    async def test_unknown_format(self, manager: ConfigManager) -> None:
        with pytest.raises(ValueError):
            await manager.get_memory_config("yaml")

    async def test_runtime(self, manager: ConfigManager, fake_wire) -> None:
        assert await manager.get_runtime_config() == Err("caddy_not_available")
        _live(fake_wire, {"apps": {}})
        assert await manager.get_runtime_config() == Ok({"apps": {}})

    async def test_runtime_path(self, manager: ConfigManager, fake_wire) -> None:
        assert await manager.get_runtime_config("apps/http") == Err("not_found")
        fake_wire.respond("GET", "/config/apps/http", 200, {"servers": {}})
        assert await manager.get_runtime_config("apps/http") == Ok({"servers": {}})

    async def test_runtime_path_error_status(self, manager: ConfigManager, fake_wire) -> None:
        error_body = {"error": "unknown path: nope"}
        fake_wire.respond("GET", "/config/apps/nope", 400, error_body)

        assert await manager.get_runtime_config("apps/nope") == Err(HttpError(400, error_body))

    async def test_runtime_path_null_is_not_found(self, manager: ConfigManager, fake_wire) -> None:
        fake_wire.respond("GET", "/config/apps/tls", 200, None)
        assert await manager.get_runtime_config("apps/tls") == Err("not_found")

    async def test_runtime_null_config_is_empty(self, manager: ConfigManager, fake_wire) -> None:
        _live(fake_wire, None)
        assert await manager.get_runtime_config() == Ok({})

    async def test_both(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        _live(fake_wire, {"apps": {}})

        result = await manager.get_config("both")

        assert result == Ok({"memory": ADAPTED, "runtime": {"apps": {}}})


# ============================================================================
# Synchronization
# ============================================================================


class TestSyncToCaddy:
    async def test_success_records_snapshot(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        fake_wire.respond("GET", "/config/admin", 200, LIVE_ADMIN)
        fake_wire.respond("POST", "/load", 200, b"")

        assert await manager.sync_to_caddy() == Ok(None)

        sync_state = manager.get_sync_state()
        assert sync_state.last_sync_status == "in_sync"
        assert sync_state.last_sync_time is not None
        assert sync_state.last_known_good_config == ADAPTED
        assert fake_wire.json_body("POST", "/load") == {**ADAPTED, "admin": LIVE_ADMIN}

    async def test_backup_reads_live_config_first(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        fake_wire.respond("POST", "/load", 200, b"")

        await manager.sync_to_caddy(backup=True)
        calls_with_backup = len(fake_wire.requests("GET", "/config/"))
        await manager.sync_to_caddy(backup=False)

        assert calls_with_backup == 1
        assert len(fake_wire.requests("GET", "/config/")) == 1

    async def test_http_error_keeps_status_and_body(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        fake_wire.respond("POST", "/load", 400, {"error": "loading new config: bad"})

        result = await manager.sync_to_caddy()

        assert result == Err(HttpError(400, {"error": "loading new config: bad"}))
        assert manager.get_state() == LifecycleState.CONFIGURED
        assert manager.get_sync_state().last_sync_status is None
        assert manager.get_sync_state().last_known_good_config is None

    async def test_transport_failure(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)

        assert await manager.sync_to_caddy() == Err("caddy_not_available")
        assert manager.get_state() == LifecycleState.CONFIGURED

    async def test_failure_while_degraded_stays_degraded(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        fake_wire.respond("POST", "/load", 200, b"")
        fake_wire.respond("POST", "/load", 500, b"")
        await manager.sync_to_caddy()
        await manager.record_health(False)

        assert await manager.sync_to_caddy() == Err(HttpError(500, b""))
        assert manager.get_state() == LifecycleState.DEGRADED
        assert manager.get_sync_state().last_known_good_config == ADAPTED

    async def test_adapt_failure(self, manager: ConfigManager, fake_wire) -> None:
        await manager.initialize()
        await manager.set_caddyfile("broken", validate=False)

        assert await manager.sync_to_caddy() == Err(ValidationFailed("adapt_failed"))
        assert await manager.sync_to_caddy(force=True) == Err(AdaptationFailed("adapt_failed"))
        assert fake_wire.requests("POST", "/load") == []


class TestSyncFromCaddy:
    async def test_stores_pretty_json(self, manager: ConfigManager, fake_wire) -> None:
        await manager.initialize()
        live = {"apps": {"http": {}}}
        _live(fake_wire, live)

        assert await manager.sync_from_caddy() == Ok(None)

        text = (await manager.get_memory_config("caddyfile")).value
        assert json.loads(text) == live
        assert "\n" in text
        assert manager.get_state() == LifecycleState.CONFIGURED
        assert manager.get_sync_state().last_known_good_config is None

    async def test_pulled_json_is_in_sync(self, manager: ConfigManager, fake_wire) -> None:
        await manager.initialize()
        _live(fake_wire, {"apps": {"http": {}}})
        await manager.sync_from_caddy()

        assert await manager.check_sync_status() == Ok("in_sync")
        assert fake_wire.requests("POST", "/adapt") == []

    async def test_unavailable(self, manager: ConfigManager) -> None:
        assert await manager.sync_from_caddy() == Err("caddy_not_available")


class TestCheckSyncStatus:
    async def test_in_sync_ignoring_etag(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        _live(fake_wire, {**ADAPTED, "etag": "abc"})

        assert await manager.check_sync_status() == Ok("in_sync")

    async def test_drift_detected(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        _live(fake_wire, {"apps": {"http": {}}, "logging": {}, "admin": LIVE_ADMIN})

        result = await manager.check_sync_status()

        assert result == Ok(DriftReport(only_in_runtime=["logging"], different_values=["apps"]))

    async def test_in_sync_after_push_with_live_admin(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        fake_wire.respond("GET", "/config/admin", 200, LIVE_ADMIN)
        fake_wire.respond("POST", "/load", 200, b"")
        assert await manager.sync_to_caddy(backup=False) == Ok(None)

        # Serve exactly what /load received as the live configuration
        _live(fake_wire, fake_wire.json_body("POST", "/load"))

        assert await manager.check_sync_status() == Ok("in_sync")

    async def test_declared_admin_block_is_compared(self, api: AdminApi, fake_wire) -> None:
        declared = {**ADAPTED, "admin": {"listen": "localhost:2019"}}
        manager = ConfigManager(api, caddyfile=json.dumps(declared))
        _live(fake_wire, {**ADAPTED, "admin": LIVE_ADMIN})

        result = await manager.check_sync_status()

        assert result == Ok(DriftReport(different_values=["admin"]))

    async def test_does_not_mutate(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        _live(fake_wire, {})
        state_before = manager.get_state()
        sync_before = manager.get_sync_state()

        await manager.check_sync_status()

        assert manager.get_state() == state_before
        assert manager.get_sync_state() == sync_before
        assert fake_wire.requests("POST", "/load") == []

    async def test_runtime_unavailable(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        assert await manager.check_sync_status() == Err("caddy_not_available")


class TestApplyRuntimeConfig:
    async def test_root_loads(self, manager: ConfigManager, fake_wire) -> None:
        fake_wire.respond("POST", "/load", 200, b"")

        assert await manager.apply_runtime_config({"apps": {}}) == Ok(None)
        assert manager.get_state() == LifecycleState.INITIALIZING

    async def test_root_http_error(self, manager: ConfigManager, fake_wire) -> None:
        fake_wire.respond("POST", "/load", 400, {"error": "bad"})
        assert await manager.apply_runtime_config({"apps": {}}) == Err(HttpError(400, {"error": "bad"}))

    async def test_root_transport_failure(self, manager: ConfigManager) -> None:
        assert await manager.apply_runtime_config({"apps": {}}) == Err("caddy_not_available")

    async def test_scoped_patch(self, manager: ConfigManager, fake_wire) -> None:
        fake_wire.respond("PATCH", "/config/apps/http/servers/srv0", 200, b"")

        assert await manager.apply_runtime_config({"listen": [":80"]}, "apps/http/servers/srv0") == Ok(None)
        assert fake_wire.json_body("PATCH", "/config/apps/http/servers/srv0") == {"listen": [":80"]}

    async def test_scoped_http_error(self, manager: ConfigManager, fake_wire) -> None:
        fake_wire.respond("PATCH", "/config/apps/nope", 404, {"error": "unknown path"})
        assert await manager.apply_runtime_config({}, "apps/nope") == Err(HttpError(404, {"error": "unknown path"}))

    async def test_scoped_transport_failure(self, manager: ConfigManager) -> None:
        assert await manager.apply_runtime_config({}, "apps/http") == Err("patch_failed")


class TestRollback:
    async def test_before_any_sync(self, manager: ConfigManager) -> None:
        assert await manager.rollback() == Err("no_rollback_available")

    async def test_repushes_snapshot(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        fake_wire.respond("POST", "/load", 200, b"")
        await manager.sync_to_caddy()

        # Memory moves on; the snapshot stays at what was loaded
        other = {"apps": {"tls": {}}}
        _adapt_ok(fake_wire, other)
        await manager.set_caddyfile("other.example {\n}\n")

        assert await manager.rollback() == Ok(None)
        assert fake_wire.json_body("POST", "/load") == ADAPTED

    async def test_rollback_http_error(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        fake_wire.respond("POST", "/load", 200, b"")
        fake_wire.respond("POST", "/load", 503, b"")
        await manager.sync_to_caddy()

        assert await manager.rollback() == Err(HttpError(503, b""))


class TestSerialization:
    async def test_operations_do_not_interleave(self, manager: ConfigManager, fake_wire) -> None:
        await _configured(manager, fake_wire)
        fake_wire.respond("POST", "/load", 200, b"")
        _live(fake_wire, ADAPTED)

        in_flight = 0
        max_in_flight = 0
        original = fake_wire._handle

        async def tracking_handle(*args):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return await original(*args)

        fake_wire._handle = tracking_handle

        await asyncio.gather(
            manager.sync_to_caddy(),
            manager.check_sync_status(),
            manager.sync_to_caddy(),
        )

        assert max_in_flight == 1
