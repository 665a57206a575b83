"""Lifecycle state machine for a managed Caddy instance.

Pure functions over a fixed transition table; no I/O and no stored state.
ConfigManager owns the current state and feeds events through transition().

States:
    initializing -> starting up, nothing known yet
    unconfigured -> no configuration set
    configured   -> configuration set, not yet (successfully) pushed
    synced       -> configuration pushed and server healthy
    degraded     -> configuration pushed but server not responding

The table is exhaustive: any (state, event) pair not listed is rejected
without changing state.
"""

from __future__ import annotations

__all__ = [
    "LifecycleEvent",
    "LifecycleState",
    "TRANSITIONS",
    "describe",
    "initial_state",
    "is_configured",
    "is_degraded",
    "is_ready",
    "transition",
    "transition_or_raise",
    "valid_transition",
]

from enum import Enum
from types import MappingProxyType

from caddy_control.exceptions import InvalidTransitionError
from caddy_control.result import Err, Ok, Result


class LifecycleState(str, Enum):
    """Lifecycle state of a managed instance.

    Inherits from str for easy serialization and comparison.
    """

    INITIALIZING = "initializing"
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    SYNCED = "synced"
    DEGRADED = "degraded"


class LifecycleEvent(str, Enum):
    """Event fed into the state machine."""

    STARTUP_EMPTY = "startup_empty"
    STARTUP_WITH_CONFIG = "startup_with_config"
    CONFIG_SET = "config_set"
    CONFIG_CLEARED = "config_cleared"
    SYNC_SUCCESS = "sync_success"
    SYNC_FAILURE = "sync_failure"
    HEALTH_OK = "health_ok"
    HEALTH_FAIL = "health_fail"


_S = LifecycleState
_E = LifecycleEvent

TRANSITIONS: MappingProxyType[tuple[LifecycleState, LifecycleEvent], LifecycleState] = MappingProxyType(
    {
        (_S.INITIALIZING, _E.STARTUP_EMPTY): _S.UNCONFIGURED,
        (_S.INITIALIZING, _E.STARTUP_WITH_CONFIG): _S.CONFIGURED,
        (_S.UNCONFIGURED, _E.CONFIG_SET): _S.CONFIGURED,
        (_S.CONFIGURED, _E.SYNC_SUCCESS): _S.SYNCED,
        (_S.CONFIGURED, _E.SYNC_FAILURE): _S.CONFIGURED,
        (_S.CONFIGURED, _E.CONFIG_CLEARED): _S.UNCONFIGURED,
        (_S.SYNCED, _E.CONFIG_SET): _S.CONFIGURED,
        (_S.SYNCED, _E.HEALTH_OK): _S.SYNCED,
        (_S.SYNCED, _E.HEALTH_FAIL): _S.DEGRADED,
        (_S.DEGRADED, _E.HEALTH_OK): _S.SYNCED,
        (_S.DEGRADED, _E.SYNC_SUCCESS): _S.SYNCED,
        (_S.DEGRADED, _E.SYNC_FAILURE): _S.DEGRADED,
    }
)

_DESCRIPTIONS: dict[LifecycleState, str] = {
    _S.INITIALIZING: "Starting up",
    _S.UNCONFIGURED: "No configuration set, waiting for configuration",
    _S.CONFIGURED: "Configuration set, pending sync to Caddy",
    _S.SYNCED: "Configuration synced to Caddy, operational",
    _S.DEGRADED: "Configuration synced but Caddy not responding",
}


def transition(
    state: LifecycleState | str,
    event: LifecycleEvent | str,
) -> Result[LifecycleState]:
    """Compute the next state for an event.

    Args:
        state: Current state.
        event: Event to apply.

    Returns:
        Ok(next_state), or Err("invalid_transition") when the pair is not
        in the table (including unknown state or event names).
    """
    try:
        key = (LifecycleState(state), LifecycleEvent(event))
    except ValueError:
        return Err("invalid_transition")

    next_state = TRANSITIONS.get(key)
    if next_state is None:
        return Err("invalid_transition")
    return Ok(next_state)


def transition_or_raise(
    state: LifecycleState | str,
    event: LifecycleEvent | str,
) -> LifecycleState:
    """Like transition(), but raise on an undefined pair.

    Raises:
        InvalidTransitionError: If the pair is not in the table.
    """
    result = transition(state, event)
    if isinstance(result, Err):
        raise InvalidTransitionError(_name(state), _name(event))
    return result.value


def valid_transition(from_state: LifecycleState | str, to_state: LifecycleState | str) -> bool:
    """Whether any event moves from_state to to_state."""
    try:
        source, target = LifecycleState(from_state), LifecycleState(to_state)
    except ValueError:
        return False
    return any(s == source and t == target for (s, _), t in TRANSITIONS.items())


def initial_state(has_config: bool | None = None) -> LifecycleState:
    """State to start from.

    Args:
        has_config: Whether a configuration is already known at startup.
            None means it is not known yet.

    Returns:
        INITIALIZING when unknown, otherwise the state the matching
        startup event leads to.
    """
    if has_config is None:
        return LifecycleState.INITIALIZING
    return LifecycleState.CONFIGURED if has_config else LifecycleState.UNCONFIGURED


def is_ready(state: LifecycleState | str) -> bool:
    """Ready only when synced."""
    return state == LifecycleState.SYNCED


def is_configured(state: LifecycleState | str) -> bool:
    """A configuration exists (pushed or not)."""
    return state in (LifecycleState.CONFIGURED, LifecycleState.SYNCED, LifecycleState.DEGRADED)


def is_degraded(state: LifecycleState | str) -> bool:
    return state == LifecycleState.DEGRADED


def describe(state: LifecycleState | str) -> str:
    """Human-readable description of a state."""
    try:
        return _DESCRIPTIONS[LifecycleState(state)]
    except ValueError:
        return f"Unknown state: {state}"


def _name(value: Enum | str) -> str:
    return value.value if isinstance(value, Enum) else str(value)
