"""Custom exceptions for caddy-control.

Exceptions are organized into two categories:

Internal Wire Errors (never escape the wire client):
    - AdminTransportError: Socket-level failure (refused, reset, timeout)
    - AdminProtocolError: Malformed response (status line, chunk size, JSON)

Caller Errors (raised to the caller):
    - ConfigurationError: Settings or admin URL are invalid
    - InvalidTransitionError: Lifecycle event not defined for the current state

Transport and protocol failures are converted into Err values at the wire
client boundary; everything above it works with return values.

Usage:
    from caddy_control.exceptions import ConfigurationError
"""

from __future__ import annotations

__all__ = [
    "AdminProtocolError",
    "AdminTransportError",
    "ConfigurationError",
    "InvalidTransitionError",
]


# =============================================================================
# Internal Wire Errors
# =============================================================================


class AdminTransportError(Exception):
    """Socket-level failure during an admin exchange.

    Attributes:
        reason: Short snake_case reason (e.g., "timeout", "connection_refused").
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class AdminProtocolError(Exception):
    """Response from the admin endpoint could not be parsed.

    Treated exactly like a transport error: the exchange is abandoned
    and nothing partially parsed is returned.

    Attributes:
        reason: Short snake_case reason (e.g., "malformed_chunk_size").
        detail: Offending input or decoder message, for logs.
    """

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


# =============================================================================
# Caller Errors
# =============================================================================


class ConfigurationError(Exception):
    """Configuration is invalid or incomplete.

    Raised when:
    - Settings file contains invalid JSON
    - Settings file fails Pydantic validation
    - admin_url is malformed or uses an unsupported scheme

    A bad admin URL is fatal: it is reported immediately and never retried.
    Exit code 16 indicates configuration failure.
    """

    exit_code: int = 16
    failure_type: str = "configuration_failure"


class InvalidTransitionError(Exception):
    """Lifecycle event is not defined for the current state.

    Undefined (state, event) pairs are a programming error in the caller.

    Attributes:
        state: State the transition was attempted from.
        event: Event that was rejected.
    """

    def __init__(self, state: str, event: str) -> None:
        super().__init__(f"Invalid state transition: {state} + {event}")
        self.state = state
        self.event = event
