"""Tagged return values shared by every layer above the socket.

Operations that can fail for expected reasons (server down, bad URL, no
snapshot to roll back to) return ``Ok(value)`` or ``Err(reason)`` instead of
raising. Reasons are short snake_case strings, or one of the structured
reasons below when the caller needs more than a tag.

Example:
    >>> result = parse_url("https://localhost:2019")
    >>> result
    Err(reason='https_not_supported')
    >>> match result:
    ...     case Ok(endpoint): ...
    ...     case Err(reason): ...
"""

from __future__ import annotations

__all__ = [
    "AdaptationFailed",
    "Err",
    "HttpError",
    "Ok",
    "Result",
    "ValidationFailed",
]

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Err:
    """Failed outcome carrying a reason tag or structured reason."""

    reason: Any

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


# =============================================================================
# Structured reasons
# =============================================================================


@dataclass(frozen=True, slots=True)
class HttpError:
    """Admin API answered, but with a non-2xx status.

    The exchange itself succeeded, so status and body are kept intact
    (unlike transport errors, which carry no response at all).
    """

    status: int
    body: Any = None


@dataclass(frozen=True, slots=True)
class AdaptationFailed:
    """In-memory document could not be adapted to JSON via /adapt."""

    reason: Any


@dataclass(frozen=True, slots=True)
class ValidationFailed:
    """Document was rejected by adapt-validation before being stored or pushed."""

    reason: Any
