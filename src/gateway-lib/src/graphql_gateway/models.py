"""
graphql_gateway.models - Request, context and error records for the pipeline.

All records are frozen: a request's context and errors are built once and then
only read, so concurrent requests never share mutable state.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

# Message every internal fault is masked to before it reaches the caller.
GENERIC_ERROR_MESSAGE = "Internal Server Error"

MISSING_CREDENTIAL_MESSAGE = "Missing authorization header"
INVALID_CREDENTIAL_MESSAGE = "Invalid authorization header"

# Extension key used by the result transform to mark backend errors.
ORIGIN_EXTENSION = "gatewayOrigin"
BACKEND_ORIGIN = "BACKEND_ORIGIN"
INTERNAL_ORIGIN = "INTERNAL_ORIGIN"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ErrorKind(StrEnum):
    AUTHENTICATION = "AUTHENTICATION"
    CALLER_INPUT = "CALLER_INPUT"
    BACKEND = BACKEND_ORIGIN
    INTERNAL = INTERNAL_ORIGIN


# ---------------------------------------------------------------------------
# Inbound request
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GraphQLRequest:
    """One inbound GraphQL operation as delivered by the transport wrapper."""

    query: str
    variables: Mapping[str, Any] | None = None
    operation_name: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    http_method: str = "POST"

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


@dataclass(frozen=True)
class GatewayResponse:
    status_code: int
    body: dict[str, Any]


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestContext:
    """Per-request context: either an authenticated identity or a captured fault.

    Exactly one of identity / error is set. Use the authenticated() and
    failed() constructors rather than the raw initialiser.
    """

    identity: str | None = None
    error: Exception | None = None

    def __post_init__(self) -> None:
        if (self.identity is None) == (self.error is None):
            raise ValueError("RequestContext must hold exactly one of identity or error")

    @classmethod
    def authenticated(cls, identity: str) -> RequestContext:
        return cls(identity=identity)

    @classmethod
    def failed(cls, error: Exception) -> RequestContext:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def require_identity(self) -> str:
        if self.identity is None:
            raise RuntimeError("Request context has no caller identity") from self.error
        return self.identity


# ---------------------------------------------------------------------------
# Gateway error
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GatewayError:
    """A classified error, created during a request and formatted exactly once."""

    kind: ErrorKind
    message: str
    path: tuple[str | int, ...] | None = None
    locations: tuple[Mapping[str, int], ...] | None = None
    extensions: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    original_error: BaseException | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.extensions, MappingProxyType):
            object.__setattr__(self, "extensions", MappingProxyType(dict(self.extensions)))

    @classmethod
    def from_backend(
        cls, error: Mapping[str, Any], *, fallback_path: tuple[str | int, ...] | None = None
    ) -> GatewayError:
        """Build a BACKEND error from one tagged backend error object."""
        path = error.get("path")
        locations = error.get("locations")
        return cls(
            kind=ErrorKind.BACKEND,
            message=str(error.get("message", "")),
            path=tuple(path) if path else fallback_path,
            locations=tuple(dict(loc) for loc in locations) if locations else None,
            extensions=dict(error.get("extensions") or {}),
        )
