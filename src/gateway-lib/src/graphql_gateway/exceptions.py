"""
graphql_gateway.exceptions - Fault taxonomy for the gateway pipeline.

Faults are classified, not swallowed:
  AuthenticationFault  - missing/invalid credential, safe to show the caller.
  CallerInputFault     - malformed request input, safe to show the caller.
  BackendError         - errors returned by the backend, passed through as-is.
  everything else      - internal, masked to a generic message and reported.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any


class GatewayException(Exception):
    """Base class for every exception raised by the gateway library."""


class GatewayConfigurationError(GatewayException):
    """Raised at cold start when settings or the gateway schema are unusable."""


class AuthenticationFault(GatewayException):
    """
    The caller could not be authenticated.

    Attributes:
        dependency_outage: True when the credential could not be checked at
                           all (store unavailable) rather than being wrong.
    """

    dependency_outage: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class CredentialLookupUnavailable(AuthenticationFault):
    """The credential store could not be read."""

    dependency_outage = True

    def __init__(self, message: str = "Unable to verify authorization header") -> None:
        super().__init__(message)


class CallerInputFault(GatewayException):
    """Raised by resolvers for bad caller input that should be disclosed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class BackendError(GatewayException):
    """
    The backend answered with a GraphQL errors payload.

    Attributes:
        errors: The backend's error objects, already tagged by the result
                transform. Never empty.
    """

    def __init__(self, errors: Sequence[Mapping[str, Any]]) -> None:
        if not errors:
            raise ValueError("BackendError requires at least one backend error")
        self.errors = tuple(errors)
        super().__init__(str(self.errors[0].get("message", "Backend error")))


class RemoteTransportError(GatewayException):
    """The backend could not be reached or did not answer with GraphQL JSON."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class SchemaDiscoveryError(GatewayException):
    """Introspecting the backend schema failed."""
