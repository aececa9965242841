"""
graphql_gateway.error_tracking - Error classification, reporting and masking.

Three decisions are made for every request:

  1. classification - each GraphQL error becomes a GatewayError of a closed
     ErrorKind (authentication, caller input, backend, internal);
  2. reporting      - ErrorTrackingHooks sends internal faults to the fault
     tracker, unless the request already failed on caller input;
  3. formatting     - format_error() strips everything internal and masks
     internal faults before the response is serialised.

Parse, validation and operation-selection failures are flagged while those
stages run. They cannot be told apart reliably from the final error list.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from aws_lambda_powertools import Logger
from graphql import GraphQLError

from graphql_gateway.exceptions import AuthenticationFault, BackendError, CallerInputFault
from graphql_gateway.fault_tracking import FaultTracker
from graphql_gateway.hooks import LifecycleHooks
from graphql_gateway.models import (
    BACKEND_ORIGIN,
    GENERIC_ERROR_MESSAGE,
    ORIGIN_EXTENSION,
    ErrorKind,
    GatewayError,
    GraphQLRequest,
    RequestContext,
)

logger = Logger(service="graphql-gateway")


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def _locations(error: GraphQLError) -> tuple[dict[str, int], ...] | None:
    if not error.locations:
        return None
    return tuple({"line": loc.line, "column": loc.column} for loc in error.locations)


def caller_input_error(error: GraphQLError) -> GatewayError:
    """Wrap a parse, validation or variable coercion error."""
    return GatewayError(
        kind=ErrorKind.CALLER_INPUT,
        message=error.message,
        path=tuple(error.path) if error.path else None,
        locations=_locations(error),
        original_error=error,
    )


def context_error(fault: Exception) -> GatewayError:
    """Wrap a fault captured while building the request context."""
    if isinstance(fault, AuthenticationFault):
        return GatewayError(
            kind=ErrorKind.AUTHENTICATION, message=fault.message, original_error=fault
        )
    return GatewayError(kind=ErrorKind.INTERNAL, message=str(fault), original_error=fault)


def _classify_backend_error(
    error: Mapping[str, Any], backend: BackendError, path: tuple[str | int, ...] | None
) -> GatewayError:
    extensions = error.get("extensions") or {}
    if extensions.get(ORIGIN_EXTENSION) == BACKEND_ORIGIN:
        return GatewayError.from_backend(error, fallback_path=path)
    return GatewayError(
        kind=ErrorKind.INTERNAL,
        message=str(error.get("message", "")),
        path=path,
        original_error=backend,
    )


def classify_error(error: GraphQLError) -> list[GatewayError]:
    """Classify an execution error. A BackendError expands to one error per backend error.

    Only errors carrying the backend marker are passed through as BACKEND.
    Untagged errors inside a BackendError are treated as internal.
    """
    original = error.original_error
    path = tuple(error.path) if error.path else None

    if isinstance(original, BackendError):
        return [_classify_backend_error(e, original, path) for e in original.errors]

    if isinstance(original, AuthenticationFault):
        kind = ErrorKind.AUTHENTICATION
    elif isinstance(original, CallerInputFault):
        kind = ErrorKind.CALLER_INPUT
    else:
        kind = ErrorKind.INTERNAL

    return [
        GatewayError(
            kind=kind,
            message=error.message,
            path=path,
            locations=_locations(error),
            original_error=original or error,
        )
    ]


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_error(error: GatewayError) -> dict[str, Any]:
    """Render a GatewayError for the response body. Called exactly once per error."""
    formatted: dict[str, Any] = {"message": error.message}
    if error.locations:
        formatted["locations"] = [dict(loc) for loc in error.locations]
    if error.path:
        formatted["path"] = list(error.path)

    if error.kind is ErrorKind.BACKEND:
        extensions = {k: v for k, v in error.extensions.items() if k != ORIGIN_EXTENSION}
        if extensions:
            formatted["extensions"] = extensions
    elif error.kind is ErrorKind.INTERNAL:
        formatted["message"] = GENERIC_ERROR_MESSAGE
    elif error.kind in (ErrorKind.AUTHENTICATION, ErrorKind.CALLER_INPUT):
        pass
    else:
        raise ValueError(f"Unhandled error kind: {error.kind!r}")
    return formatted


# ---------------------------------------------------------------------------
# Reporting hooks
# ---------------------------------------------------------------------------


def _is_reportable(error: GatewayError) -> bool:
    if error.kind is ErrorKind.INTERNAL:
        return True
    if error.kind is ErrorKind.AUTHENTICATION:
        fault = error.original_error
        return isinstance(fault, AuthenticationFault) and fault.dependency_outage
    return False


class ErrorTrackingHooks(LifecycleHooks):
    """Decides which of a request's errors are sent to the fault tracker."""

    def __init__(self, fault_tracker: FaultTracker) -> None:
        self._tracker = fault_tracker
        self._tags: dict[str, Any] = {}
        self.parse_failed = False
        self.validation_failed = False
        self.unknown_operation_name = False

    def request_did_start(self, request: GraphQLRequest, context: RequestContext) -> None:
        self._tags = {"query": request.query, "variables": dict(request.variables or {})}
        if context.identity is not None:
            self._tags["identity"] = context.identity
            return

        fault = context.error
        logger.error(
            "Request context could not be built",
            extra={"fault_type": type(fault).__name__, "fault": str(fault)},
        )
        # A caller forgetting their key is not an operational fault
        if isinstance(fault, AuthenticationFault) and not fault.dependency_outage:
            return
        if self._capture(fault):
            self._flush()

    def parsing_did_end(self, error: GraphQLError | None) -> None:
        if error is not None:
            self.parse_failed = True

    def validation_did_end(self, errors: Sequence[GraphQLError]) -> None:
        if errors:
            self.validation_failed = True

    def operation_resolution_did_end(self, errors: Sequence[GraphQLError]) -> None:
        if errors:
            self.unknown_operation_name = True

    @property
    def caller_input_failed(self) -> bool:
        return self.parse_failed or self.validation_failed or self.unknown_operation_name

    def did_encounter_errors(self, errors: Sequence[GatewayError]) -> None:
        for error in errors:
            logger.info(
                "GraphQL error",
                extra={
                    "kind": error.kind.value,
                    "error_message": error.message,
                    "path": error.path,
                },
            )

        if self.caller_input_failed:
            return

        sent = 0
        seen: set[int] = set()
        for error in errors:
            if not _is_reportable(error):
                continue
            original = error.original_error
            if original is None or id(original) in seen:
                continue
            seen.add(id(original))
            if self._capture(original):
                sent += 1

        if sent:
            self._flush()

    def _capture(self, error: BaseException) -> bool:
        try:
            self._tracker.capture_exception(error, self._tags)
        except Exception:
            logger.exception("Fault tracker capture failed")
            return False
        return True

    def _flush(self) -> None:
        try:
            self._tracker.flush()
        except Exception:
            logger.exception("Fault tracker flush failed")
