"""
graphql_gateway.remote - Proxy for the backend GraphQL service.

RemoteExecutor forwards a document + variables to the backend verbatim: no
retries, no caching, no local validation. discover_schema() introspects the
backend once at cold start and builds a local proxy schema from the result.

tag_backend_errors() is the result transform applied to every backend
response so the formatting stage can tell backend errors from local ones.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import requests
from aws_lambda_powertools import Logger, Tracer
from graphql import (
    DocumentNode,
    GraphQLError,
    GraphQLSchema,
    build_client_schema,
    get_introspection_query,
    parse,
    print_ast,
)

from graphql_gateway.exceptions import RemoteTransportError, SchemaDiscoveryError
from graphql_gateway.models import BACKEND_ORIGIN, ORIGIN_EXTENSION

logger = Logger(service="graphql-gateway")
tracer = Tracer()

API_KEY_HEADER = "x-api-key"


class Executor(Protocol):
    def __call__(
        self, document: DocumentNode, variables: Mapping[str, Any] | None = None
    ) -> dict[str, Any]: ...


class RemoteExecutor:
    """HTTP executor for the backend endpoint, authenticated with a shared secret."""

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        timeout: float = 900.0,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._timeout = timeout
        # Session keeps the connection pool warm across invocations
        self._session = session or requests.Session()

    def __call__(
        self, document: DocumentNode, variables: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        return self.execute(document, variables)

    @tracer.capture_method(capture_response=False)
    def execute(
        self, document: DocumentNode, variables: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """POST the operation and return the backend's raw GraphQL result.

        A body carrying a GraphQL errors list is returned even on a non-2xx
        status. Anything else that is not a 2xx JSON object raises
        RemoteTransportError.
        """
        payload: dict[str, Any] = {"query": print_ast(document)}
        if variables:
            payload["variables"] = dict(variables)

        try:
            response = self._session.post(
                self._url,
                json=payload,
                headers={API_KEY_HEADER: self._api_key},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.exception("Backend request failed", extra={"url": self._url})
            raise RemoteTransportError("Backend request failed") from e

        status_code = response.status_code
        try:
            body = response.json()
        except ValueError as e:
            logger.error(
                "Backend returned a non-JSON body",
                extra={"status_code": status_code},
            )
            raise RemoteTransportError(
                "Backend returned a non-JSON response", status_code=status_code
            ) from e

        if not isinstance(body, dict):
            raise RemoteTransportError(
                "Backend returned a non-object JSON body", status_code=status_code
            )

        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            return body

        if not response.ok:
            logger.error("Backend returned an HTTP error", extra={"status_code": status_code})
            raise RemoteTransportError(
                f"Backend returned HTTP {status_code}", status_code=status_code
            )
        return body


@tracer.capture_method(capture_response=False)
def discover_schema(executor: Executor) -> GraphQLSchema:
    """Introspect the backend and build a client-side proxy schema."""
    result = executor(parse(get_introspection_query(descriptions=True)))

    if result.get("errors"):
        raise SchemaDiscoveryError(f"Backend introspection returned errors: {result['errors']}")

    data = result.get("data")
    if not isinstance(data, dict) or "__schema" not in data:
        raise SchemaDiscoveryError("Backend introspection response is missing __schema")

    try:
        schema = build_client_schema(data)
    except (TypeError, KeyError, ValueError, GraphQLError) as e:
        raise SchemaDiscoveryError("Backend introspection result is not a valid schema") from e

    logger.info(
        "Backend schema discovered",
        extra={"type_count": len(schema.type_map)},
    )
    return schema


@dataclass(frozen=True)
class RemoteSchema:
    """The backend's proxy schema together with the executor that reaches it."""

    schema: GraphQLSchema
    executor: Executor

    @classmethod
    def discover(cls, executor: Executor) -> RemoteSchema:
        return cls(schema=discover_schema(executor), executor=executor)


def tag_backend_errors(result: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of result with every error marked as backend-originated.

    Message, path, locations and all other extensions are kept as they are.
    The input is not modified.
    """
    transformed = dict(result)
    errors = result.get("errors")
    if errors:
        transformed["errors"] = [
            {
                **error,
                "extensions": {
                    **(error.get("extensions") or {}),
                    ORIGIN_EXTENSION: BACKEND_ORIGIN,
                },
            }
            for error in errors
        ]
    return transformed
