"""
graphql_gateway.pipeline - Per-request orchestration of the gateway.

Stages run strictly in order:

    context building -> parsing -> validating -> operation resolving
    -> executing -> formatting

A failure in any stage skips straight to formatting. A failed request
context never reaches a resolver, and never triggers schema discovery.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from typing import Any

from aws_lambda_powertools import Logger, Tracer
from graphql import (
    DocumentNode,
    GraphQLError,
    GraphQLSchema,
    OperationDefinitionNode,
    OperationType,
    execute_sync,
    parse,
    validate,
)
from graphql.execution.values import get_variable_values

from graphql_gateway.error_tracking import (
    ErrorTrackingHooks,
    caller_input_error,
    classify_error,
    context_error,
    format_error,
)
from graphql_gateway.exceptions import AuthenticationFault
from graphql_gateway.fault_tracking import FaultTracker
from graphql_gateway.hooks import LifecycleHooks, RequestLoggingHooks
from graphql_gateway.identity import IdentityResolver
from graphql_gateway.models import (
    INVALID_CREDENTIAL_MESSAGE,
    MISSING_CREDENTIAL_MESSAGE,
    ErrorKind,
    GatewayError,
    GatewayResponse,
    GraphQLRequest,
    RequestContext,
)
from graphql_gateway.resolvers import resolve_by_response_key

logger = Logger(service="graphql-gateway")
tracer = Tracer()

_NO_DATA = object()

QUERY_TOO_DEEP_MESSAGE = "Query is nested too deeply."


class SchemaHandle:
    """
    Builds the gateway schema at most once per process and hands it out.

    Concurrent first callers block on the same lock, so only one build is
    ever in flight. A failed build is not cached; the next caller tries again.
    """

    def __init__(self, factory: Callable[[], GraphQLSchema]) -> None:
        self._factory = factory
        self._lock = threading.Lock()
        self._schema: GraphQLSchema | None = None

    def get(self) -> GraphQLSchema:
        schema = self._schema
        if schema is not None:
            return schema
        with self._lock:
            if self._schema is None:
                logger.info("Building gateway schema")
                self._schema = self._factory()
            return self._schema


class GraphQLGateway:
    """Authenticates, executes and formats one GraphQL request at a time.

    Holds no per-request state; a single instance serves every request in
    the process.
    """

    def __init__(
        self,
        schema_handle: SchemaHandle,
        identity_resolver: IdentityResolver,
        fault_tracker: FaultTracker,
        *,
        credential_header: str = "authorization",
        hook_factories: Sequence[Callable[[], LifecycleHooks]] = (),
    ) -> None:
        self._schema_handle = schema_handle
        self._identity_resolver = identity_resolver
        self._fault_tracker = fault_tracker
        self._credential_header = credential_header
        self._hook_factories = tuple(hook_factories)

    def _create_hooks(self) -> list[LifecycleHooks]:
        hooks: list[LifecycleHooks] = [
            RequestLoggingHooks(),
            ErrorTrackingHooks(self._fault_tracker),
        ]
        hooks.extend(factory() for factory in self._hook_factories)
        return hooks

    # -----------------------------------------------------------------------
    # Context building
    # -----------------------------------------------------------------------

    def build_context(self, request: GraphQLRequest) -> RequestContext:
        """Resolve the caller's identity. Faults are captured, never raised."""
        credential = request.header(self._credential_header)
        if credential is None or not credential.strip():
            return RequestContext.failed(AuthenticationFault(MISSING_CREDENTIAL_MESSAGE))

        try:
            identity = self._identity_resolver.resolve(credential.strip())
        except AuthenticationFault as e:
            return RequestContext.failed(e)
        except Exception as e:
            logger.exception("Unexpected error while resolving caller identity")
            return RequestContext.failed(e)

        if identity is None:
            return RequestContext.failed(AuthenticationFault(INVALID_CREDENTIAL_MESSAGE))
        return RequestContext.authenticated(identity)

    # -----------------------------------------------------------------------
    # Request lifecycle
    # -----------------------------------------------------------------------

    @tracer.capture_method(capture_response=False)
    def execute(self, request: GraphQLRequest) -> GatewayResponse:
        """Run one request. Always returns a GraphQL body, whatever fails."""
        context = self.build_context(request)
        hooks = self._create_hooks()
        try:
            return self._run(request, context, hooks)
        except Exception as e:
            logger.exception("Unhandled error in the request pipeline")
            return self._finish(
                hooks, [GatewayError(kind=ErrorKind.INTERNAL, message=str(e), original_error=e)]
            )

    def _run(
        self, request: GraphQLRequest, context: RequestContext, hooks: Sequence[LifecycleHooks]
    ) -> GatewayResponse:
        for hook in hooks:
            hook.request_did_start(request, context)

        if context.error is not None:
            return self._finish(hooks, [context_error(context.error)], notify=False)

        try:
            schema = self._schema_handle.get()
        except Exception as e:
            logger.exception("Gateway schema is unavailable")
            return self._finish(
                hooks, [GatewayError(kind=ErrorKind.INTERNAL, message=str(e), original_error=e)]
            )

        try:
            document = parse(request.query)
        except RecursionError:
            error = GraphQLError(QUERY_TOO_DEEP_MESSAGE)
            for hook in hooks:
                hook.parsing_did_end(error)
            return self._finish(hooks, [caller_input_error(error)])
        except GraphQLError as e:
            for hook in hooks:
                hook.parsing_did_end(e)
            return self._finish(hooks, [caller_input_error(e)])
        for hook in hooks:
            hook.parsing_did_end(None)

        try:
            validation_errors = validate(schema, document)
        except RecursionError:
            validation_errors = [GraphQLError(QUERY_TOO_DEEP_MESSAGE)]
        for hook in hooks:
            hook.validation_did_end(validation_errors)
        if validation_errors:
            return self._finish(hooks, [caller_input_error(e) for e in validation_errors])

        operation, operation_errors, status_code = self._resolve_operation(document, request)
        for hook in hooks:
            hook.operation_resolution_did_end(operation_errors)
        if operation is None:
            return self._finish(
                hooks, [caller_input_error(e) for e in operation_errors], status_code=status_code
            )

        coerced = get_variable_values(
            schema, operation.variable_definitions or (), dict(request.variables or {})
        )
        if isinstance(coerced, list):
            return self._finish(hooks, [caller_input_error(e) for e in coerced])

        result = execute_sync(
            schema,
            document,
            context_value=context,
            variable_values=dict(request.variables or {}),
            operation_name=request.operation_name,
            field_resolver=resolve_by_response_key,
        )
        errors = [classified for e in result.errors or () for classified in classify_error(e)]
        return self._finish(hooks, errors, data=result.data)

    @staticmethod
    def _resolve_operation(
        document: DocumentNode, request: GraphQLRequest
    ) -> tuple[OperationDefinitionNode | None, list[GraphQLError], int]:
        operations = [d for d in document.definitions if isinstance(d, OperationDefinitionNode)]
        name = request.operation_name

        if name is None:
            if len(operations) != 1:
                message = (
                    "Must provide an operation."
                    if not operations
                    else "Must provide operation name if query contains multiple operations."
                )
                return None, [GraphQLError(message)], 200
            operation = operations[0]
        else:
            matches = [op for op in operations if op.name and op.name.value == name]
            if not matches:
                return None, [GraphQLError(f"Unknown operation named '{name}'.")], 200
            operation = matches[0]

        if request.http_method.upper() == "GET" and operation.operation is not OperationType.QUERY:
            error = GraphQLError(
                f"Can only perform a {operation.operation.value} operation from a POST request.",
                operation,
            )
            return None, [error], 405

        return operation, [], 200

    def _finish(
        self,
        hooks: Sequence[LifecycleHooks],
        errors: Sequence[GatewayError],
        *,
        data: Any = _NO_DATA,
        status_code: int = 200,
        notify: bool = True,
    ) -> GatewayResponse:
        if errors and notify:
            for hook in hooks:
                hook.did_encounter_errors(errors)

        body: dict[str, Any] = {}
        if data is not _NO_DATA:
            body["data"] = data
        if errors:
            body["errors"] = [format_error(error) for error in errors]

        response = GatewayResponse(status_code=status_code, body=body)
        for hook in hooks:
            hook.will_send_response(response)
        return response
