"""
graphql_gateway.hooks - Request lifecycle hooks driven by the pipeline.

The pipeline calls, in order and only for the stages it reaches:

    request_did_start(request, context)
    parsing_did_end(error)
    validation_did_end(errors)
    operation_resolution_did_end(errors)
    did_encounter_errors(errors)       only when the request produced errors
    will_send_response(response)

A fresh set of hooks is created for every request, so hooks may keep
per-request state on self.
"""

from __future__ import annotations

from collections.abc import Sequence

from aws_lambda_powertools import Logger
from graphql import GraphQLError

from graphql_gateway.models import GatewayError, GatewayResponse, GraphQLRequest, RequestContext

logger = Logger(service="graphql-gateway")


class LifecycleHooks:
    """No-op base class; subclasses override the stages they observe."""

    def request_did_start(self, request: GraphQLRequest, context: RequestContext) -> None:
        pass

    def parsing_did_end(self, error: GraphQLError | None) -> None:
        pass

    def validation_did_end(self, errors: Sequence[GraphQLError]) -> None:
        pass

    def operation_resolution_did_end(self, errors: Sequence[GraphQLError]) -> None:
        pass

    def did_encounter_errors(self, errors: Sequence[GatewayError]) -> None:
        pass

    def will_send_response(self, response: GatewayResponse) -> None:
        pass


class RequestLoggingHooks(LifecycleHooks):
    """Logs every request and the response body sent back for it."""

    def request_did_start(self, request: GraphQLRequest, context: RequestContext) -> None:
        logger.info(
            "GraphQL request",
            extra={
                "query": request.query,
                "variables": dict(request.variables or {}),
                "operation_name": request.operation_name,
                "identity": context.identity,
            },
        )

    def will_send_response(self, response: GatewayResponse) -> None:
        logger.info(
            "GraphQL response",
            extra={"status_code": response.status_code, "response": response.body},
        )
