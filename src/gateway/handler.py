"""
gateway.handler - Lambda entry point for the authenticating GraphQL gateway.

Turns an API Gateway HTTP API (payload v2) event into a GraphQLRequest, runs
it through the gateway pipeline and renders the result as an HTTP response.

Transport-level problems (unsupported method, unreadable body, missing
query) are answered here with a 4xx. Everything at the GraphQL layer is
answered by the pipeline with a well-formed GraphQL body.
"""

import base64
import binascii
import json
from typing import Any

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext
from graphql_gateway import (
    GatewayConfig,
    GatewayConfigurationError,
    GraphQLGateway,
    GraphQLRequest,
    create_gateway,
)
from graphql_gateway.models import GENERIC_ERROR_MESSAGE

logger = Logger(service="graphql-gateway")
tracer = Tracer()

# Global gateway - schema discovery is cached across warm starts
_gateway: GraphQLGateway | None = None


class InvalidHttpRequest(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(message)


def get_gateway() -> GraphQLGateway:
    """Lazy initialization of the gateway from environment config."""
    global _gateway
    if _gateway is None:
        _gateway = create_gateway(GatewayConfig.from_env())
    return _gateway


def http_response(
    status_code: int, body: dict[str, Any], headers: dict[str, str] | None = None
) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json", **(headers or {})},
        "body": json.dumps(body),
    }


def _allow_header(status_code: int) -> dict[str, str] | None:
    return {"Allow": "GET, POST"} if status_code == 405 else None


def _decode_variables(raw: Any) -> Any:
    if raw is None or isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidHttpRequest(400, "`variables` is not valid JSON") from e
    return raw


def parse_event(event: dict[str, Any]) -> GraphQLRequest:
    """Extract the GraphQL operation from a GET querystring or POST JSON body."""
    method = str(
        event.get("requestContext", {}).get("http", {}).get("method")
        or event.get("httpMethod")
        or "POST"
    ).upper()
    headers = event.get("headers") or {}

    if method == "GET":
        params = event.get("queryStringParameters") or {}
        payload: dict[str, Any] = {
            "query": params.get("query"),
            "variables": params.get("variables"),
            "operationName": params.get("operationName"),
        }
    elif method == "POST":
        body = event.get("body") or ""
        try:
            if event.get("isBase64Encoded"):
                body = base64.b64decode(body).decode("utf-8")
            payload = json.loads(body)
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidHttpRequest(400, "POST body must be a JSON object") from e
        if not isinstance(payload, dict):
            raise InvalidHttpRequest(400, "POST body must be a JSON object")
    else:
        raise InvalidHttpRequest(405, "GraphQL only supports GET and POST requests")

    query = payload.get("query")
    if not isinstance(query, str) or not query.strip():
        raise InvalidHttpRequest(400, "GraphQL operations must contain a non-empty `query`")

    variables = _decode_variables(payload.get("variables"))
    if variables is not None and not isinstance(variables, dict):
        raise InvalidHttpRequest(400, "`variables` must be a JSON object")

    operation_name = payload.get("operationName") or None
    if operation_name is not None and not isinstance(operation_name, str):
        raise InvalidHttpRequest(400, "`operationName` must be a string")

    return GraphQLRequest(
        query=query,
        variables=variables,
        operation_name=operation_name,
        headers=headers,
        http_method=method,
    )


@logger.inject_lambda_context(
    correlation_id_path=correlation_paths.API_GATEWAY_HTTP, clear_state=True
)
@tracer.capture_lambda_handler(capture_response=False)
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """Gateway Lambda entry point."""
    try:
        request = parse_event(event)
    except InvalidHttpRequest as e:
        logger.warning(
            "Rejected HTTP request", extra={"status_code": e.status_code, "reason": e.message}
        )
        return http_response(
            e.status_code, {"errors": [{"message": e.message}]}, _allow_header(e.status_code)
        )

    try:
        gateway = get_gateway()
    except GatewayConfigurationError:
        logger.exception("Gateway is misconfigured")
        return http_response(500, {"errors": [{"message": GENERIC_ERROR_MESSAGE}]})

    try:
        response = gateway.execute(request)
    except Exception:
        logger.exception("Gateway pipeline failed")
        return http_response(500, {"errors": [{"message": GENERIC_ERROR_MESSAGE}]})
    return http_response(
        response.status_code, response.body, _allow_header(response.status_code)
    )
