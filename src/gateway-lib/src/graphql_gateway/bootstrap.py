"""
graphql_gateway.bootstrap - Wires a GraphQLGateway from GatewayConfig.

Building the gateway is cheap and does no I/O. Backend discovery and schema
binding happen on the first request that needs the schema, once per process,
through the SchemaHandle.
"""

from __future__ import annotations

from typing import Any

import requests
from aws_lambda_powertools import Logger
from graphql import GraphQLSchema

from graphql_gateway.config import GatewayConfig
from graphql_gateway.fault_tracking import FaultTracker, LoggingFaultTracker
from graphql_gateway.identity import DynamoDBIdentityResolver
from graphql_gateway.pipeline import GraphQLGateway, SchemaHandle
from graphql_gateway.remote import Executor, RemoteExecutor, RemoteSchema
from graphql_gateway.resolvers import build_gateway_schema

logger = Logger(service="graphql-gateway")


def gateway_schema_factory(config: GatewayConfig, executor: Executor):
    """Return a zero-argument callable that discovers the backend and binds the gateway schema."""

    def build() -> GraphQLSchema:
        sdl = config.read_schema_sdl()
        remote = RemoteSchema.discover(executor)
        return build_gateway_schema(sdl, remote, identity_argument=config.identity_argument)

    return build


def create_gateway(
    config: GatewayConfig,
    *,
    fault_tracker: FaultTracker | None = None,
    dynamodb_resource: Any = None,
    session: requests.Session | None = None,
) -> GraphQLGateway:
    executor = RemoteExecutor(
        config.backend_url,
        config.backend_api_key,
        timeout=config.backend_timeout_seconds,
        session=session,
    )
    identity_resolver = DynamoDBIdentityResolver(
        config.api_users_table,
        dynamodb_resource=dynamodb_resource,
        region=config.region,
    )
    logger.info(
        "Gateway created",
        extra={"backend_url": config.backend_url, "api_users_table": config.api_users_table},
    )
    return GraphQLGateway(
        SchemaHandle(gateway_schema_factory(config, executor)),
        identity_resolver,
        fault_tracker or LoggingFaultTracker(),
        credential_header=config.credential_header,
    )
