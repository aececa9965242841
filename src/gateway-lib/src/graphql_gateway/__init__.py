"""
graphql_gateway - Authenticating GraphQL gateway in front of a backend GraphQL API.

Callers present an API key; the gateway resolves it to an identity tag, adds
that tag to every operation it delegates to the backend, and masks local
failures while passing backend errors through unchanged.
"""

from graphql_gateway.bootstrap import create_gateway
from graphql_gateway.config import GatewayConfig
from graphql_gateway.exceptions import (
    AuthenticationFault,
    BackendError,
    CallerInputFault,
    CredentialLookupUnavailable,
    GatewayConfigurationError,
    RemoteTransportError,
    SchemaDiscoveryError,
)
from graphql_gateway.models import GatewayResponse, GraphQLRequest, RequestContext
from graphql_gateway.pipeline import GraphQLGateway, SchemaHandle

__all__ = [
    "AuthenticationFault",
    "BackendError",
    "CallerInputFault",
    "CredentialLookupUnavailable",
    "GatewayConfig",
    "GatewayConfigurationError",
    "GatewayResponse",
    "GraphQLGateway",
    "GraphQLRequest",
    "RemoteTransportError",
    "RequestContext",
    "SchemaDiscoveryError",
    "SchemaHandle",
    "create_gateway",
]
