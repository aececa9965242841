"""
tests/test_resolvers.py - Gateway schema binding and delegated documents.
"""

from __future__ import annotations

import pytest
from graphql import GraphQLSchema, build_schema, execute_sync, parse

from graphql_gateway.exceptions import BackendError, GatewayConfigurationError
from graphql_gateway.models import BACKEND_ORIGIN, ORIGIN_EXTENSION, RequestContext
from graphql_gateway.remote import RemoteSchema
from graphql_gateway.resolvers import build_gateway_schema, resolve_by_response_key

IDENTITY = "dev-42"


def _execute(schema: GraphQLSchema, query: str, variables=None, context=None):
    return execute_sync(
        schema,
        parse(query),
        context_value=context or RequestContext.authenticated(IDENTITY),
        variable_values=variables,
        field_resolver=resolve_by_response_key,
    )


def test_every_root_field_gets_a_delegating_resolver(gateway_sdl, remote):
    schema = build_gateway_schema(gateway_sdl, remote)

    assert schema.query_type.fields["sayHello"].resolve is not None
    assert schema.mutation_type.fields["saveGreeting"].resolve is not None
    assert "usageReport" not in schema.query_type.fields


def test_gateway_field_missing_on_backend(remote):
    sdl = "type Query { sayHello(name: String!): String! deleteEverything: Boolean }"
    with pytest.raises(GatewayConfigurationError, match="deleteEverything"):
        build_gateway_schema(sdl, remote)


def test_backend_field_must_accept_identity(remote):
    sdl = "type Query { sayHello(name: String!): String! }"
    with pytest.raises(GatewayConfigurationError, match="tenant"):
        build_gateway_schema(sdl, remote, identity_argument="tenant")


def test_gateway_must_not_expose_identity_argument(remote):
    sdl = "type Query { sayHello(name: String!, identity: String!): String! }"
    with pytest.raises(GatewayConfigurationError, match="must not expose"):
        build_gateway_schema(sdl, remote)


def test_gateway_arguments_must_exist_on_backend(remote):
    sdl = "type Query { sayHello(name: String!, shout: Boolean): String! }"
    with pytest.raises(GatewayConfigurationError, match="shout"):
        build_gateway_schema(sdl, remote)


def test_subscriptions_are_rejected(remote):
    sdl = """
        type Query { sayHello(name: String!): String! }
        type Subscription { greetings: String }
    """
    with pytest.raises(GatewayConfigurationError, match="Subscriptions"):
        build_gateway_schema(sdl, remote)


def test_delegated_document_carries_identity_literal(gateway_sdl, remote, backend):
    schema = build_gateway_schema(gateway_sdl, remote)

    result = _execute(schema, 'query Greet { hi: sayHello(name: "x") }')

    assert result.errors is None
    assert result.data == {"hi": "Hello, x!"}
    assert backend.documents == ['{\n  hi: sayHello(name: "x", identity: "dev-42")\n}']


def test_variables_in_nested_directives_are_inlined(gateway_sdl, remote, backend):
    schema = build_gateway_schema(gateway_sdl, remote)
    query = """
        mutation Save($text: String!, $withDate: Boolean!) {
          saveGreeting(message: $text) { id createdAt @include(if: $withDate) }
        }
    """

    result = _execute(schema, query, {"text": "hi", "withDate": False})

    assert result.errors is None
    assert result.data == {"saveGreeting": {"id": "g-001"}}
    assert "@include(if: false)" in backend.documents[0]


def test_backend_errors_are_raised_tagged(gateway_sdl, remote):
    schema = build_gateway_schema(gateway_sdl, remote)

    result = _execute(schema, '{ sayHello(name: "reserved") }')

    [error] = result.errors
    assert isinstance(error.original_error, BackendError)
    [backend_error] = error.original_error.errors
    assert backend_error["message"] == "Name is reserved"
    assert backend_error["extensions"] == {"code": "BAD_NAME", ORIGIN_EXTENSION: BACKEND_ORIGIN}


def test_resolver_refuses_failed_context(gateway_sdl, remote, backend):
    schema = build_gateway_schema(gateway_sdl, remote)
    context = RequestContext.failed(RuntimeError("no identity"))

    result = _execute(schema, '{ sayHello(name: "x") }', context=context)

    assert result.errors
    assert backend.documents == []


def test_resolve_by_response_key_reads_aliases():
    schema = build_schema("type Query { item: Item } type Item { name: String }")
    schema.query_type.fields["item"].resolve = lambda *_: {"label": "aliased", "name": "plain"}

    result = execute_sync(
        schema, parse("{ item { label: name } }"), field_resolver=resolve_by_response_key
    )

    assert result.data == {"item": {"label": "aliased"}}


def test_remote_schema_reuse_across_builds(gateway_sdl, backend):
    remote = RemoteSchema.discover(backend)
    build_gateway_schema(gateway_sdl, remote)
    build_gateway_schema(gateway_sdl, remote)
    assert backend.introspection_calls == 1
