"""
Shared fixtures for graphql_gateway tests.

FakeBackend stands in for the backend GraphQL service: it executes delegated
documents against a local graphql-core schema and records what it received.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest
from graphql import DocumentNode, GraphQLError, build_schema, graphql_sync, print_ast

from graphql_gateway.config import BUNDLED_SCHEMA_PATH
from graphql_gateway.pipeline import GraphQLGateway, SchemaHandle
from graphql_gateway.remote import RemoteSchema
from graphql_gateway.resolvers import build_gateway_schema

BACKEND_SDL = """
type Greeting {
  id: ID!
  message: String!
  createdAt: String
  owner: String
}

type Query {
  sayHello(name: String!, identity: String!): String!
  usageReport(identity: String!): Int
}

type Mutation {
  saveGreeting(message: String!, identity: String!): Greeting
}
"""


class FakeBackend:
    def __init__(self) -> None:
        self.schema = build_schema(BACKEND_SDL)
        self.documents: list[str] = []
        self.received_args: list[dict[str, Any]] = []
        self.introspection_calls = 0
        self.last_result: dict[str, Any] | None = None
        self.raise_on_execute: Exception | None = None
        self.root = {"sayHello": self._say_hello, "saveGreeting": self._save_greeting}

    def _say_hello(self, _info: Any, name: str, identity: str) -> str:
        self.received_args.append({"name": name, "identity": identity})
        if name == "reserved":
            raise GraphQLError("Name is reserved", extensions={"code": "BAD_NAME"})
        return f"Hello, {name}!"

    def _save_greeting(self, _info: Any, message: str, identity: str) -> dict[str, Any]:
        self.received_args.append({"message": message, "identity": identity})
        return {
            "id": "g-001",
            "message": message,
            "createdAt": "2026-01-01T00:00:00Z",
            "owner": identity,
        }

    def __call__(
        self, document: DocumentNode, variables: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        source = print_ast(document)
        if "__schema" in source:
            self.introspection_calls += 1
        else:
            if self.raise_on_execute is not None:
                raise self.raise_on_execute
            self.documents.append(source)

        result = graphql_sync(
            self.schema, source, root_value=self.root, variable_values=dict(variables or {})
        )
        self.last_result = result.formatted
        return self.last_result


class StubIdentityResolver:
    def __init__(self, identities: Mapping[str, str], error: Exception | None = None) -> None:
        self.identities = dict(identities)
        self.error = error
        self.lookups: list[str] = []

    def resolve(self, credential: str) -> str | None:
        self.lookups.append(credential)
        if self.error is not None:
            raise self.error
        return self.identities.get(credential)


class RecordingFaultTracker:
    def __init__(self, flush_error: Exception | None = None) -> None:
        self.captured: list[tuple[BaseException, dict[str, Any]]] = []
        self.flush_count = 0
        self.flush_error = flush_error

    def capture_exception(self, error: BaseException, tags: Mapping[str, Any]) -> None:
        self.captured.append((error, dict(tags)))

    def flush(self) -> None:
        self.flush_count += 1
        if self.flush_error is not None:
            raise self.flush_error


API_KEY = "key-123"
IDENTITY = "dev-42"


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def remote(backend: FakeBackend) -> RemoteSchema:
    return RemoteSchema.discover(backend)


@pytest.fixture
def gateway_sdl() -> str:
    return BUNDLED_SCHEMA_PATH.read_text(encoding="utf-8")


@pytest.fixture
def identity_resolver() -> StubIdentityResolver:
    return StubIdentityResolver({API_KEY: IDENTITY})


@pytest.fixture
def fault_tracker() -> RecordingFaultTracker:
    return RecordingFaultTracker()


@pytest.fixture
def make_gateway(backend, gateway_sdl, fault_tracker):
    """Factory for a gateway wired to the fake backend."""

    def make(
        identity_resolver=None, tracker=None, schema_factory=None, hook_factories=()
    ) -> GraphQLGateway:
        def build():
            return build_gateway_schema(gateway_sdl, RemoteSchema.discover(backend))

        return GraphQLGateway(
            SchemaHandle(schema_factory or build),
            identity_resolver or StubIdentityResolver({API_KEY: IDENTITY}),
            tracker or fault_tracker,
            hook_factories=hook_factories,
        )

    return make


@pytest.fixture
def gateway(make_gateway) -> GraphQLGateway:
    return make_gateway()


@pytest.fixture
def failing_flush_tracker() -> RecordingFaultTracker:
    return RecordingFaultTracker(flush_error=ConnectionError("sink down"))
