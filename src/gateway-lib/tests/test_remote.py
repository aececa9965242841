"""
tests/test_remote.py - RemoteExecutor, discover_schema and tag_backend_errors.
"""

from __future__ import annotations

import copy
from unittest.mock import MagicMock

import pytest
import requests
from graphql import build_schema, introspection_from_schema, parse

from graphql_gateway.exceptions import RemoteTransportError, SchemaDiscoveryError
from graphql_gateway.models import BACKEND_ORIGIN, ORIGIN_EXTENSION
from graphql_gateway.remote import RemoteExecutor, RemoteSchema, discover_schema, tag_backend_errors

URL = "https://backend.example.com/graphql"
SECRET = "backend-secret"  # pragma: allowlist secret


def _response(status_code: int, body=None, *, json_error: bool = False) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if json_error:
        response.json.side_effect = requests.exceptions.JSONDecodeError("Expecting value", "", 0)
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session() -> MagicMock:
    return MagicMock()


@pytest.fixture
def executor(session) -> RemoteExecutor:
    return RemoteExecutor(URL, SECRET, timeout=30, session=session)


# ---------------------------------------------------------------------------
# RemoteExecutor
# ---------------------------------------------------------------------------


def test_executor_posts_document_with_shared_secret(executor, session):
    session.post.return_value = _response(200, {"data": {"sayHello": "hi"}})

    result = executor(parse('{ sayHello(name: "x", identity: "dev-42") }'), {"a": 1})

    assert result == {"data": {"sayHello": "hi"}}
    session.post.assert_called_once()
    args, kwargs = session.post.call_args
    assert args == (URL,)
    assert kwargs["headers"] == {"x-api-key": SECRET}
    assert kwargs["timeout"] == 30
    assert 'sayHello(name: "x", identity: "dev-42")' in kwargs["json"]["query"]
    assert kwargs["json"]["variables"] == {"a": 1}


def test_executor_omits_empty_variables(executor, session):
    session.post.return_value = _response(200, {"data": {}})
    executor(parse("{ a }"))
    assert "variables" not in session.post.call_args.kwargs["json"]


def test_executor_returns_graphql_errors_even_on_http_error(executor, session):
    body = {"data": None, "errors": [{"message": "Unauthorized field"}]}
    session.post.return_value = _response(400, body)

    assert executor(parse("{ a }")) == body


def test_executor_http_error_without_graphql_body(executor, session):
    session.post.return_value = _response(503, {"message": "Service Unavailable"})

    with pytest.raises(RemoteTransportError) as exc:
        executor(parse("{ a }"))
    assert exc.value.status_code == 503


def test_executor_non_json_body(executor, session):
    session.post.return_value = _response(502, json_error=True)

    with pytest.raises(RemoteTransportError, match="non-JSON") as exc:
        executor(parse("{ a }"))
    assert exc.value.status_code == 502


def test_executor_non_object_body(executor, session):
    session.post.return_value = _response(200, ["not", "an", "object"])

    with pytest.raises(RemoteTransportError, match="non-object"):
        executor(parse("{ a }"))


@pytest.mark.parametrize(
    "failure", [requests.ConnectionError("refused"), requests.Timeout("read timed out")]
)
def test_executor_transport_failure(executor, session, failure):
    session.post.side_effect = failure

    with pytest.raises(RemoteTransportError) as exc:
        executor(parse("{ a }"))
    assert exc.value.__cause__ is failure


def test_executor_does_not_retry(executor, session):
    session.post.side_effect = requests.ConnectionError("refused")
    with pytest.raises(RemoteTransportError):
        executor(parse("{ a }"))
    assert session.post.call_count == 1


# ---------------------------------------------------------------------------
# discover_schema
# ---------------------------------------------------------------------------

BACKEND_SDL = """
type Query { sayHello(name: String!, identity: String!): String! }
"""


def test_discover_schema_builds_proxy_schema():
    introspection = introspection_from_schema(build_schema(BACKEND_SDL))
    calls = []

    def fake_executor(document, variables=None):
        calls.append(document)
        return {"data": introspection}

    remote = RemoteSchema.discover(fake_executor)

    assert len(calls) == 1
    field = remote.schema.query_type.fields["sayHello"]
    assert set(field.args) == {"name", "identity"}
    assert remote.executor is fake_executor


def test_discover_schema_rejects_error_payload():
    def fake_executor(document, variables=None):
        return {"errors": [{"message": "introspection disabled"}]}

    with pytest.raises(SchemaDiscoveryError, match="introspection disabled"):
        discover_schema(fake_executor)


def test_discover_schema_requires_schema_data():
    with pytest.raises(SchemaDiscoveryError, match="__schema"):
        discover_schema(lambda document, variables=None: {"data": {"other": 1}})


def test_discover_schema_rejects_invalid_introspection():
    with pytest.raises(SchemaDiscoveryError):
        discover_schema(lambda document, variables=None: {"data": {"__schema": {}}})


# ---------------------------------------------------------------------------
# tag_backend_errors
# ---------------------------------------------------------------------------


def test_tag_backend_errors_marks_every_error_and_keeps_the_rest():
    result = {
        "data": {"sayHello": None},
        "errors": [
            {
                "message": "Name is reserved",
                "path": ["sayHello"],
                "locations": [{"line": 2, "column": 3}],
                "extensions": {"code": "BAD_NAME"},
            },
            {"message": "Second"},
        ],
        "extensions": {"cost": 3},
    }
    original = copy.deepcopy(result)

    tagged = tag_backend_errors(result)

    assert result == original
    assert tagged["data"] == result["data"]
    assert tagged["extensions"] == {"cost": 3}
    first, second = tagged["errors"]
    assert first["message"] == "Name is reserved"
    assert first["path"] == ["sayHello"]
    assert first["locations"] == [{"line": 2, "column": 3}]
    assert first["extensions"] == {"code": "BAD_NAME", ORIGIN_EXTENSION: BACKEND_ORIGIN}
    assert second["extensions"] == {ORIGIN_EXTENSION: BACKEND_ORIGIN}


def test_tag_backend_errors_without_errors():
    result = {"data": {"sayHello": "hi"}}
    assert tag_backend_errors(result) == result
