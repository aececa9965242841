"""
graphql_gateway.resolvers - Gateway schema binding and delegation to the backend.

The gateway schema (schema.graphql) is the only surface callers see. Every
Query/Mutation field declared there is resolved by delegating the same field
to the backend proxy schema, with the caller's identity added as an extra
argument. Fields the gateway schema does not declare are unreachable.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from aws_lambda_powertools import Logger
from graphql import (
    ArgumentNode,
    DocumentNode,
    FieldNode,
    GraphQLField,
    GraphQLObjectType,
    GraphQLResolveInfo,
    GraphQLSchema,
    InlineFragmentNode,
    NameNode,
    NullValueNode,
    OperationDefinitionNode,
    OperationType,
    SelectionSetNode,
    Visitor,
    ast_from_value,
    build_schema,
    default_field_resolver,
    type_from_ast,
    visit,
)

from graphql_gateway.exceptions import BackendError, GatewayConfigurationError
from graphql_gateway.models import RequestContext
from graphql_gateway.remote import RemoteSchema, tag_backend_errors

logger = Logger(service="graphql-gateway")

ResultTransform = Callable[[Mapping[str, Any]], dict[str, Any]]

DEFAULT_TRANSFORMS: tuple[ResultTransform, ...] = (tag_backend_errors,)


# ---------------------------------------------------------------------------
# Delegated document construction
# ---------------------------------------------------------------------------


class _InlineCallerReferences(Visitor):
    """Rewrites a caller selection set so it stands alone in a new document.

    Fragment spreads become inline fragments and variables become literals of
    their already-coerced values.
    """

    def __init__(self, info: GraphQLResolveInfo) -> None:
        super().__init__()
        self._info = info
        self._variable_types = {
            definition.variable.name.value: definition.type
            for definition in info.operation.variable_definitions or ()
        }

    def enter_fragment_spread(self, node, *_args):
        fragment = self._info.fragments[node.name.value]
        return InlineFragmentNode(
            type_condition=fragment.type_condition,
            directives=node.directives,
            selection_set=fragment.selection_set,
        )

    def enter_variable(self, node, *_args):
        name = node.name.value
        type_ = type_from_ast(self._info.schema, self._variable_types[name])
        value = self._info.variable_values.get(name)
        return ast_from_value(value, type_) or NullValueNode()


def build_delegated_document(
    operation: OperationType,
    remote_field: GraphQLField,
    args: Mapping[str, Any],
    info: GraphQLResolveInfo,
) -> DocumentNode:
    """Build a standalone single-field operation for the backend."""
    arguments = []
    for name, value in args.items():
        value_node = ast_from_value(value, remote_field.args[name].type)
        if value_node is not None:
            arguments.append(ArgumentNode(name=NameNode(value=name), value=value_node))

    # Repeated selections of the same root field arrive merged in field_nodes
    field_node = info.field_nodes[0]
    selections = tuple(
        selection
        for node in info.field_nodes
        if node.selection_set is not None
        for selection in node.selection_set.selections
    )
    selection_set = None
    if selections:
        selection_set = visit(
            SelectionSetNode(selections=selections), _InlineCallerReferences(info)
        )

    delegated_field = FieldNode(
        alias=field_node.alias,
        name=field_node.name,
        arguments=tuple(arguments),
        directives=(),
        selection_set=selection_set,
    )
    return DocumentNode(
        definitions=(
            OperationDefinitionNode(
                operation=operation,
                variable_definitions=(),
                directives=(),
                selection_set=SelectionSetNode(selections=(delegated_field,)),
            ),
        )
    )


def delegate_to_schema(
    remote: RemoteSchema,
    operation: OperationType,
    field_name: str,
    args: Mapping[str, Any],
    info: GraphQLResolveInfo,
    transforms: Iterable[ResultTransform] = DEFAULT_TRANSFORMS,
) -> Any:
    """Execute one root field on the backend and return its value.

    Backend errors (after the transforms) are raised together as BackendError.
    """
    root_type = remote.schema.get_root_type(operation)
    remote_field = root_type.fields[field_name]
    document = build_delegated_document(operation, remote_field, args, info)

    result: Mapping[str, Any] = remote.executor(document)
    for transform in transforms:
        result = transform(result)

    errors = result.get("errors")
    if errors:
        logger.info(
            "Backend returned errors",
            extra={"field": field_name, "error_count": len(errors)},
        )
        raise BackendError(errors)

    data = result.get("data") or {}
    return data.get(info.path.key)


def make_delegating_resolver(
    remote: RemoteSchema,
    operation: OperationType,
    field_name: str,
    identity_argument: str,
) -> Callable[..., Any]:
    def resolve(_parent: Any, info: GraphQLResolveInfo, **args: Any) -> Any:
        context: RequestContext = info.context
        delegated_args = {**args, identity_argument: context.require_identity()}
        return delegate_to_schema(remote, operation, field_name, delegated_args, info)

    resolve.__name__ = f"resolve_{field_name}"
    return resolve


def resolve_by_response_key(source: Any, info: GraphQLResolveInfo, **args: Any) -> Any:
    """Field resolver for delegated results, which are keyed by alias."""
    if isinstance(source, Mapping):
        return source.get(info.path.key)
    return default_field_resolver(source, info, **args)


# ---------------------------------------------------------------------------
# Gateway schema
# ---------------------------------------------------------------------------


def _root_types(schema: GraphQLSchema) -> Iterable[tuple[OperationType, GraphQLObjectType]]:
    if schema.query_type is not None:
        yield OperationType.QUERY, schema.query_type
    if schema.mutation_type is not None:
        yield OperationType.MUTATION, schema.mutation_type


def build_gateway_schema(
    sdl: str, remote: RemoteSchema, *, identity_argument: str = "identity"
) -> GraphQLSchema:
    """Build the gateway schema and bind a delegating resolver to every root field.

    Raises GatewayConfigurationError if a declared field has no backend
    counterpart or the backend field does not take the identity argument.
    """
    schema = build_schema(sdl)
    if schema.subscription_type is not None:
        raise GatewayConfigurationError("Subscriptions are not supported by the gateway")

    bound = []
    for operation, root_type in _root_types(schema):
        remote_root = remote.schema.get_root_type(operation)
        for field_name, field in root_type.fields.items():
            remote_field = remote_root.fields.get(field_name) if remote_root else None
            if remote_field is None:
                raise GatewayConfigurationError(
                    f"Backend schema has no {operation.value} field {field_name!r}"
                )
            if identity_argument not in remote_field.args:
                raise GatewayConfigurationError(
                    f"Backend field {field_name!r} does not accept {identity_argument!r}"
                )
            if identity_argument in field.args:
                raise GatewayConfigurationError(
                    f"Gateway field {field_name!r} must not expose {identity_argument!r}"
                )
            unknown = set(field.args) - set(remote_field.args)
            if unknown:
                raise GatewayConfigurationError(
                    f"Backend field {field_name!r} has no arguments {sorted(unknown)}"
                )
            field.resolve = make_delegating_resolver(
                remote, operation, field_name, identity_argument
            )
            bound.append(f"{operation.value}.{field_name}")

    logger.info("Gateway schema bound", extra={"fields": bound})
    return schema
