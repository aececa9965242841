"""
graphql_gateway.identity - Resolves an API key to the caller's identity tag.

API users table:
    PK: apiKey (S)    attribute: identity (S)

Records are created and revoked by an administrative process; the gateway
only reads them.
"""

from __future__ import annotations

from typing import Any, Protocol

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from graphql_gateway.exceptions import CredentialLookupUnavailable

logger = Logger(service="graphql-gateway")

CREDENTIAL_ATTRIBUTE = "apiKey"
IDENTITY_ATTRIBUTE = "identity"


class IdentityResolver(Protocol):
    def resolve(self, credential: str) -> str | None: ...


class DynamoDBIdentityResolver:
    """
    Looks up credentials in the API users table.

    resolve() returns None for an unknown (or revoked) credential and raises
    CredentialLookupUnavailable when the table cannot be read. The two are
    never conflated. Credentials are matched exactly; trimming is the
    caller's job.
    """

    def __init__(
        self,
        table_name: str,
        *,
        dynamodb_resource: Any = None,
        region: str = "eu-west-2",
    ) -> None:
        self._table_name = table_name
        self._region = region
        self._dynamodb: Any = dynamodb_resource

    def _table(self) -> Any:
        # Resource is created lazily and reused across warm invocations
        if self._dynamodb is None:
            self._dynamodb = boto3.resource("dynamodb", region_name=self._region)
        return self._dynamodb.Table(self._table_name)

    def resolve(self, credential: str) -> str | None:
        try:
            response = self._table().get_item(Key={CREDENTIAL_ATTRIBUTE: credential})
        except (ClientError, BotoCoreError) as e:
            logger.exception("API users table lookup failed", extra={"table": self._table_name})
            raise CredentialLookupUnavailable() from e

        item = response.get("Item")
        if not item:
            return None
        identity = item.get(IDENTITY_ATTRIBUTE)
        return str(identity) if identity else None
