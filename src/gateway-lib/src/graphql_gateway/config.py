"""
graphql_gateway.config - Gateway settings read from the Lambda environment.

Environment variables:
    BACKEND_GRAPHQL_URL      backend GraphQL endpoint (required)
    BACKEND_API_KEY          shared secret sent as x-api-key
    BACKEND_API_KEY_PARAM    SSM SecureString holding the shared secret
                             (used when BACKEND_API_KEY is not set)
    API_USERS_TABLE_NAME     DynamoDB table mapping apiKey -> identity (required)
    AWS_REGION               default eu-west-2
    CREDENTIAL_HEADER        default "authorization"
    IDENTITY_ARGUMENT        default "identity"
    BACKEND_TIMEOUT_SECONDS  default 900 (the Lambda maximum)
    GATEWAY_SCHEMA_PATH      override for the bundled schema.graphql
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from graphql_gateway.exceptions import GatewayConfigurationError

logger = Logger(service="graphql-gateway")

DEFAULT_REGION = "eu-west-2"
DEFAULT_CREDENTIAL_HEADER = "authorization"
DEFAULT_IDENTITY_ARGUMENT = "identity"
DEFAULT_BACKEND_TIMEOUT_SECONDS = 900.0
BUNDLED_SCHEMA_PATH = Path(__file__).with_name("schema.graphql")


@dataclass(frozen=True)
class GatewayConfig:
    backend_url: str
    backend_api_key: str
    api_users_table: str
    region: str = DEFAULT_REGION
    credential_header: str = DEFAULT_CREDENTIAL_HEADER
    identity_argument: str = DEFAULT_IDENTITY_ARGUMENT
    backend_timeout_seconds: float = DEFAULT_BACKEND_TIMEOUT_SECONDS
    schema_path: Path = BUNDLED_SCHEMA_PATH

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, *, ssm_client: Any = None
    ) -> GatewayConfig:
        """Build the config from environment variables.

        Raises GatewayConfigurationError when a required setting is missing
        or the backend secret cannot be read from SSM.
        """
        env = os.environ if environ is None else environ
        region = env.get("AWS_REGION", DEFAULT_REGION)

        backend_url = env.get("BACKEND_GRAPHQL_URL")
        if not backend_url:
            raise GatewayConfigurationError("BACKEND_GRAPHQL_URL is not set")

        api_users_table = env.get("API_USERS_TABLE_NAME")
        if not api_users_table:
            raise GatewayConfigurationError("API_USERS_TABLE_NAME is not set")

        backend_api_key = env.get("BACKEND_API_KEY")
        if not backend_api_key:
            param_name = env.get("BACKEND_API_KEY_PARAM")
            if not param_name:
                raise GatewayConfigurationError(
                    "One of BACKEND_API_KEY or BACKEND_API_KEY_PARAM must be set"
                )
            backend_api_key = fetch_secret_parameter(
                param_name, ssm_client or boto3.client("ssm", region_name=region)
            )

        try:
            timeout = float(env.get("BACKEND_TIMEOUT_SECONDS", DEFAULT_BACKEND_TIMEOUT_SECONDS))
        except ValueError as e:
            raise GatewayConfigurationError("BACKEND_TIMEOUT_SECONDS must be a number") from e

        schema_path = env.get("GATEWAY_SCHEMA_PATH")

        return cls(
            backend_url=backend_url,
            backend_api_key=backend_api_key,
            api_users_table=api_users_table,
            region=region,
            credential_header=env.get("CREDENTIAL_HEADER", DEFAULT_CREDENTIAL_HEADER),
            identity_argument=env.get("IDENTITY_ARGUMENT", DEFAULT_IDENTITY_ARGUMENT),
            backend_timeout_seconds=timeout,
            schema_path=Path(schema_path) if schema_path else BUNDLED_SCHEMA_PATH,
        )

    def read_schema_sdl(self) -> str:
        try:
            return self.schema_path.read_text(encoding="utf-8")
        except OSError as e:
            raise GatewayConfigurationError(
                f"Cannot read gateway schema at {self.schema_path}"
            ) from e


def fetch_secret_parameter(name: str, ssm_client: Any) -> str:
    """Read a SecureString parameter, decrypted."""
    try:
        response = ssm_client.get_parameter(Name=name, WithDecryption=True)
    except (ClientError, BotoCoreError) as e:
        logger.exception("Failed to read backend secret from SSM", extra={"parameter": name})
        raise GatewayConfigurationError(f"Cannot read SSM parameter {name!r}") from e

    value = response.get("Parameter", {}).get("Value")
    if not value:
        raise GatewayConfigurationError(f"SSM parameter {name!r} is empty")
    return str(value)
