"""Credential providers implementing CredentialProvider."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from preservica_client.config import DEFAULT_SECRETS_MANAGER_ENDPOINT
from preservica_client.errors import ErrorCode, PreservicaClientError
from preservica_client.models.auth import Credentials, SecretStage

if TYPE_CHECKING:
    from botocore.client import BaseClient

log = structlog.get_logger()


def credentials_from_secret_string(secret_string: str) -> Credentials:
    """Parse a secret value into credentials.

    Two layouts are accepted: ``{"userName": ..., "password": ..., "apiUrl": ...}``
    and the single-pair form ``{"<username>": "<password>"}``.
    """
    try:
        data: dict[str, Any] = json.loads(secret_string)
    except json.JSONDecodeError as exc:
        raise PreservicaClientError(
            "Secret value is not valid JSON",
            code=ErrorCode.CREDENTIALS_UNAVAILABLE,
        ) from exc

    if not isinstance(data, dict) or not data:
        raise PreservicaClientError(
            "Secret value does not contain any credentials",
            code=ErrorCode.CREDENTIALS_UNAVAILABLE,
        )

    if "password" in data:
        username = data.get("userName", data.get("username"))
        if not username:
            raise PreservicaClientError(
                "Secret value has a password but no user name",
                code=ErrorCode.CREDENTIALS_UNAVAILABLE,
            )
        return Credentials(
            username=username,
            password=data["password"],
            api_url=data.get("apiUrl"),
        )

    username, password = next(iter(data.items()))
    return Credentials(username=username, password=str(password))


class SecretsManagerCredentialProvider:
    """Reads API credentials from AWS Secrets Manager.

    boto3 is synchronous, so each lookup runs in a worker thread.
    """

    def __init__(
        self,
        client: BaseClient | None = None,
        *,
        endpoint_url: str = DEFAULT_SECRETS_MANAGER_ENDPOINT,
        region_name: str = "eu-west-2",
    ) -> None:
        self._client = client or boto3.client(
            "secretsmanager",
            endpoint_url=endpoint_url,
            region_name=region_name,
        )

    async def get_secret(self, name: str, stage: SecretStage) -> Credentials:
        try:
            response = await asyncio.to_thread(
                self._client.get_secret_value,
                SecretId=name,
                VersionStage=stage.value,
            )
        except (ClientError, BotoCoreError) as exc:
            log.warning("secret_fetch_failed", secret_name=name, stage=stage, error=str(exc))
            raise PreservicaClientError(
                f"Unable to read secret {name} at stage {stage}: {exc}",
                code=ErrorCode.CREDENTIALS_UNAVAILABLE,
            ) from exc

        secret_string = response.get("SecretString")
        if secret_string is None:
            raise PreservicaClientError(
                f"Secret {name} at stage {stage} has no SecretString value",
                code=ErrorCode.CREDENTIALS_UNAVAILABLE,
            )
        log.debug("secret_fetched", secret_name=name, stage=stage)
        return credentials_from_secret_string(secret_string)


class StaticCredentialProvider:
    """Serves fixed credentials; a pending value may be supplied for rotation tests."""

    def __init__(self, current: Credentials, pending: Credentials | None = None) -> None:
        self._secrets = {SecretStage.CURRENT: current}
        if pending is not None:
            self._secrets[SecretStage.PENDING] = pending

    async def get_secret(self, name: str, stage: SecretStage) -> Credentials:
        try:
            return self._secrets[stage]
        except KeyError:
            raise PreservicaClientError(
                f"No credentials configured for secret {name} at stage {stage}",
                code=ErrorCode.CREDENTIALS_UNAVAILABLE,
            ) from None
