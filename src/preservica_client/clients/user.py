"""User API: password changes and credential checks."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import structlog

from preservica_client.dispatcher import JSON_CONTENT_TYPE
from preservica_client.models.auth import SecretStage

if TYPE_CHECKING:
    from preservica_client.client import Client
    from preservica_client.models.auth import Credentials

log = structlog.get_logger()


class UserClient:
    def __init__(self, client: Client) -> None:
        self._client = client
        self.password_url = f"{client.api_base_url}/api/user/password"

    async def change_password(self, old_password: str, new_password: str) -> None:
        body = json.dumps({"password": old_password, "newPassword": new_password})
        await self._client.send_text(
            "PUT", self.password_url, body=body, content_type=JSON_CONTENT_TYPE
        )
        log.info("password_changed")

    async def test_credentials(self, credentials: Credentials) -> None:
        """Log in with ``credentials``; raises if the login is rejected."""
        await self._client.auth.exchange_for_token(credentials)

    async def test_pending_credentials(self) -> None:
        """Check that the secret's pending stage holds a working password.

        Used during rotation, after ``change_password`` and before the pending
        value is promoted to current.
        """
        credentials = await self._client.auth.get_credentials(SecretStage.PENDING)
        await self.test_credentials(credentials)
