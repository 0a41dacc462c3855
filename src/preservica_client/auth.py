"""Access token acquisition and caching.

The token lifecycle is: credentials (from the credential provider) are
exchanged for a token at ``/api/accesstoken/login``; both the credentials and
the token are cached for ``token_ttl``. Any authorization failure seen by a
caller must go through ``invalidate_all`` so the next ``get_token`` performs a
full refresh.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import httpx
import structlog
from pydantic import ValidationError

from preservica_client.errors import ErrorCode, PreservicaClientError
from preservica_client.models.auth import Credentials, SecretStage, TokenResponse

if TYPE_CHECKING:
    from preservica_client.cache import TokenCache
    from preservica_client.protocols import CredentialProvider

log = structlog.get_logger()

CREDENTIALS_CACHE_KEY = "credentials"
TOKEN_CACHE_KEY = "token"
DEFAULT_TOKEN_TTL = timedelta(minutes=15)


class AuthManager:
    """Owns the "current token" used by every request."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        credential_provider: CredentialProvider,
        *,
        api_base_url: str,
        secret_name: str,
        credentials_cache: TokenCache,
        token_cache: TokenCache,
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
    ) -> None:
        self._client = http_client
        self._provider = credential_provider
        self._secret_name = secret_name
        self._credentials_cache = credentials_cache
        self._token_cache = token_cache
        self.api_base_url = api_base_url.rstrip("/")
        self.token_ttl = token_ttl

    @property
    def login_url(self) -> str:
        return f"{self.api_base_url}/api/accesstoken/login"

    async def get_token(self) -> str:
        """Return the cached token, logging in again if it is absent or expired."""
        return await self._token_cache.get_or_compute(
            TOKEN_CACHE_KEY, self.token_ttl, self._refresh_token
        )

    async def _refresh_token(self) -> str:
        credentials = await self.get_credentials(SecretStage.CURRENT)
        token = await self.exchange_for_token(credentials)
        log.info("token_refreshed", url=self.login_url)
        return token

    async def get_credentials(self, stage: SecretStage = SecretStage.CURRENT) -> Credentials:
        """Return credentials for ``stage``.

        Only the current stage is cached. The pending stage is read fresh each
        time since it is used once, to verify a password change.
        """
        if stage is SecretStage.PENDING:
            return await self._provider.get_secret(self._secret_name, stage)

        raw = await self._credentials_cache.get_or_compute(
            CREDENTIALS_CACHE_KEY, self.token_ttl, self._fetch_current_credentials
        )
        return Credentials.model_validate_json(raw)

    async def _fetch_current_credentials(self) -> str:
        credentials = await self._provider.get_secret(self._secret_name, SecretStage.CURRENT)
        return credentials.model_dump_json()

    async def exchange_for_token(self, credentials: Credentials) -> str:
        """POST the credentials to the login endpoint and decode the token."""
        url = self.login_url
        try:
            response = await self._client.post(
                url,
                data={"username": credentials.username, "password": credentials.password},
            )
        except httpx.HTTPError as exc:
            log.warning("login_request_error", url=url, error=str(exc))
            raise PreservicaClientError(
                f"Network error calling {url} with method POST: {exc}",
                code=ErrorCode.TRANSPORT_ERROR,
                method="POST",
                url=url,
            ) from exc

        if not response.is_success:
            log.warning("login_failed", url=url, status_code=response.status_code)
            raise PreservicaClientError.from_response(
                "POST",
                url,
                response.status_code,
                f"statusCode: {response.status_code}, response: {response.text}",
            )

        try:
            return TokenResponse.model_validate_json(response.content).token
        except ValidationError as exc:
            raise PreservicaClientError.from_response(
                "POST",
                url,
                response.status_code,
                f"Unable to decode token response: {exc.error_count()} error(s)",
                code=ErrorCode.DECODE_ERROR,
            ) from exc

    async def invalidate_all(self) -> None:
        """Drop both the cached credentials and the cached token."""
        await self._credentials_cache.remove_all()
        await self._token_cache.remove_all()
        log.info("auth_cache_invalidated")
