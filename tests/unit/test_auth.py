"""Unit tests for preservica_client.auth."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from urllib.parse import parse_qs

import httpx
import pytest
import respx

from preservica_client.errors import ErrorCode, PreservicaClientError
from preservica_client.models.auth import Credentials, SecretStage

if TYPE_CHECKING:
    from conftest import CountingCredentialProvider, FakeClock

    from preservica_client.auth import AuthManager

LOGIN_URL = "https://preservica.test/api/accesstoken/login"


class TestGetToken:
    async def test_logs_in_with_form_credentials(
        self, auth: AuthManager, mock_api: respx.MockRouter
    ) -> None:
        token = await auth.get_token()

        assert token == "test-token"
        request = mock_api["login"].calls.last.request
        assert parse_qs(request.content.decode()) == {
            "username": ["test-user"],
            "password": ["test-password"],
        }

    async def test_token_is_cached(self, auth: AuthManager, mock_api: respx.MockRouter) -> None:
        await auth.get_token()
        await auth.get_token()
        assert mock_api["login"].call_count == 1

    async def test_token_refreshed_after_ttl(
        self, auth: AuthManager, mock_api: respx.MockRouter, clock: FakeClock
    ) -> None:
        await auth.get_token()
        clock.advance(minutes=15)
        await auth.get_token()
        assert mock_api["login"].call_count == 2

    async def test_concurrent_cold_calls_log_in_once(
        self, auth: AuthManager, mock_api: respx.MockRouter
    ) -> None:
        tokens = await asyncio.gather(*(auth.get_token() for _ in range(20)))

        assert tokens == ["test-token"] * 20
        assert mock_api["login"].call_count == 1

    async def test_credentials_cached_with_token(
        self,
        auth: AuthManager,
        provider: CountingCredentialProvider,
        mock_api: respx.MockRouter,
    ) -> None:
        await auth.get_token()
        await auth.get_token()
        assert provider.calls == [SecretStage.CURRENT]


class TestInvalidateAll:
    async def test_next_get_token_performs_full_refresh(
        self,
        auth: AuthManager,
        provider: CountingCredentialProvider,
        mock_api: respx.MockRouter,
    ) -> None:
        mock_api["login"].mock(
            side_effect=[
                httpx.Response(200, json={"token": "first"}),
                httpx.Response(200, json={"token": "second"}),
            ]
        )
        assert await auth.get_token() == "first"

        await auth.invalidate_all()

        assert await auth.get_token() == "second"
        assert provider.calls == [SecretStage.CURRENT, SecretStage.CURRENT]


class TestGetCredentials:
    async def test_pending_stage_is_never_cached(
        self, auth: AuthManager, provider: CountingCredentialProvider
    ) -> None:
        first = await auth.get_credentials(SecretStage.PENDING)
        await auth.get_credentials(SecretStage.PENDING)

        assert first.password == "rotated-password"
        assert provider.calls == [SecretStage.PENDING, SecretStage.PENDING]

    async def test_current_stage_round_trips_through_cache(
        self, auth: AuthManager, credentials: Credentials
    ) -> None:
        assert await auth.get_credentials() == credentials
        assert await auth.get_credentials() == credentials


class TestExchangeForToken:
    async def test_non_2xx_raises_with_request_details(
        self, auth: AuthManager, credentials: Credentials
    ) -> None:
        with respx.mock:
            respx.post(LOGIN_URL).mock(return_value=httpx.Response(401, text="Bad credentials"))
            with pytest.raises(PreservicaClientError) as exc_info:
                await auth.exchange_for_token(credentials)

        error = exc_info.value
        assert error.code == ErrorCode.AUTHORIZATION_FAILED
        assert error.method == "POST"
        assert error.url == LOGIN_URL
        assert error.status_code == 401
        assert "Bad credentials" in error.message

    async def test_undecodable_body_is_decode_error(
        self, auth: AuthManager, credentials: Credentials
    ) -> None:
        with respx.mock:
            respx.post(LOGIN_URL).mock(return_value=httpx.Response(200, json={"nope": 1}))
            with pytest.raises(PreservicaClientError) as exc_info:
                await auth.exchange_for_token(credentials)

        assert exc_info.value.code == ErrorCode.DECODE_ERROR
        assert exc_info.value.status_code == 200

    async def test_network_error_is_transport_error(
        self, auth: AuthManager, credentials: Credentials
    ) -> None:
        with respx.mock:
            respx.post(LOGIN_URL).mock(side_effect=httpx.ConnectError("refused"))
            with pytest.raises(PreservicaClientError) as exc_info:
                await auth.exchange_for_token(credentials)

        assert exc_info.value.code == ErrorCode.TRANSPORT_ERROR
        assert exc_info.value.status_code is None

    async def test_login_failure_is_not_cached(
        self, auth: AuthManager, mock_api: respx.MockRouter
    ) -> None:
        mock_api["login"].mock(
            side_effect=[
                httpx.Response(500),
                httpx.Response(200, json={"token": "recovered"}),
            ]
        )
        with pytest.raises(PreservicaClientError):
            await auth.get_token()
        assert await auth.get_token() == "recovered"
