"""Shared test fixtures for the preservica_client test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import httpx
import pytest
import respx

from preservica_client.auth import AuthManager
from preservica_client.cache import MemoryCacheStore, TokenCache
from preservica_client.client import Client
from preservica_client.credentials import StaticCredentialProvider
from preservica_client.dispatcher import RetryingDispatcher
from preservica_client.models.auth import Credentials, SecretStage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

BASE_URL = "https://preservica.test"
LOGIN_URL = f"{BASE_URL}/api/accesstoken/login"
SECRET_NAME = "preservica-secret"


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingSleep:
    """Stands in for asyncio.sleep; records each requested delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class CountingCredentialProvider(StaticCredentialProvider):
    def __init__(self, current: Credentials, pending: Credentials | None = None) -> None:
        super().__init__(current, pending)
        self.calls: list[SecretStage] = []

    async def get_secret(self, name: str, stage: SecretStage) -> Credentials:
        self.calls.append(stage)
        return await super().get_secret(name, stage)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=UTC))


@pytest.fixture()
def credentials() -> Credentials:
    return Credentials(username="test-user", password="test-password")


@pytest.fixture()
def provider(credentials: Credentials) -> CountingCredentialProvider:
    return CountingCredentialProvider(
        credentials,
        pending=Credentials(username="test-user", password="rotated-password"),
    )


@pytest.fixture()
def store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture()
async def http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture()
def auth(
    http_client: httpx.AsyncClient,
    provider: CountingCredentialProvider,
    store: MemoryCacheStore,
    clock: FakeClock,
) -> AuthManager:
    return AuthManager(
        http_client,
        provider,
        api_base_url=BASE_URL,
        secret_name=SECRET_NAME,
        credentials_cache=TokenCache(store, namespace="credentials", clock=clock),
        token_cache=TokenCache(store, namespace="token", clock=clock),
    )


@pytest.fixture()
def sleeps() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def dispatcher(
    http_client: httpx.AsyncClient, auth: AuthManager, sleeps: RecordingSleep
) -> RetryingDispatcher:
    return RetryingDispatcher(http_client, auth, max_retries=3, sleep=sleeps)


@pytest.fixture()
def client(
    http_client: httpx.AsyncClient, auth: AuthManager, dispatcher: RetryingDispatcher
) -> Client:
    return Client(http_client, auth, dispatcher)


@pytest.fixture()
def mock_api() -> Iterator[respx.MockRouter]:
    """respx router with a login endpoint that always returns ``test-token``."""
    with respx.mock(assert_all_called=False) as router:
        router.post(LOGIN_URL, name="login").mock(
            return_value=httpx.Response(200, json={"token": "test-token"})
        )
        yield router

