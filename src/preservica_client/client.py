"""Shared client: wires the cache, auth and dispatcher together.

``create_client`` is the entry point for applications::

    async with create_client(Settings()) as client:
        entity = await client.entities.get_entity(ref, EntityType.INFORMATION_OBJECT)

The API façades in ``preservica_client.clients`` only build URLs and decode
responses; every request goes through ``Client``.
"""

from __future__ import annotations

import json
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import timedelta
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import aiosqlite
import httpx
import structlog
from pydantic import BaseModel, ValidationError

from preservica_client import __version__, decoder, xmlquery
from preservica_client.auth import AuthManager
from preservica_client.cache import MemoryCacheStore, SqliteCacheStore, TokenCache
from preservica_client.config import Settings
from preservica_client.credentials import SecretsManagerCredentialProvider
from preservica_client.dispatcher import (
    ACCESS_TOKEN_HEADER,
    JSON_CONTENT_TYPE,
    XML_CONTENT_TYPE,
    RetryingDispatcher,
    classify,
)
from preservica_client.errors import ErrorCode, PreservicaClientError
from preservica_client.pagination import Page, walk_pages

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
    from xml.etree.ElementTree import Element

    from preservica_client.clients.admin import AdminClient
    from preservica_client.clients.content import ContentClient
    from preservica_client.clients.entity import EntityClient
    from preservica_client.clients.process_monitor import ProcessMonitorClient
    from preservica_client.clients.user import UserClient
    from preservica_client.clients.workflow import WorkflowClient
    from preservica_client.config import HttpSettings
    from preservica_client.protocols import CacheStoreProtocol, CredentialProvider

log = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")


def build_http_client(settings: HttpSettings) -> httpx.AsyncClient:
    """Create the shared httpx client."""
    return httpx.AsyncClient(
        follow_redirects=False,
        timeout=httpx.Timeout(settings.timeout_seconds, connect=settings.connect_timeout_seconds),
        headers={"User-Agent": f"preservica-client/{__version__}"},
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=max(1, settings.max_connections // 2),
        ),
    )


class Client:
    """Authenticated access to one Preservica instance."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        auth: AuthManager,
        dispatcher: RetryingDispatcher,
        *,
        connect_timeout_seconds: float = 5.0,
    ) -> None:
        self.http_client = http_client
        self.auth = auth
        self.dispatcher = dispatcher
        self.api_base_url = auth.api_base_url
        self._connect_timeout_seconds = connect_timeout_seconds

    # -- façades -----------------------------------------------------------

    @cached_property
    def entities(self) -> EntityClient:
        from preservica_client.clients.entity import EntityClient

        return EntityClient(self)

    @cached_property
    def admin(self) -> AdminClient:
        from preservica_client.clients.admin import AdminClient

        return AdminClient(self)

    @cached_property
    def workflows(self) -> WorkflowClient:
        from preservica_client.clients.workflow import WorkflowClient

        return WorkflowClient(self)

    @cached_property
    def process_monitor(self) -> ProcessMonitorClient:
        from preservica_client.clients.process_monitor import ProcessMonitorClient

        return ProcessMonitorClient(self)

    @cached_property
    def content(self) -> ContentClient:
        from preservica_client.clients.content import ContentClient

        return ContentClient(self)

    @cached_property
    def users(self) -> UserClient:
        from preservica_client.clients.user import UserClient

        return UserClient(self)

    # -- request helpers ---------------------------------------------------

    async def send_text(
        self,
        method: str,
        url: str,
        *,
        body: str | None = None,
        content_type: str = XML_CONTENT_TYPE,
        params: dict[str, Any] | None = None,
    ) -> str:
        response = await self.dispatcher.send(
            method, url, body=body, content_type=content_type, params=params
        )
        return response.text

    async def send_xml(
        self,
        method: str,
        url: str,
        *,
        body: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> Element:
        """Send an XML request and parse the XML response body."""
        response = await self.dispatcher.send(
            method, url, body=body, content_type=XML_CONTENT_TYPE, params=params
        )
        return xmlquery.parse_xml(response.content)

    async def send_json(
        self,
        method: str,
        url: str,
        response_model: type[M],
        *,
        body: BaseModel | dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> M:
        """Send a JSON request and validate the response against ``response_model``."""
        if isinstance(body, BaseModel):
            payload: str | None = body.model_dump_json(by_alias=True)
        elif body is not None:
            payload = json.dumps(body)
        else:
            payload = None

        response = await self.dispatcher.send(
            method, url, body=payload, content_type=JSON_CONTENT_TYPE, params=params
        )
        try:
            return response_model.model_validate_json(response.content)
        except ValidationError as exc:
            raise PreservicaClientError.from_response(
                method,
                url,
                response.status_code,
                f"Unable to decode response: {exc.error_count()} error(s)",
                code=ErrorCode.DECODE_ERROR,
            ) from exc

    async def walk_xml(
        self,
        start_url: str,
        items: Callable[[Element], list[T]],
    ) -> list[T]:
        """GET every page from ``start_url``, decoding each with ``items``."""

        async def fetch_page(url: str) -> Page[T]:
            root = await self.send_xml("GET", url)
            return Page(items=items(root), next_url=decoder.next_page_url(root))

        return await walk_pages(start_url, fetch_page)

    async def stream(
        self,
        url: str,
        consume: Callable[[AsyncIterator[bytes]], Awaitable[T]],
    ) -> T:
        """Stream a response body into ``consume``.

        Sent once, without retries, since ``consume`` may already have
        written part of the body. There is no read timeout.
        """
        token = await self.auth.get_token()
        timeout = httpx.Timeout(None, connect=self._connect_timeout_seconds)
        request = self.http_client.build_request(
            "GET", url, headers={ACCESS_TOKEN_HEADER: token}, timeout=timeout
        )
        try:
            response = await self.http_client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise PreservicaClientError(
                f"Network error calling {url} with method GET: {exc}",
                code=ErrorCode.TRANSPORT_ERROR,
                method="GET",
                url=url,
            ) from exc

        try:
            if not response.is_success:
                await response.aread()
                if classify(response.status_code).invalidate_auth:
                    await self.auth.invalidate_all()
                raise PreservicaClientError.from_response(
                    "GET", url, response.status_code, response.text
                )
            log.debug("stream_started", url=url, status_code=response.status_code)
            return await consume(response.aiter_bytes())
        finally:
            await response.aclose()


@asynccontextmanager
async def create_client(
    settings: Settings | None = None,
    *,
    credential_provider: CredentialProvider | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncGenerator[Client, None]:
    """Build a ``Client`` and tear down its resources on exit.

    Credentials come from Secrets Manager unless ``credential_provider`` is
    given. An ``http_client`` passed in is left open.
    """
    settings = settings or Settings()
    if not settings.api.url:
        raise PreservicaClientError.validation("api.url must be configured")

    provider = credential_provider or SecretsManagerCredentialProvider(
        endpoint_url=settings.auth.secrets_manager_endpoint,
        region_name=settings.auth.region,
    )

    async with AsyncExitStack() as stack:
        if http_client is None:
            http = build_http_client(settings.http)
            stack.push_async_callback(http.aclose)
        else:
            http = http_client

        store: CacheStoreProtocol
        if settings.cache.backend == "sqlite":
            store = await _open_sqlite_store(settings.cache.db_path, stack)
        else:
            store = MemoryCacheStore()

        auth = AuthManager(
            http,
            provider,
            api_base_url=settings.api.url,
            secret_name=settings.api.secret_name,
            credentials_cache=TokenCache(store, namespace="credentials"),
            token_cache=TokenCache(store, namespace="token"),
            token_ttl=timedelta(minutes=settings.auth.token_ttl_minutes),
        )
        dispatcher = RetryingDispatcher(
            http,
            auth,
            max_retries=settings.retry.max_retries,
            base_delay_seconds=settings.retry.base_delay_seconds,
        )
        log.info(
            "client_created",
            api_url=auth.api_base_url,
            cache_backend=settings.cache.backend,
            max_retries=settings.retry.max_retries,
        )
        yield Client(
            http,
            auth,
            dispatcher,
            connect_timeout_seconds=settings.http.connect_timeout_seconds,
        )


async def _open_sqlite_store(db_path: str, stack: AsyncExitStack) -> SqliteCacheStore:
    """Open the token cache database; the connection is closed when ``stack`` unwinds."""
    path = Path(db_path).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(path))
        stack.push_async_callback(db.close)
        store = SqliteCacheStore(db)
        await store.init_db()
    except (OSError, aiosqlite.Error) as exc:
        log.error("cache_open_failed", db_path=str(path), error=str(exc))
        raise PreservicaClientError(
            f"Unable to open token cache database {path}: {exc}",
            code=ErrorCode.CACHE_UNAVAILABLE,
        ) from exc
    return store
