"""Process monitor API (``/api/processmonitor``): OPEX ingest monitors and messages."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from preservica_client.errors import PreservicaClientError
from preservica_client.models.process_monitor import MessagesResponse, MonitorsResponse
from preservica_client.pagination import Page, walk_pages

if TYPE_CHECKING:
    from preservica_client.client import Client
    from preservica_client.models.process_monitor import (
        GetMessagesRequest,
        GetMonitorsRequest,
        Message,
        Monitor,
    )


class ProcessMonitorClient:
    def __init__(self, client: Client) -> None:
        self._client = client
        self.api_url = f"{client.api_base_url}/api/processmonitor"

    async def get_monitors(self, request: GetMonitorsRequest) -> list[Monitor]:
        if not (request.name or "").startswith("opex"):
            raise PreservicaClientError.validation("The monitor name must start with 'opex'")
        response = await self._client.send_json(
            "GET",
            f"{self.api_url}/monitors",
            MonitorsResponse,
            params=request.to_query_params(),
        )
        return response.value.monitors

    async def get_messages(
        self, request: GetMessagesRequest, start: int = 0, max_entries: int = 1000
    ) -> list[Message]:
        """Every message matching ``request``, following ``value.paging.next``."""
        params = {**request.to_query_params(), "start": start, "max": max_entries}
        start_url = str(httpx.URL(f"{self.api_url}/messages", params=params))

        async def fetch_page(url: str) -> Page[Message]:
            response = await self._client.send_json("GET", url, MessagesResponse)
            return Page(items=response.value.messages, next_url=response.value.paging.next)

        return await walk_pages(start_url, fetch_page)
