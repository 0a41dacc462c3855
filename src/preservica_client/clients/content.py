"""Content search API (``/api/content/search``)."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from preservica_client.errors import PreservicaClientError
from preservica_client.models.content import SearchResponse
from preservica_client.models.entity import Entity, EntityType

if TYPE_CHECKING:
    from preservica_client.client import Client
    from preservica_client.models.content import SearchQuery

log = structlog.get_logger()

DEFAULT_PAGE_SIZE = 100


def entity_from_object_id(object_id: str) -> Entity:
    """``sdb:IO|a9e1cae8-ea06-4157-8dd4-82d0525b031c`` → information object entity."""
    type_part, sep, ref_part = object_id.partition("|")
    if not sep:
        raise PreservicaClientError.decode(f"Unexpected search result id {object_id!r}")
    try:
        ref = UUID(ref_part)
    except ValueError as exc:
        raise PreservicaClientError.decode(f"Unexpected search result id {object_id!r}") from exc
    return Entity(
        entity_type=EntityType.from_short(type_part.rsplit(":", 1)[-1]),
        ref=ref,
    )


class ContentClient:
    def __init__(self, client: Client) -> None:
        self._client = client
        self.url = f"{client.api_base_url}/api/content/search"

    async def search_entities(
        self, query: SearchQuery, max_entries: int = DEFAULT_PAGE_SIZE
    ) -> list[Entity]:
        """Run ``query`` and return every hit.

        Pages are requested ``max_entries`` at a time, advancing ``start``
        until a page comes back empty.
        """
        base_params = {
            "q": query.model_dump_json(),
            "max": max_entries,
            "metadata": ",".join(f.name for f in query.fields),
        }
        object_ids: list[str] = []
        start = 0
        while True:
            response = await self._client.send_json(
                "GET", self.url, SearchResponse, params={**base_params, "start": start}
            )
            page = response.value.objectIds
            if not page:
                break
            object_ids.extend(page)
            start += max_entries

        log.debug("search_complete", hits=len(object_ids))
        return [entity_from_object_id(object_id) for object_id in object_ids]
