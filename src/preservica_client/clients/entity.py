"""Entity API (``/api/entity/v7.0``): entities, identifiers, metadata and bitstreams."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar
from uuid import UUID

import httpx
import structlog

from preservica_client import decoder
from preservica_client.errors import PreservicaClientError
from preservica_client.models.entity import (
    AddEntityRequest,
    BitStreamInfo,
    CoMetadata,
    Entity,
    EntityType,
    EventAction,
    Identifier,
    IdentifierResponse,
    IoMetadata,
    RepresentationType,
    StandardEntityMetadata,
    UpdateEntityRequest,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable
    from xml.etree.ElementTree import Element

    from preservica_client.client import Client

log = structlog.get_logger()

T = TypeVar("T")

API_VERSION = "7.0"
DEFAULT_MAX_ENTRIES = 1000


def _with_params(url: str, params: dict[str, Any]) -> str:
    return str(httpx.URL(url, params=params))


def _format_date(value: datetime) -> str:
    """``2023-04-25T00:00:00.000Z``; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    formatted = value.astimezone(UTC).isoformat(timespec="milliseconds")
    return formatted.replace("+00:00", "Z")


class EntityClient:
    def __init__(self, client: Client) -> None:
        self._client = client
        self.api_url = f"{client.api_base_url}/api/entity/v{API_VERSION}"

    # -- helpers -----------------------------------------------------------

    @staticmethod
    def _entity_path(entity: Entity) -> str:
        if entity.path is None:
            raise PreservicaClientError.validation(
                f"No path found for entity id {entity.ref}. Could this entity have been deleted?"
            )
        return entity.path

    @staticmethod
    def _entity_type(entity: Entity) -> EntityType:
        if entity.entity_type is None:
            raise PreservicaClientError.validation(
                f"No entity type found for entity {entity.ref}"
            )
        return entity.entity_type

    async def _get(self, url: str) -> Element:
        return await self._client.send_xml("GET", url)

    async def _get_all(self, urls: list[str]) -> list[Element]:
        return list(await asyncio.gather(*(self._get(url) for url in urls)))

    # -- entities ----------------------------------------------------------

    async def get_entity(self, entity_ref: UUID, entity_type: EntityType) -> Entity:
        root = await self._get(f"{self.api_url}/{entity_type.entity_path}/{entity_ref}")
        return decoder.entity_from_response(root, entity_ref, entity_type)

    async def entities_updated_since(
        self,
        date_time: datetime,
        start_entry: int = 0,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> list[Entity]:
        """Entities changed after ``date_time``, following every page from ``start_entry``."""
        url = _with_params(
            f"{self.api_url}/entities/updated-since",
            {"date": _format_date(date_time), "max": max_entries, "start": start_entry},
        )
        return await self._client.walk_xml(url, decoder.entities_from_response)

    async def entities_by_identifier(self, identifier: Identifier) -> list[Entity]:
        """Find entities by identifier, then fetch each one in full."""
        url = _with_params(
            f"{self.api_url}/entities/by-identifier",
            {"type": identifier.identifier_name, "value": identifier.value},
        )
        matches = await self._client.walk_xml(url, decoder.entities_from_response)
        return list(
            await asyncio.gather(
                *(self.get_entity(m.ref, self._entity_type(m)) for m in matches)
            )
        )

    async def add_entity(self, request: AddEntityRequest) -> UUID:
        """Create a structural or information object and return its ref."""
        entity_type = request.entity_type
        if entity_type is EntityType.CONTENT_OBJECT:
            raise PreservicaClientError.validation(
                "You currently cannot create a content object via the API."
            )
        self._validate_parent(entity_type, request.parent_ref)

        body = decoder.entity_request_body(
            entity_type,
            request.title,
            request.security_tag,
            ref=request.ref,
            description=request.description,
            parent_ref=request.parent_ref,
            wrap_in_xip=entity_type is EntityType.INFORMATION_OBJECT,
        )
        root = await self._client.send_xml(
            "POST", f"{self.api_url}/{entity_type.entity_path}", body=body
        )
        ref = decoder.child_node_from_entity(root, entity_type.node_name, "Ref")
        try:
            return UUID(ref)
        except ValueError as exc:
            raise PreservicaClientError.decode(f"Invalid entity ref: {ref!r}") from exc

    async def update_entity(self, request: UpdateEntityRequest) -> str:
        entity_type = request.entity_type
        self._validate_parent(entity_type, request.parent_ref)

        body = decoder.entity_request_body(
            entity_type,
            request.title,
            request.security_tag,
            ref=request.ref,
            description=request.description_to_change,
            parent_ref=request.parent_ref,
        )
        await self._client.send_text(
            "PUT", f"{self.api_url}/{entity_type.entity_path}/{request.ref}", body=body
        )
        return "Entity was updated"

    @staticmethod
    def _validate_parent(entity_type: EntityType, parent_ref: UUID | None) -> None:
        if entity_type is not EntityType.STRUCTURAL_OBJECT and parent_ref is None:
            raise PreservicaClientError.validation(
                "You must pass in the parent ref if you would like to add/update "
                "a non-structural object."
            )

    async def get_preservica_namespace_version(self, endpoint: str) -> float:
        """Preservica version from the namespace of ``/api/entity/{endpoint}``."""
        root = await self._get(f"{self._client.api_base_url}/api/entity/{endpoint.lstrip('/')}")
        return decoder.namespace_version(root)

    # -- identifiers -------------------------------------------------------

    async def get_entity_identifiers(self, entity: Entity) -> list[IdentifierResponse]:
        url = f"{self.api_url}/{self._entity_path(entity)}/{entity.ref}/identifiers"
        return await self._client.walk_xml(url, decoder.identifiers)

    async def add_identifier_for_entity(
        self, entity_ref: UUID, entity_type: EntityType, identifier: Identifier
    ) -> str:
        await self._client.send_text(
            "POST",
            f"{self.api_url}/{entity_type.entity_path}/{entity_ref}/identifiers",
            body=decoder.identifier_request_body(identifier),
        )
        return "The Identifier was added"

    async def update_entity_identifiers(
        self, entity: Entity, identifiers: list[IdentifierResponse]
    ) -> list[IdentifierResponse]:
        """PUT each identifier back by its id; returns the identifiers sent."""
        base = f"{self.api_url}/{self._entity_path(entity)}/{entity.ref}/identifiers"
        for identifier in identifiers:
            body = decoder.identifier_request_body(
                Identifier(identifier_name=identifier.identifier_name, value=identifier.value)
            )
            await self._client.send_text("PUT", f"{base}/{identifier.id}", body=body)
        return identifiers

    # -- event actions -----------------------------------------------------

    async def entity_event_actions(
        self,
        entity: Entity,
        start_entry: int = 0,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> list[EventAction]:
        """Every event action on ``entity``, most recent first."""
        url = _with_params(
            f"{self.api_url}/{self._entity_path(entity)}/{entity.ref}/event-actions",
            {"max": max_entries, "start": start_entry},
        )
        actions = await self._client.walk_xml(url, decoder.event_actions)
        actions.reverse()
        return actions

    # -- generations and bitstreams ----------------------------------------

    async def _generation_responses(
        self, generations_url: str, content_ref: UUID
    ) -> list[tuple[str, Element]]:
        generations_root = await self._get(generations_url)
        urls = decoder.generation_urls(generations_root, content_ref)
        return list(zip(urls, await self._get_all(urls), strict=True))

    async def _bitstream_responses(self, generation_root: Element) -> list[Element]:
        return await self._get_all(decoder.bitstream_urls(generation_root))

    async def get_bitstream_info(self, content_ref: UUID) -> list[BitStreamInfo]:
        """Bitstreams of every generation of a content object.

        Generations and their bitstreams are fetched concurrently; the result
        is ordered by generation, then by bitstream, as the API lists them.
        """
        content_type = EntityType.CONTENT_OBJECT
        root = await self._get(f"{self.api_url}/{content_type.entity_path}/{content_ref}")
        content_object = decoder.entity_from_response(root, content_ref, content_type)
        generations = await self._generation_responses(
            decoder.generations_url(root), content_ref
        )

        async def for_generation(url: str, generation_root: Element) -> list[BitStreamInfo]:
            generation_type = decoder.generation_type(generation_root, content_ref)
            version = decoder.generation_version(url)
            bitstreams = await self._bitstream_responses(generation_root)
            return [
                decoder.bitstream_info(b, generation_type, version, content_object)
                for b in bitstreams
            ]

        per_generation = await asyncio.gather(
            *(for_generation(url, generation_root) for url, generation_root in generations)
        )
        infos = [info for batch in per_generation for info in batch]
        log.debug(
            "bitstream_info_fetched",
            content_ref=str(content_ref),
            generations=len(generations),
            bitstreams=len(infos),
        )
        return infos

    async def stream_bitstream_content(
        self,
        url: str,
        consume: Callable[[AsyncIterator[bytes]], Awaitable[T]],
    ) -> T:
        """Pass the body of a bitstream ``url`` to ``consume`` as it arrives."""
        return await self._client.stream(url, consume)

    # -- representations ---------------------------------------------------

    async def get_urls_to_io_representations(
        self,
        io_ref: UUID,
        representation_type: RepresentationType | None = None,
    ) -> list[str]:
        url = f"{self.api_url}/information-objects/{io_ref}/representations"
        return decoder.representation_urls(await self._get(url), representation_type)

    async def _io_representation(
        self, io_ref: UUID, representation_type: RepresentationType, index: int
    ) -> Element:
        return await self._get(
            f"{self.api_url}/information-objects/{io_ref}/representations/"
            f"{representation_type}/{index}"
        )

    async def get_content_objects_from_representation(
        self,
        io_ref: UUID,
        representation_type: RepresentationType,
        representation_index: int,
    ) -> list[Entity]:
        root = await self._io_representation(io_ref, representation_type, representation_index)
        return decoder.content_objects_from_representation(root, io_ref)

    # -- full metadata -----------------------------------------------------

    async def metadata_for_entity(self, entity: Entity) -> StandardEntityMetadata:
        """Gather every XML node describing ``entity``.

        Content objects also carry their generation and bitstream nodes;
        information objects carry their representations.
        """
        path = self._entity_path(entity)
        entity_type = self._entity_type(entity)
        entity_url = f"{self.api_url}/{path}/{entity.ref}"
        page_params = {"max": DEFAULT_MAX_ENTRIES, "start": 0}

        entity_root = await self._get(entity_url)
        entity_node = decoder.entity_node(entity_root, entity_type, entity.ref)
        identifiers = await self._client.walk_xml(
            f"{entity_url}/identifiers", decoder.identifier_nodes
        )
        links = await self._client.walk_xml(
            _with_params(f"{entity_url}/links", page_params), decoder.link_nodes
        )
        fragment_roots = await self._get_all(decoder.fragment_urls(entity_root))
        metadata_nodes = decoder.fragments(fragment_roots)
        event_actions = await self._client.walk_xml(
            _with_params(f"{entity_url}/event-actions", page_params),
            decoder.event_action_nodes,
        )

        if entity_type is EntityType.CONTENT_OBJECT:
            generations = await self._generation_responses(
                f"{entity_url}/generations", entity.ref
            )
            generation_nodes = [
                node for _, root in generations for node in decoder.generation_node(root)
            ]
            bitstream_batches = await asyncio.gather(
                *(self._bitstream_responses(root) for _, root in generations)
            )
            return CoMetadata(
                entity_node=entity_node,
                identifiers=identifiers,
                links=links,
                metadata_nodes=metadata_nodes,
                event_actions=event_actions,
                generation_nodes=generation_nodes,
                bitstream_nodes=[b for batch in bitstream_batches for b in batch],
            )

        if entity_type is EntityType.INFORMATION_OBJECT:
            representation_urls = await self.get_urls_to_io_representations(entity.ref)
            representation_roots = await asyncio.gather(
                *(self._representation_from_url(entity.ref, url) for url in representation_urls)
            )
            return IoMetadata(
                entity_node=entity_node,
                identifiers=identifiers,
                links=links,
                metadata_nodes=metadata_nodes,
                event_actions=event_actions,
                representations=[
                    node
                    for root in representation_roots
                    for node in decoder.representation_node(root)
                ],
            )

        return StandardEntityMetadata(
            entity_node=entity_node,
            identifiers=identifiers,
            links=links,
            metadata_nodes=metadata_nodes,
            event_actions=event_actions,
        )

    async def _representation_from_url(self, io_ref: UUID, url: str) -> Element:
        # Representation URLs end in ``/{type}/{index}``.
        segments = url.rstrip("/").split("/")
        try:
            representation_type = RepresentationType(segments[-2])
            index = int(segments[-1])
        except (IndexError, ValueError) as exc:
            raise PreservicaClientError.decode(f"Unexpected representation url {url}") from exc
        return await self._io_representation(io_ref, representation_type, index)
