"""Decoding of Entity API XML responses, and the XML request bodies it accepts.

Pure functions: each receives a parsed response element and returns model
objects or raw nodes. No knowledge of HTTP, tokens or pagination.

Optional fields are tolerant (a missing ``Title`` is ``None``, an unknown
``SecurityTag`` is ``None``); required structure is strict and raises a
DECODE_ERROR (no generations, a generation without its ``original``
attribute, a bitstream without a size).
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID
from xml.sax.saxutils import escape

from preservica_client import xmlquery as xq
from preservica_client.errors import PreservicaClientError
from preservica_client.models.entity import (
    BitStreamInfo,
    Entity,
    EntityType,
    EventAction,
    Fixity,
    GenerationType,
    Identifier,
    IdentifierResponse,
    SecurityTag,
)

if TYPE_CHECKING:
    from xml.etree.ElementTree import Element

    from preservica_client.models.entity import RepresentationType

_NAMESPACE_VERSION_RE = re.compile(r"/v(\d+(?:\.\d+)?)$")

_GENERATION_TYPES: dict[str, GenerationType] = {
    "true": GenerationType.ORIGINAL,
    "false": GenerationType.DERIVED,
}


def _uuid(value: str | None, what: str) -> UUID:
    if not value:
        raise PreservicaClientError.decode(f"Missing {what}")
    try:
        return UUID(value)
    except ValueError as exc:
        raise PreservicaClientError.decode(f"Invalid {what}: {value!r}") from exc


def _optional_uuid(value: str | None) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


def _required_text(elem: Element, *path: str) -> str:
    value = xq.first_text(elem, *path)
    if value is None:
        raise PreservicaClientError.decode(f"'{'/'.join(path)}' not found in response")
    return value


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


def entity_node(root: Element, entity_type: EntityType, ref: UUID) -> Element:
    """Return the ``<StructuralObject>``-style node of an entity response."""
    node = xq.child(root, entity_type.node_name)
    if node is None:
        raise PreservicaClientError.decode(f"Entity not found for id {ref}")
    return node


def entity_from_response(
    root: Element,
    ref: UUID | None = None,
    expected_type: EntityType | None = None,
) -> Entity:
    """Decode a single entity response.

    With ``expected_type`` the matching node must be present. Without it, the
    type is taken from the first child's tag name (``StructuralObject`` or
    ``SO`` style); an unrecognised tag gives ``entity_type=None``.
    """
    if expected_type is not None:
        node = xq.child(root, expected_type.node_name)
        if node is None:
            raise PreservicaClientError.decode(f"Entity not found for id {ref}")
        entity_type: EntityType | None = expected_type
    else:
        candidates = [
            c for c in xq.iter_children(root) if xq.local_name(c.tag) != "AdditionalInformation"
        ]
        if not candidates:
            raise PreservicaClientError.decode("No entity found in response")
        node = candidates[0]
        name = xq.local_name(node.tag)
        entity_type = EntityType.from_node_name(name) or EntityType.from_short(name)

    ref_text = xq.first_text(node, "Ref")
    entity_ref = _uuid(ref_text, "entity ref") if ref_text else ref
    if entity_ref is None:
        raise PreservicaClientError.decode("Missing entity ref")

    deleted = (xq.first_text(node, "Deleted") or "").lower() == "true"
    return Entity(
        entity_type=entity_type,
        ref=entity_ref,
        title=xq.first_text(node, "Title"),
        description=xq.first_text(node, "Description"),
        deleted=deleted,
        security_tag=SecurityTag.from_wire(xq.first_text(node, "SecurityTag")),
        parent=_optional_uuid(xq.first_text(node, "Parent")),
    )


def entities_from_response(root: Element) -> list[Entity]:
    """Decode the ``Entities/Entity`` listing of a collection response."""
    entities: list[Entity] = []
    for elem in xq.find_all(root, "Entities", "Entity"):
        deleted = xq.attribute(elem, "deleted")
        entities.append(
            Entity(
                entity_type=EntityType.from_short(xq.attribute(elem, "type")),
                ref=_uuid(xq.attribute(elem, "ref"), "entity ref"),
                title=xq.attribute(elem, "title"),
                description=xq.attribute(elem, "description"),
                deleted=bool(deleted) and deleted.lower() != "false",
            )
        )
    return entities


def next_page_url(root: Element) -> str | None:
    """``Paging/Next`` of a collection response; absent or empty means last page."""
    return xq.first_text(root, "Paging", "Next") or None


# ---------------------------------------------------------------------------
# Generations and bitstreams
# ---------------------------------------------------------------------------


def generations_url(root: Element) -> str:
    value = xq.first_text(root, "AdditionalInformation", "Generations")
    if not value:
        raise PreservicaClientError.decode("Generation not found")
    return value


def generation_urls(root: Element, content_ref: UUID | None = None) -> list[str]:
    urls = xq.texts(root, "Generations", "Generation")
    if not urls:
        raise PreservicaClientError.decode(f"No generations found for entity ref: {content_ref}")
    return urls


def generation_node(root: Element) -> list[Element]:
    return xq.children(root, "Generation")


def generation_type(root: Element, content_ref: UUID | None = None) -> GenerationType:
    """Map the ``original`` attribute of ``<Generation>``; anything but true/false fails."""
    generation = xq.child(root, "Generation")
    if generation is None or not generation.attrib:
        raise PreservicaClientError.decode(f"No attributes found for entity ref: {content_ref}")
    original = xq.attribute(generation, "original")
    if original is None:
        raise PreservicaClientError.decode(
            f"'original' attribute could not be found on generation for entity ref: {content_ref}"
        )
    try:
        return _GENERATION_TYPES[original.strip().lower()]
    except KeyError:
        raise PreservicaClientError.decode(
            f"'original' attribute has unexpected value {original!r} "
            f"for entity ref: {content_ref}"
        ) from None


def generation_version(generation_url: str) -> int:
    """Generation URLs end in their version number: ``.../generations/2``."""
    last_segment = generation_url.rstrip("/").rsplit("/", 1)[-1]
    try:
        return int(last_segment)
    except ValueError as exc:
        raise PreservicaClientError.decode(
            f"Unable to read generation version from {generation_url}"
        ) from exc


def bitstream_urls(root: Element) -> list[str]:
    return xq.texts(root, "Bitstreams", "Bitstream")


def fixities(bitstream: Element) -> list[Fixity]:
    return [
        Fixity(
            algorithm=_required_text(f, "FixityAlgorithmRef"),
            value=_required_text(f, "FixityValue"),
        )
        for f in xq.find_all(bitstream, "Fixities", "Fixity")
    ]


def bitstream_info(
    root: Element,
    generation_type: GenerationType,
    generation_version: int,
    content_object: Entity,
) -> BitStreamInfo:
    """Decode one ``BitstreamResponse`` for a content object's generation."""
    bitstream = xq.child(root, "Bitstream")
    if bitstream is None:
        raise PreservicaClientError.decode(
            f"No bitstream found in response for entity ref: {content_object.ref}"
        )
    size_text = _required_text(bitstream, "FileSize")
    try:
        file_size = int(size_text)
    except ValueError as exc:
        raise PreservicaClientError.decode(f"Invalid FileSize: {size_text!r}") from exc

    return BitStreamInfo(
        name=_required_text(bitstream, "Filename"),
        file_size=file_size,
        url=_required_text(root, "AdditionalInformation", "Content"),
        fixities=fixities(bitstream),
        generation_version=generation_version,
        generation_type=generation_type,
        parent_title=content_object.title,
        parent_ref=content_object.parent,
    )


# ---------------------------------------------------------------------------
# Identifiers, event actions, links, metadata fragments
# ---------------------------------------------------------------------------


def identifier_nodes(root: Element) -> list[Element]:
    return xq.find_all(root, "Identifiers", "Identifier")


def identifiers(root: Element) -> list[IdentifierResponse]:
    return [
        IdentifierResponse(
            id=_required_text(node, "ApiId"),
            identifier_name=_required_text(node, "Type"),
            value=_required_text(node, "Value"),
        )
        for node in identifier_nodes(root)
    ]


def identifier_from_node(node: Element) -> Identifier:
    """Decode an ``<Identifier><Type/><Value/></Identifier>`` element."""
    return Identifier(
        identifier_name=_required_text(node, "Type"),
        value=_required_text(node, "Value"),
    )


def event_action_nodes(root: Element) -> list[Element]:
    return xq.find_all(root, "EventActions", "EventAction")


def event_actions(root: Element) -> list[EventAction]:
    """Decode event actions in page order; the date is the Event's own date."""
    actions: list[EventAction] = []
    for node in event_action_nodes(root):
        event = xq.child(node, "Event")
        if event is None:
            raise PreservicaClientError.decode("EventAction without an Event")
        event_type = xq.attribute(event, "type")
        if event_type is None:
            raise PreservicaClientError.decode("Event without a type attribute")
        date_text = _required_text(event, "Date")
        try:
            date = datetime.fromisoformat(date_text)
        except ValueError as exc:
            raise PreservicaClientError.decode(f"Invalid event date: {date_text!r}") from exc
        actions.append(
            EventAction(
                event_ref=_uuid(xq.first_text(event, "Ref"), "event ref"),
                event_type=event_type,
                date=date,
            )
        )
    return actions


def link_nodes(root: Element) -> list[Element]:
    return xq.find_all(root, "Links", "Link")


def fragment_urls(root: Element) -> list[str]:
    return xq.texts(root, "AdditionalInformation", "Metadata", "Fragment")


def fragments(roots: list[Element]) -> list[Element]:
    """Return each fragment response's content, relabelled as ``<Metadata>``.

    Fragment responses whose ``MetadataContainer/Content`` is empty are
    dropped; if that leaves nothing, the responses were malformed.
    """
    metadata: list[Element] = []
    for root in roots:
        for container in xq.children(root, "MetadataContainer"):
            content = xq.children(container, "Content")
            if not any(list(xq.iter_children(node)) for node in content):
                continue
            node = ET.Element("Metadata", dict(container.attrib))
            node.extend(xq.iter_children(container))
            metadata.append(node)
    if roots and not metadata:
        rendered = "\n".join(xq.to_string(root) for root in roots)
        raise PreservicaClientError.decode(f"No content found for elements:\n{rendered}")
    return metadata


# ---------------------------------------------------------------------------
# Single values from create/update responses
# ---------------------------------------------------------------------------


def child_node_from_entity(root: Element, node_name: str, child_name: str) -> str:
    """Text of ``<node_name>/<child_name>``, matched case-insensitively."""
    node = xq.child(root, node_name, ignore_case=True)
    value = xq.child(node, child_name, ignore_case=True) if node is not None else None
    if value is None:
        raise PreservicaClientError.decode(
            f"Either {node_name} or {child_name} does not exist on entity"
        )
    return xq.text_of(value)


def child_node_from_workflow_instance(root: Element, child_name: str) -> str:
    value = xq.child(root, child_name)
    if value is None:
        raise PreservicaClientError.decode(
            f"'{child_name}' does not exist on the workflowInstance response."
        )
    return xq.text_of(value)


def existing_api_id(root: Element, element_name: str, name: str) -> str | None:
    """ApiId of the admin document called ``name``, if one exists."""
    for elem in root.iter():
        if not isinstance(elem.tag, str) or xq.local_name(elem.tag) != element_name:
            continue
        if xq.first_text(elem, "Name") == name:
            return xq.first_text(elem, "ApiId")
    return None


def namespace_version(root: Element) -> float:
    """Version from the root namespace, e.g. ``http://preservica.com/XIP/v7.0`` → 7.0."""
    ns = xq.namespace(root.tag) or ""
    match = _NAMESPACE_VERSION_RE.search(ns)
    if match is None:
        raise PreservicaClientError.decode(f"No version found in namespace {ns!r}")
    return float(match.group(1))


# ---------------------------------------------------------------------------
# Representations
# ---------------------------------------------------------------------------


def representation_urls(
    root: Element, representation_type: RepresentationType | None = None
) -> list[str]:
    nodes = xq.find_all(root, "Representations", "Representation")
    if representation_type is not None:
        nodes = [n for n in nodes if xq.attribute(n, "type") == representation_type]
    return [xq.text_of(n) for n in nodes]


def representation_node(root: Element) -> list[Element]:
    return xq.children(root, "Representation")


def content_objects_from_representation(root: Element, io_ref: UUID) -> list[Entity]:
    refs = xq.texts(root, "Representation", "ContentObjects", "ContentObject")
    return [
        Entity(
            entity_type=EntityType.CONTENT_OBJECT,
            ref=_uuid(ref, "content object ref"),
            parent=io_ref,
        )
        for ref in refs
    ]


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

XIP_NAMESPACE = "http://preservica.com/XIP/v7.0"
_XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'


def identifier_request_body(identifier: Identifier) -> str:
    """``<Identifier>`` document for adding or updating an identifier."""
    return (
        f"{_XML_DECLARATION}\n"
        f'<Identifier xmlns="{XIP_NAMESPACE}">'
        f"<Type>{escape(identifier.identifier_name)}</Type>"
        f"<Value>{escape(identifier.value)}</Value>"
        "</Identifier>"
    )


def entity_request_body(
    entity_type: EntityType,
    title: str,
    security_tag: SecurityTag,
    *,
    ref: UUID | None = None,
    description: str | None = None,
    parent_ref: UUID | None = None,
    wrap_in_xip: bool = False,
) -> str:
    """Entity document for add (POST) and update (PUT) requests.

    Information objects are created inside an ``<XIP>`` element, which is
    where their representations would also go.
    """
    node = entity_type.node_name
    parts = [f'<{node} xmlns="{XIP_NAMESPACE}">']
    if ref is not None:
        parts.append(f"<Ref>{ref}</Ref>")
    parts.append(f"<Title>{escape(title)}</Title>")
    if description is not None:
        parts.append(f"<Description>{escape(description)}</Description>")
    parts.append(f"<SecurityTag>{security_tag}</SecurityTag>")
    if parent_ref is not None:
        parts.append(f"<Parent>{parent_ref}</Parent>")
    parts.append(f"</{node}>")
    body = "".join(parts)
    if wrap_in_xip:
        body = f'<XIP xmlns="{XIP_NAMESPACE}">{body}</XIP>'
    return f"{_XML_DECLARATION}\n{body}"
