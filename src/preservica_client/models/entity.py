from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, ConfigDict, computed_field

if TYPE_CHECKING:
    from xml.etree.ElementTree import Element


class EntityType(StrEnum):
    """Entity kinds, valued by their short wire form (``type="IO"``)."""

    STRUCTURAL_OBJECT = "SO"
    INFORMATION_OBJECT = "IO"
    CONTENT_OBJECT = "CO"

    @property
    def entity_path(self) -> str:
        return _ENTITY_PATHS[self]

    @property
    def node_name(self) -> str:
        return _NODE_NAMES[self]

    @classmethod
    def from_short(cls, value: str | None) -> EntityType | None:
        try:
            return cls(value)
        except ValueError:
            return None

    @classmethod
    def from_node_name(cls, name: str) -> EntityType | None:
        return _BY_NODE_NAME.get(name)


_ENTITY_PATHS: dict[EntityType, str] = {
    EntityType.STRUCTURAL_OBJECT: "structural-objects",
    EntityType.INFORMATION_OBJECT: "information-objects",
    EntityType.CONTENT_OBJECT: "content-objects",
}

_NODE_NAMES: dict[EntityType, str] = {
    EntityType.STRUCTURAL_OBJECT: "StructuralObject",
    EntityType.INFORMATION_OBJECT: "InformationObject",
    EntityType.CONTENT_OBJECT: "ContentObject",
}

_BY_NODE_NAME: dict[str, EntityType] = {name: t for t, name in _NODE_NAMES.items()}


class SecurityTag(StrEnum):
    OPEN = "open"
    CLOSED = "closed"

    @classmethod
    def from_wire(cls, value: str | None) -> SecurityTag | None:
        """Return the tag for ``open``/``closed``; anything else is ``None``."""
        if value is None:
            return None
        try:
            return cls(value.strip())
        except ValueError:
            return None


class GenerationType(StrEnum):
    ORIGINAL = "Original"
    DERIVED = "Derived"


class RepresentationType(StrEnum):
    ACCESS = "Access"
    PRESERVATION = "Preservation"


class Entity(BaseModel):
    """A structural, information or content object.

    ``path`` is derived from ``entity_type`` and cannot be set independently.
    """

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType | None
    ref: UUID
    title: str | None = None
    description: str | None = None
    deleted: bool = False
    security_tag: SecurityTag | None = None
    parent: UUID | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def path(self) -> str | None:
        return self.entity_type.entity_path if self.entity_type is not None else None


class Fixity(BaseModel):
    model_config = ConfigDict(frozen=True)

    algorithm: str
    value: str


class BitStreamInfo(BaseModel):
    """One bitstream within one generation of a content object."""

    model_config = ConfigDict(frozen=True)

    name: str
    file_size: int
    url: str
    fixities: list[Fixity] = []
    generation_version: int
    generation_type: GenerationType
    parent_title: str | None = None
    parent_ref: UUID | None = None


class Identifier(BaseModel):
    """An identifier to attach to an entity, or to search by."""

    model_config = ConfigDict(frozen=True)

    identifier_name: str
    value: str


class IdentifierResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    identifier_name: str
    value: str


class EventAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_ref: UUID
    event_type: str
    date: datetime


class AddEntityRequest(BaseModel):
    ref: UUID | None = None
    title: str
    description: str | None = None
    entity_type: EntityType
    security_tag: SecurityTag
    parent_ref: UUID | None = None


class UpdateEntityRequest(BaseModel):
    ref: UUID
    title: str
    description_to_change: str | None = None
    entity_type: EntityType
    security_tag: SecurityTag
    parent_ref: UUID | None = None


@dataclass
class StandardEntityMetadata:
    """Raw metadata nodes common to every entity type."""

    entity_node: Element
    identifiers: list[Element] = field(default_factory=list)
    links: list[Element] = field(default_factory=list)
    metadata_nodes: list[Element] = field(default_factory=list)
    event_actions: list[Element] = field(default_factory=list)


@dataclass
class IoMetadata(StandardEntityMetadata):
    representations: list[Element] = field(default_factory=list)


@dataclass
class CoMetadata(StandardEntityMetadata):
    generation_nodes: list[Element] = field(default_factory=list)
    bitstream_nodes: list[Element] = field(default_factory=list)


EntityMetadata = StandardEntityMetadata
