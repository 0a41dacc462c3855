from __future__ import annotations

from preservica_client.models.auth import Credentials, SecretStage, TokenResponse
from preservica_client.models.cache import CacheEntry
from preservica_client.models.entity import (
    AddEntityRequest,
    BitStreamInfo,
    CoMetadata,
    Entity,
    EntityMetadata,
    EntityType,
    EventAction,
    Fixity,
    GenerationType,
    Identifier,
    IdentifierResponse,
    IoMetadata,
    RepresentationType,
    SecurityTag,
    StandardEntityMetadata,
    UpdateEntityRequest,
)

__all__ = [
    # auth
    "Credentials",
    "SecretStage",
    "TokenResponse",
    # cache
    "CacheEntry",
    # entity
    "AddEntityRequest",
    "BitStreamInfo",
    "CoMetadata",
    "Entity",
    "EntityMetadata",
    "EntityType",
    "EventAction",
    "Fixity",
    "GenerationType",
    "Identifier",
    "IdentifierResponse",
    "IoMetadata",
    "RepresentationType",
    "SecurityTag",
    "StandardEntityMetadata",
    "UpdateEntityRequest",
]
