"""Protocol interfaces for swappable components.

The auth layer and the clients reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight in-memory stores and static credentials
- The durable SQLite cache and the in-memory cache to be swapped freely
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from preservica_client.models.auth import Credentials, SecretStage
    from preservica_client.models.cache import CacheEntry


class CacheStoreProtocol(Protocol):
    """Backing store for TokenCache. Entries are replaced atomically."""

    async def get_entry(self, key: str) -> CacheEntry | None: ...

    async def put_entry(self, key: str, entry: CacheEntry) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def remove_all(self, prefix: str = "") -> None: ...


class CredentialProvider(Protocol):
    """Source of API credentials, e.g. a secrets manager."""

    async def get_secret(self, name: str, stage: SecretStage) -> Credentials: ...
