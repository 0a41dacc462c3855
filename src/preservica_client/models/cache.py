from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict


class CacheEntry(BaseModel):
    """A cached value with the time it was written and how long it lives."""

    model_config = ConfigDict(frozen=True)

    value: str
    created_at: datetime
    ttl_seconds: float

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: datetime) -> bool:
        # Valid strictly before created_at + ttl.
        return now >= self.expires_at
