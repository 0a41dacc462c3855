from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class SecretStage(StrEnum):
    """Which version of a rotating secret to read."""

    CURRENT = "AWSCURRENT"
    PENDING = "AWSPENDING"


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    password: str
    api_url: str | None = None

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***', api_url={self.api_url!r})"


class TokenResponse(BaseModel):
    """Body of a successful ``/api/accesstoken/login`` call."""

    token: str
