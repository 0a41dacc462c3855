from __future__ import annotations

from pydantic import BaseModel


class SearchField(BaseModel):
    name: str
    values: list[str]


class SearchQuery(BaseModel):
    q: str
    fields: list[SearchField]


class SearchResponseValue(BaseModel):
    objectIds: list[str] = []
    totalHits: int = 0


class SearchResponse(BaseModel):
    success: bool
    value: SearchResponseValue
