"""Documents uploaded through the admin API.

Each kind knows the query parameters the upload endpoint expects.
"""

from __future__ import annotations

from pydantic import BaseModel


class SchemaFileInfo(BaseModel):
    name: str
    description: str
    original_name: str
    xml_data: str

    def to_query_params(self) -> dict[str, str]:
        return {
            "name": self.name,
            "description": self.description,
            "originalName": self.original_name,
        }


class TransformFileInfo(BaseModel):
    name: str
    from_: str
    to: str
    purpose: str
    original_name: str
    xml_data: str

    def to_query_params(self) -> dict[str, str]:
        return {
            "name": self.name,
            "from": self.from_,
            "to": self.to,
            "purpose": self.purpose,
            "originalName": self.original_name,
        }


class IndexDefinitionInfo(BaseModel):
    name: str
    xml_data: str

    def to_query_params(self) -> dict[str, str]:
        return {"name": self.name, "type": "CustomIndexDefinition"}


class MetadataTemplateInfo(BaseModel):
    name: str
    xml_data: str

    def to_query_params(self) -> dict[str, str]:
        return {"name": self.name, "type": "MetadataTemplate"}


FileInfo = SchemaFileInfo | TransformFileInfo | IndexDefinitionInfo | MetadataTemplateInfo
