"""Admin API (``/api/admin/v7.0``): schemas, transforms and XML documents."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from preservica_client import decoder

if TYPE_CHECKING:
    from collections.abc import Sequence

    from preservica_client.client import Client
    from preservica_client.models.admin import (
        FileInfo,
        IndexDefinitionInfo,
        MetadataTemplateInfo,
        SchemaFileInfo,
        TransformFileInfo,
    )

log = structlog.get_logger()

API_VERSION = "7.0"


class AdminClient:
    """Uploads replace any existing document with the same name."""

    def __init__(self, client: Client) -> None:
        self._client = client
        self.api_url = f"{client.api_base_url}/api/admin/v{API_VERSION}"

    async def _update_files(
        self, files: Sequence[FileInfo], path: str, element_name: str
    ) -> None:
        url = f"{self.api_url}/{path}"
        existing = await self._client.send_xml("GET", url)
        for info in files:
            api_id = decoder.existing_api_id(existing, element_name, info.name)
            if api_id is not None:
                await self._client.send_text("DELETE", f"{url}/{api_id}")
                log.info("admin_document_deleted", path=path, name=info.name, api_id=api_id)
            await self._client.send_text(
                "POST", url, body=info.xml_data, params=info.to_query_params()
            )
            log.info("admin_document_uploaded", path=path, name=info.name)

    async def add_or_update_schemas(self, files: Sequence[SchemaFileInfo]) -> None:
        await self._update_files(files, "schemas", "Schema")

    async def add_or_update_transforms(self, files: Sequence[TransformFileInfo]) -> None:
        await self._update_files(files, "transforms", "Transform")

    async def add_or_update_index_definitions(
        self, files: Sequence[IndexDefinitionInfo]
    ) -> None:
        await self._update_files(files, "documents", "Document")

    async def add_or_update_metadata_templates(
        self, files: Sequence[MetadataTemplateInfo]
    ) -> None:
        await self._update_files(files, "documents", "Document")
