"""JSON models for the process monitor API (``/api/processmonitor``)."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MonitorStatus(StrEnum):
    RUNNING = "Running"
    PENDING = "Pending"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    SUSPENDED = "Suspended"
    RECOVERABLE = "Recoverable"


class MonitorCategory(StrEnum):
    INGEST = "Ingest"
    EXPORT = "Export"
    DATA_MANAGEMENT = "DataManagement"
    AUTOMATED = "Automated"


class MessageStatus(StrEnum):
    ERROR = "Error"
    INFO = "Info"
    DEBUG = "Debug"
    WARNING = "Warning"


class Paging(_CamelModel):
    next: str | None = None
    total_results: int = 0


class Monitor(_CamelModel):
    mapped_id: str
    name: str
    status: str
    started: str | None = None
    completed: str | None = None
    category: str
    subcategory: str
    progress_text: str | None = None
    percent_complete: str | None = None
    files_pending: int
    size: int
    files_processed: int
    warnings: int
    errors: int
    can_retry: bool


class MonitorsValue(_CamelModel):
    paging: Paging
    monitors: list[Monitor] = []


class MonitorsResponse(_CamelModel):
    success: bool
    version: int
    value: MonitorsValue


class Message(_CamelModel):
    workflow_instance_id: int
    monitor_name: str
    path: str
    date: str
    status: str
    display_message: str
    workflow_name: str
    mapped_monitor_id: str
    message: str
    mapped_id: str
    security_descriptor: str | None = None
    entity_title: str | None = None
    entity_ref: str | None = None
    source_id: str | None = None


class MessagesValue(_CamelModel):
    paging: Paging
    messages: list[Message] = []


class MessagesResponse(_CamelModel):
    success: bool
    version: int
    value: MessagesValue


class GetMonitorsRequest(BaseModel):
    status: list[MonitorStatus] = []
    name: str | None = None
    category: list[MonitorCategory] = []

    def to_query_params(self) -> dict[str, str]:
        """Return only the populated filters, list values joined with commas."""
        params: dict[str, str] = {}
        if self.status:
            params["status"] = ",".join(self.status)
        if self.name:
            params["name"] = self.name
        if self.category:
            params["category"] = ",".join(self.category)
        return params


class GetMessagesRequest(BaseModel):
    monitor: list[str] = []
    status: list[MessageStatus] = []

    def to_query_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.monitor:
            params["monitor"] = ",".join(self.monitor)
        if self.status:
            params["status"] = ",".join(self.status)
        return params
