from __future__ import annotations

from pydantic import BaseModel


class Parameter(BaseModel):
    key: str
    value: str


class StartWorkflowRequest(BaseModel):
    """Request to start a workflow; exactly one of context name or id is required."""

    workflow_context_name: str | None = None
    workflow_context_id: int | None = None
    parameters: list[Parameter] = []
    correlation_id: str | None = None
