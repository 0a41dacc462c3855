"""Starting workflows through the SDB REST API."""

from __future__ import annotations

from typing import TYPE_CHECKING
from xml.sax.saxutils import escape

import structlog

from preservica_client import decoder
from preservica_client.errors import PreservicaClientError

if TYPE_CHECKING:
    from preservica_client.client import Client
    from preservica_client.models.workflow import StartWorkflowRequest

log = structlog.get_logger()

WORKFLOW_NAMESPACE = "http://workflow.preservica.com"


def start_workflow_request_body(request: StartWorkflowRequest) -> str:
    parts: list[str] = []
    if request.workflow_context_id is not None:
        parts.append(f"<WorkflowContextId>{request.workflow_context_id}</WorkflowContextId>")
    if request.workflow_context_name is not None:
        parts.append(
            f"<WorkflowContextName>{escape(request.workflow_context_name)}</WorkflowContextName>"
        )
    if request.correlation_id is not None:
        parts.append(f"<CorrelationId>{escape(request.correlation_id)}</CorrelationId>")
    parts.extend(
        f"<Parameter><Key>{escape(p.key)}</Key><Value>{escape(p.value)}</Value></Parameter>"
        for p in request.parameters
    )
    return (
        "<?xml version='1.0' encoding='UTF-8' standalone='yes'?>\n"
        f'<StartWorkflowRequest xmlns="{WORKFLOW_NAMESPACE}">{"".join(parts)}'
        "</StartWorkflowRequest>"
    )


class WorkflowClient:
    def __init__(self, client: Client) -> None:
        self._client = client
        self.url = f"{client.api_base_url}/sdb/rest/workflow/instances"

    async def start_workflow(self, request: StartWorkflowRequest) -> int:
        """Start a workflow and return the new instance id.

        Exactly one of ``workflow_context_name`` and ``workflow_context_id``
        must be set.
        """
        has_name = request.workflow_context_name is not None
        has_id = request.workflow_context_id is not None
        if not has_name and not has_id:
            raise PreservicaClientError.validation(
                "You must pass in either a workflowContextName or a workflowContextId!"
            )
        if has_name and has_id:
            raise PreservicaClientError.validation(
                "Pass in only one of workflowContextName or workflowContextId, not both."
            )

        root = await self._client.send_xml(
            "POST", self.url, body=start_workflow_request_body(request)
        )
        instance_id = decoder.child_node_from_workflow_instance(root, "Id")
        try:
            workflow_id = int(instance_id)
        except ValueError as exc:
            raise PreservicaClientError.decode(
                f"Invalid workflow instance id: {instance_id!r}"
            ) from exc
        log.info("workflow_started", workflow_instance_id=workflow_id)
        return workflow_id
