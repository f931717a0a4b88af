"""
Workflow router — submit, list and inspect runs.

POST /workflows
GET  /workflows
GET  /workflows/{name}

The submission body is the raw workflow document, JSON or YAML, whatever
the ``Content-Type`` says.

Tags:
    localflow, api, workflows, submit, inspect
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Path, Request

from localflow.api.deps import Controller
from localflow.api.schemas import WorkflowList
from localflow.document import load_workflow
from localflow.logging import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/workflows")


@router.post("", status_code=201)
async def submit_workflow(request: Request, controller: Controller) -> dict[str, Any]:
    """Submit a workflow document for execution.

    Returns immediately with the Pending snapshot; poll
    ``GET /workflows/{name}`` for progress.

    Raises:
        400 VALIDATION_FAILED: Unparseable document, invalid document or
            missing entrypoint.
        409 CONFLICT: A workflow with this name was already submitted.
        503 UNAVAILABLE: The server is shutting down.

    Example:
        curl -X POST http://localhost:8080/api/v1/workflows \\
          -H "Content-Type: application/yaml" --data-binary @hello.yaml
    """
    body = await request.body()
    workflow = load_workflow(body)
    snapshot = await controller.submit(workflow)
    log.info("workflow_accepted", workflow=workflow.name)
    return snapshot.to_dict()


@router.get("", response_model=WorkflowList)
def list_workflows(controller: Controller) -> WorkflowList:
    """List every submitted workflow with its current status."""
    return WorkflowList(items=[s.to_dict() for s in controller.list()])


@router.get("/{name}")
def get_workflow(
    controller: Controller,
    name: str = Path(..., description="Workflow name"),
) -> dict[str, Any]:
    """Get one workflow with its full node status tree.

    Raises:
        404 NOT_FOUND: No workflow with this name.
    """
    return controller.get(name).to_dict()
