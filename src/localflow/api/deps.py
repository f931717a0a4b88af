"""
FastAPI dependency injection: the controller singleton.

Usage in routers::

    from localflow.api.deps import Controller

    @router.get("/workflows")
    def list_workflows(controller: Controller):
        ...
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from localflow.controller import WorkflowController
from localflow.errors import ControllerClosedError


def get_controller(request: Request) -> WorkflowController:
    """The controller built in the lifespan (or injected by ``create_app``)."""
    controller: WorkflowController | None = request.app.state.controller
    if controller is None:
        raise ControllerClosedError()
    return controller


Controller = Annotated[WorkflowController, Depends(get_controller)]
