"""
Health router — runtime reachability for container healthchecks.

GET /healthz
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from localflow import __version__
from localflow.api.deps import Controller
from localflow.api.schemas import HealthResponse

router = APIRouter()


@router.get("/healthz", response_model=HealthResponse)
async def healthz(controller: Controller):
    """Report server and runtime health.

    Returns 200 while the runtime is reachable, 503 otherwise.
    """
    health = await controller.adapter.health()
    body = HealthResponse(
        status="healthy" if health.healthy else "unhealthy",
        version=__version__,
        runtime=health.to_dict(),
        active_workflows=len(controller.active_runs),
    )
    return JSONResponse(status_code=200 if health.healthy else 503, content=body.model_dump())
