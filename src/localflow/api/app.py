"""
FastAPI application factory.

``create_app()`` wires middleware, routers, error handlers and lifespan
events into a single ``FastAPI`` instance.

Manifesto:
    The app factory is the single composition root. The controller and
    its runtime adapter are built in the lifespan, so importing the module
    never touches a container runtime.

Tags:
    localflow, api, app-factory, composition-root, FastAPI
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from localflow import __version__
from localflow.api.middleware.errors import localflow_error_handler, unhandled_exception_handler
from localflow.api.middleware.request_log import RequestLoggingMiddleware
from localflow.controller import WorkflowController
from localflow.errors import LocalflowError
from localflow.logging import configure_logging, get_logger
from localflow.settings import LocalflowSettings, get_settings

log = get_logger("localflow.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build the controller, drain it on exit."""
    settings: LocalflowSettings = app.state.settings
    configure_logging(level=settings.log_level, format=settings.log_format)
    log.info("localflow API starting", version=app.version, runtime=settings.runtime)

    controller: WorkflowController | None = app.state.controller
    if controller is None:
        controller = WorkflowController.from_settings(settings)
        health = await controller.adapter.health()
        if not health.healthy and settings.require_healthy_runtime:
            await controller.adapter.close()
            log.error("runtime_unavailable", **health.to_dict())
            raise RuntimeError(
                f"runtime '{health.runtime}' is not available: {health.message}"
            )
        log.info("runtime_connected", **health.to_dict())
        app.state.controller = controller

    yield

    log.info("localflow API shutting down", active=len(controller.active_runs))
    await controller.shutdown()


def create_app(
    settings: LocalflowSettings | None = None,
    controller: WorkflowController | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : LocalflowSettings | None
        Override settings (useful for testing). When ``None`` the cached
        singleton from :func:`get_settings` is used.
    controller : WorkflowController | None
        Pre-built controller (useful for testing). When ``None`` one is built
        from settings at startup.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )
    app.state.settings = settings
    app.state.controller = controller

    # ── Middleware ───────────────────────────────────────────────────
    app.add_middleware(RequestLoggingMiddleware)

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(LocalflowError, localflow_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from localflow.api.routers import health, workflows

    # Health at root level (no prefix) for container healthchecks
    app.include_router(health.router, tags=["health"])
    app.include_router(workflows.router, prefix=settings.api_prefix, tags=["workflows"])

    return app
