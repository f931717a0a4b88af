"""
HTTP transport for localflow.

Provides a FastAPI application factory exposing submission, inspection and
health endpoints. All execution logic lives in
:class:`localflow.controller.WorkflowController`; this package handles only
HTTP concerns: body parsing, serialisation and error mapping.

Quick start::

    from localflow.api import create_app

    app = create_app()  # ready for uvicorn

Tags:
    localflow, api, REST, FastAPI, transport-layer
"""

from localflow.api.app import create_app

__all__ = ["create_app"]
