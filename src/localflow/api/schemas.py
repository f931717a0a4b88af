"""
API schemas — response envelopes and RFC 7807 errors.

Successful workflow responses are the snapshot dictionaries produced by
:meth:`localflow.models.WorkflowSnapshot.to_dict`, so documents read back
in the same shape they were submitted in. Errors use :class:`ProblemDetail`.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Structured error detail for field-level errors."""

    code: str = Field(description="Machine-readable error code (e.g., 'VALIDATION_FAILED')")
    message: str = Field(description="Human-readable error description")
    field: str | None = Field(default=None, description="Field path if error is field-specific")


class ProblemDetail(BaseModel):
    """RFC 7807 «Problem Details for HTTP APIs».

    Error Codes:
        - ``VALIDATION_FAILED`` (400): Unparseable or invalid workflow
        - ``NOT_FOUND`` (404): Workflow does not exist
        - ``CONFLICT`` (409): Workflow name already used
        - ``UNAVAILABLE`` (503): Server shutting down
        - ``INTERNAL`` (500): Unexpected server error

    Example:
        {
            "type": "about:blank",
            "title": "workflow 'hello' already exists",
            "status": 409,
            "code": "CONFLICT",
            "detail": "",
            "instance": "/api/v1/workflows",
            "errors": []
        }
    """

    type: str = Field(default="about:blank", description="Error type URI")
    title: str = Field(description="Short human-readable error summary")
    status: int = Field(description="HTTP status code")
    code: str = Field(default="INTERNAL", description="Machine-readable error code")
    detail: str = Field(default="", description="Human-readable explanation")
    instance: str = Field(default="", description="URI of the failing request")
    errors: list[ErrorDetail] = Field(default_factory=list)


class WorkflowList(BaseModel):
    """``GET /workflows`` response."""

    items: list[dict[str, Any]] = Field(default_factory=list, description="Workflow snapshots")


class HealthResponse(BaseModel):
    """``GET /healthz`` response."""

    status: str = Field(description="'healthy' or 'unhealthy'")
    version: str
    runtime: dict[str, Any] = Field(default_factory=dict)
    active_workflows: int = 0
