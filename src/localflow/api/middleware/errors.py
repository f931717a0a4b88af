"""
Error handlers — map engine errors to RFC 7807 responses.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from localflow.api.schemas import ErrorDetail, ProblemDetail
from localflow.errors import InvalidWorkflowError, LocalflowError
from localflow.logging import get_logger

log = get_logger(__name__)

# ── Error code → HTTP status mapping ─────────────────────────────────────

ERROR_CODE_TO_STATUS: dict[str, int] = {
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "VALIDATION_FAILED": 400,
    "UNAVAILABLE": 503,
    "INTERNAL": 500,
}


def status_for_error_code(code: str) -> int:
    """Resolve an error code to HTTP status, defaulting to 500."""
    return ERROR_CODE_TO_STATUS.get(code, 500)


def problem_response(
    *,
    status: int,
    title: str,
    code: str = "INTERNAL",
    detail: str = "",
    instance: str = "",
    errors: list[ErrorDetail] | None = None,
) -> JSONResponse:
    """Build a RFC 7807 JSON error response."""
    body = ProblemDetail(
        title=title,
        status=status,
        code=code,
        detail=detail,
        instance=instance,
        errors=errors or [],
    )
    return JSONResponse(
        status_code=status,
        content=body.model_dump(),
        media_type="application/problem+json",
    )


async def localflow_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map a :class:`LocalflowError` onto its HTTP status."""
    assert isinstance(exc, LocalflowError)
    status = status_for_error_code(exc.code)
    errors = None
    if isinstance(exc, InvalidWorkflowError) and exc.field:
        errors = [ErrorDetail(code=exc.code, message=exc.message, field=exc.field)]
    log.warning("request_rejected", path=request.url.path, code=exc.code, error_message=exc.message)
    return problem_response(
        status=status,
        title=exc.message,
        code=exc.code,
        instance=request.url.path,
        errors=errors,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — returns 500 with ProblemDetail."""
    log.error("request_failed", path=request.url.path, error_type=type(exc).__name__, exc_info=exc)
    return problem_response(
        status=500,
        title="Internal Server Error",
        detail=str(exc) if request.app.state.settings.debug else "An unexpected error occurred.",
        instance=request.url.path,
    )
