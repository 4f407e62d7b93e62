"""
Error handling: maps engine errors to RFC 7807 responses.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from jobspine.api.schemas.common import ErrorDetail, ProblemDetail
from jobspine.core.errors import JobSpineError, ValidationError
from jobspine.core.logging import get_logger

log = get_logger(__name__)

# ── Error code → HTTP status mapping ─────────────────────────────────────

ERROR_CODE_TO_STATUS: dict[str, int] = {
    "VALIDATION_FAILED": 400,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "NOT_INITIALIZED": 500,
    "TRANSIENT": 503,
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
    errors: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    """Build a RFC 7807 JSON error response."""
    body = ProblemDetail(
        title=title,
        status=status,
        code=code,
        detail=detail,
        instance=instance,
    )
    if errors:
        body.errors = [ErrorDetail(**e) for e in errors]
    return JSONResponse(
        status_code=status,
        content=body.model_dump(),
        media_type="application/problem+json",
    )


async def jobspine_error_handler(request: Request, exc: JobSpineError) -> JSONResponse:
    """Map a :class:`JobSpineError` to its status code."""
    status = status_for_error_code(exc.code)
    errors = None
    if isinstance(exc, ValidationError) and exc.field:
        errors = [{"code": exc.code, "message": exc.message, "field": exc.field}]
    if status >= 500:
        log.error("request_failed", path=request.url.path, **exc.to_dict())
    else:
        log.info("request_rejected", path=request.url.path, code=exc.code, message=exc.message)
    return problem_response(
        status=status,
        title=exc.message,
        code=exc.code,
        instance=request.url.path,
        errors=errors,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and query strings are 400 VALIDATION_FAILED."""
    errors = [
        {
            "code": "VALIDATION_FAILED",
            "message": err.get("msg", "invalid value"),
            "field": ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")) or None,
        }
        for err in exc.errors()
    ]
    return problem_response(
        status=400,
        title="Request validation failed",
        code="VALIDATION_FAILED",
        instance=request.url.path,
        errors=errors,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions: returns 500 with ProblemDetail."""
    log.exception("unhandled_exception", path=request.url.path)
    return problem_response(
        status=500,
        title="Internal Server Error",
        detail=str(exc) if request.app.state.settings.debug else "An unexpected error occurred.",
        instance=request.url.path,
    )
