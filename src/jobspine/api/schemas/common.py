"""
Response envelopes shared by every jobspine endpoint.

Successful calls wrap their payload in ``{"data": ..., "elapsed_ms": ...}``;
``GET /jobs`` adds a ``page`` block.  Failures are RFC 7807 problem
documents carrying the jobspine error ``code`` so clients can branch on
it without parsing ``title``.

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ErrorDetail(BaseModel):
    """One failed check on the request (usually a body or query field)."""

    code: str = Field(description="Check that failed, e.g. 'missing' or 'int_parsing'")
    message: str = Field(description="What was wrong with the value")
    field: str | None = Field(default=None, description="Dotted location, e.g. 'body.repeat.cron'")


class ProblemDetail(BaseModel):
    """RFC 7807 problem document returned for every 4xx/5xx.

    ``code`` values and their statuses:

    ======================  ======
    VALIDATION_FAILED       400
    NOT_FOUND               404
    CONFLICT                409
    NOT_INITIALIZED         500
    INTERNAL                500
    TRANSIENT               503
    ======================  ======

    ``VALIDATION_FAILED`` also covers a taken dedupe key and an
    unparseable cron expression.
    """

    type: str = Field(default="about:blank")
    title: str = Field(description="The error message")
    status: int = Field(description="HTTP status, repeated in the body")
    code: str = Field(default="INTERNAL", description="jobspine error code")
    detail: str = Field(default="")
    instance: str = Field(default="", description="Path of the request that failed")
    errors: list[ErrorDetail] = Field(default_factory=list, description="Per-field failures")


class PageMeta(BaseModel):
    """Where a ``GET /jobs`` page sits in the full filtered result."""

    total: int = Field(description="Jobs matching the filter, ignoring skip/limit")
    limit: int
    offset: int = Field(description="Value of ?skip=")
    has_more: bool = Field(description="More jobs follow this page")

    @classmethod
    def from_result(cls, total: int, limit: int, offset: int) -> PageMeta:
        return cls(total=total, limit=limit, offset=offset, has_more=offset + limit < total)


class SuccessResponse(BaseModel, Generic[T]):
    """Envelope for a single job, a stats block or a delete result."""

    data: T
    elapsed_ms: float = Field(default=0.0, description="Time spent in the handler")


class PagedResponse(BaseModel, Generic[T]):
    """Envelope for one page of jobs."""

    data: list[T]
    page: PageMeta
    elapsed_ms: float = Field(default=0.0, description="Time spent in the handler")
