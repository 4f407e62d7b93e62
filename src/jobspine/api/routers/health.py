"""
Health router: liveness plus scheduler status.

GET /health
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from jobspine.core.timestamps import to_iso8601, utc_now

router = APIRouter()


@router.get("/health")
def health(request: Request) -> dict[str, Any]:
    """Always 200 while the process serves requests."""
    handle = request.app.state.scheduler_handle
    body: dict[str, Any] = {"status": "ok", "timestamp": to_iso8601(utc_now())}
    if handle.is_initialized:
        body["scheduler"] = handle.get().health()
    else:
        body["scheduler"] = None
    return body
