"""Health check routes."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Schema describing the health check payload."""

    ok: bool


router = APIRouter(tags=["health"])


@router.get("/health", response_class=PlainTextResponse, summary="Liveness check")
def read_health_plain() -> str:
    return "ok"


@router.get("/api/health", response_model=HealthResponse, summary="Service health status")
def read_health() -> HealthResponse:
    """Return a fixed payload; no storage or metadata access."""

    return HealthResponse(ok=True)


__all__ = ["router", "HealthResponse", "read_health", "read_health_plain"]
