"""API router package."""

from fastapi import APIRouter

from .admin import router as admin_router
from .documents import router as documents_router
from .health import router as health_router
from .observability import router as observability_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(documents_router)
api_router.include_router(admin_router)
api_router.include_router(observability_router)

__all__ = ["api_router"]
