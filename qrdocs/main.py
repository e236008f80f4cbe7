"""QR Docs backend entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, Response

from .config import Settings, get_settings
from .middleware import RequestIdMiddleware, SecurityHeadersMiddleware
from .observability import RequestMetricsMiddleware, metrics_registry
from .pages import error_page
from .routers import api_router
from .services.metadata import MetadataStore
from .services.qr import render_qr
from .services.registry import DocumentRegistry
from .services.scheduler import PurgeScheduler
from .services.storage import build_storage
from .utils.errors import DocumentExpired, RegistryError, StorageError

logger = logging.getLogger("uvicorn.error")

RegistryFactory = Callable[[Settings], DocumentRegistry]

_ERROR_TITLES = {
    400: "Invalid upload",
    404: "Invalid link or PDF not found",
    410: "Link expired",
    413: "File too large",
    415: "Unsupported file type",
    502: "Storage unavailable",
}


def build_registry(settings: Settings) -> DocumentRegistry:
    """Wire storage, metadata and QR rendering from ``settings``."""

    storage = build_storage(settings.storage_config())
    mirror = storage if storage.kind == "s3" and settings.metadata_mirror else None
    return DocumentRegistry(
        storage=storage,
        metadata=MetadataStore(settings.metadata_file, mirror=mirror),
        ttl_seconds=settings.document_ttl_seconds,
        token_length=settings.token_length,
        list_limit=settings.list_limit,
        qr_renderer=partial(
            render_qr, box_size=settings.qr_box_size, border=settings.qr_border
        ),
        on_event=metrics_registry.record_event,
    )


def _announce_admin_gate(settings: Settings) -> None:
    if settings.admin_gate_enabled:
        logger.info("[QRDocs] Admin endpoints require basic authentication")
    else:
        logger.warning(
            "[QRDocs] ADMIN_USERNAME/ADMIN_PASSWORD not set; admin endpoints "
            "(list, delete, purge, reindex, metrics) are open to everyone."
        )


def _wants_json(request: Request) -> bool:
    return request.url.path.startswith("/api/")


def _error_response(request: Request, status_code: int, message: str, extra: dict) -> Response:
    if _wants_json(request):
        return JSONResponse(status_code=status_code, content={"detail": message, **extra})
    title = _ERROR_TITLES.get(status_code, "Request failed")
    return HTMLResponse(error_page(title, message), status_code=status_code)


def create_app(registry_factory: RegistryFactory = build_registry) -> FastAPI:
    """Build the FastAPI application; the registry is created at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        registry = registry_factory(settings)
        scheduler = PurgeScheduler(
            registry.purge,
            interval_seconds=settings.purge_interval_seconds,
            timeout_seconds=settings.purge_timeout_seconds,
            run_on_start=settings.purge_on_startup,
        )
        app.state.registry = registry
        app.state.purge_scheduler = scheduler
        _announce_admin_gate(settings)
        scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()
            logger.info("[QRDocs] Purge scheduler stopped")

    app = FastAPI(title="QR Docs", version="0.1.0", lifespan=lifespan)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(RequestMetricsMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(api_router)

    @app.exception_handler(RegistryError)
    async def handle_registry_error(request: Request, exc: RegistryError) -> Response:
        extra = dict(exc.extra)
        if isinstance(exc, DocumentExpired):
            extra["expires_at"] = exc.expires_at.isoformat()
        if isinstance(exc, StorageError) and exc.status_code >= 500:
            logger.error(
                "Storage failure while processing %s %s: %s",
                request.method,
                request.url.path,
                exc,
            )
        return _error_response(request, exc.status_code, exc.message, extra)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> Response:
        errors = jsonable_encoder(exc.errors())
        message = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
            for error in errors
        )
        return _error_response(request, 400, message or "Invalid request", {"errors": errors})

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> Response:
        """Degrade unexpected failures to a 400 carrying the error message."""

        logger.exception(
            "Unhandled exception while processing %s %s", request.method, request.url.path
        )
        return _error_response(request, 400, str(exc) or exc.__class__.__name__, {})

    return app


app = create_app()


__all__ = ["app", "build_registry", "create_app"]
