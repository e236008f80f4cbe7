"""Public upload, view and QR endpoints."""

from __future__ import annotations

from datetime import datetime
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from ..config import Settings, get_settings
from ..dependencies import get_base_url, get_registry
from ..models import DocumentEntry
from ..pages import upload_form_page, upload_result_page
from ..services.qr import PNG_MEDIA_TYPE
from ..services.registry import (
    PDF_MEDIA_TYPE,
    DocumentRegistry,
    build_view_url,
    qr_download_name,
)
from ..services.uploads import read_pdf_upload
from ..utils.errors import StorageError

router = APIRouter(tags=["documents"])


class DocumentPayload(BaseModel):
    """Public view of a registered document."""

    token: str
    original_name: str
    mime_type: str
    size_bytes: int
    has_qr: bool
    created_at: datetime
    expires_at: datetime | None = None
    view_url: str
    qr_url: str

    @classmethod
    def from_entry(cls, entry: DocumentEntry, base_url: str) -> "DocumentPayload":
        return cls(
            token=entry.token,
            original_name=entry.original_name,
            mime_type=entry.mime_type,
            size_bytes=entry.size_bytes,
            has_qr=entry.qr_storage_key is not None,
            created_at=entry.created_at,
            expires_at=entry.expires_at,
            view_url=build_view_url(base_url, entry.token),
            qr_url=f"{base_url.rstrip('/')}/qr/{entry.token}",
        )


def content_disposition(kind: str, filename: str) -> str:
    """Return a Content-Disposition value safe for non-ASCII filenames."""

    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "") or "file"
    return f"{kind}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def upload_form(settings: Settings = Depends(get_settings)) -> str:
    return upload_form_page(settings.max_upload_size)


@router.get("/upload", include_in_schema=False)
def upload_redirect() -> RedirectResponse:
    """Reloading the result page lands back on the form."""

    return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)


@router.post("/upload", response_class=HTMLResponse, status_code=status.HTTP_201_CREATED)
async def upload_from_form(
    *,
    pdf: UploadFile | None = File(None),
    settings: Settings = Depends(get_settings),
    registry: DocumentRegistry = Depends(get_registry),
    base_url: str = Depends(get_base_url),
) -> str:
    """Handle the HTML form upload and render the token and QR."""

    incoming = await read_pdf_upload(pdf, settings=settings)
    entry = await run_in_threadpool(
        registry.create,
        incoming.data,
        incoming.filename,
        incoming.content_type,
        base_url,
    )
    return upload_result_page(entry, build_view_url(base_url, entry.token))


@router.post(
    "/api/documents",
    response_model=DocumentPayload,
    status_code=status.HTTP_201_CREATED,
)
async def upload_document(
    *,
    file: UploadFile | None = File(None),
    settings: Settings = Depends(get_settings),
    registry: DocumentRegistry = Depends(get_registry),
    base_url: str = Depends(get_base_url),
) -> DocumentPayload:
    """Register an uploaded PDF and return its token and links."""

    incoming = await read_pdf_upload(file, settings=settings)
    entry = await run_in_threadpool(
        registry.create,
        incoming.data,
        incoming.filename,
        incoming.content_type,
        base_url,
    )
    return DocumentPayload.from_entry(entry, base_url)


@router.get("/api/documents/{token}", response_model=DocumentPayload)
def get_document(
    token: str,
    *,
    registry: DocumentRegistry = Depends(get_registry),
    base_url: str = Depends(get_base_url),
) -> DocumentPayload:
    return DocumentPayload.from_entry(registry.resolve(token), base_url)


@router.get("/view/{token}", response_class=Response)
def view_document(
    token: str,
    *,
    download: bool = Query(False),
    settings: Settings = Depends(get_settings),
    registry: DocumentRegistry = Depends(get_registry),
) -> Response:
    """Serve the PDF behind ``token``, or redirect to a signed URL."""

    entry = registry.resolve(token)
    if settings.s3_redirect_reads:
        signed = registry.document_url(entry, download=download)
        if signed:
            return RedirectResponse(signed, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    data = registry.read_document(entry)
    return Response(
        content=data,
        media_type=PDF_MEDIA_TYPE,
        headers={
            "Content-Disposition": content_disposition(
                "attachment" if download else "inline", entry.original_name
            ),
            "Cache-Control": "private, no-store",
        },
    )


@router.get("/qr/{token}", response_class=Response)
def get_qr_image(
    token: str,
    *,
    download: bool = Query(False),
    settings: Settings = Depends(get_settings),
    registry: DocumentRegistry = Depends(get_registry),
    base_url: str = Depends(get_base_url),
) -> Response:
    """Serve the QR image; ``download=1`` asks the browser to save it."""

    entry = registry.ensure_qr(token, base_url)
    if not entry.qr_storage_key:
        raise StorageError("QR image is not available")

    if settings.s3_redirect_reads:
        signed = registry.qr_url(entry, download=download)
        if signed:
            return RedirectResponse(signed, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    headers = {"Cache-Control": "private, max-age=300"}
    if download:
        headers["Content-Disposition"] = content_disposition(
            "attachment", qr_download_name(entry)
        )
    return Response(
        content=registry.read_qr(entry), media_type=PNG_MEDIA_TYPE, headers=headers
    )


__all__ = ["DocumentPayload", "content_disposition", "router"]
