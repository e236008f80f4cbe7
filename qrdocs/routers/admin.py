"""Operator endpoints: listing, revocation, purge and reindex."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from ..dependencies import get_base_url, get_registry, require_admin
from ..services.registry import DocumentRegistry
from .documents import DocumentPayload

router = APIRouter(
    prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)


class PurgeResponse(BaseModel):
    removed: int


class ReindexResponse(BaseModel):
    """Tokens restored from mirror records, tokens minted and orphan keys."""

    restored: list[str] = Field(default_factory=list)
    minted: list[str] = Field(default_factory=list)
    orphans: list[str] = Field(default_factory=list)


@router.get("/documents", response_model=list[DocumentPayload])
def list_documents(
    *,
    limit: int | None = Query(None, ge=1),
    registry: DocumentRegistry = Depends(get_registry),
    base_url: str = Depends(get_base_url),
) -> list[DocumentPayload]:
    """Return registered documents, newest first."""

    return [
        DocumentPayload.from_entry(entry, base_url)
        for entry in registry.list_documents(limit)
    ]


@router.delete("/documents/{token}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    token: str, *, registry: DocumentRegistry = Depends(get_registry)
) -> Response:
    """Revoke a token and delete its PDF and QR image."""

    registry.delete(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/purge", response_model=PurgeResponse)
async def purge_expired(
    *, registry: DocumentRegistry = Depends(get_registry)
) -> PurgeResponse:
    removed = await run_in_threadpool(registry.purge)
    return PurgeResponse(removed=removed)


@router.post("/reindex", response_model=ReindexResponse)
async def reindex_storage(
    *,
    mint_orphans: bool = Query(False),
    registry: DocumentRegistry = Depends(get_registry),
    base_url: str = Depends(get_base_url),
) -> ReindexResponse:
    """Rebuild the token index from mirror records and stored PDFs.

    PDFs without metadata are only given new tokens when ``mint_orphans`` is
    set; links handed out earlier for those files stay invalid either way.
    """

    report = await run_in_threadpool(
        lambda: registry.reindex(mint_orphans=mint_orphans, base_url=base_url)
    )
    return ReindexResponse(**report.to_dict())


__all__ = ["router"]
