"""Routes that expose operational observability data."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from qrdocs import __version__

from ..dependencies import get_registry, require_admin
from ..observability import metrics_registry
from ..services.registry import DocumentRegistry

router = APIRouter(
    prefix="/api", tags=["observability"], dependencies=[Depends(require_admin)]
)


@router.get("/metrics")
def read_metrics() -> dict[str, object]:
    """Return the current request and registry metrics snapshot."""

    return metrics_registry.snapshot()


@router.get("/status")
def read_status(
    request: Request, registry: DocumentRegistry = Depends(get_registry)
) -> dict[str, object]:
    """Return an aggregated operational status payload."""

    scheduler = getattr(request.app.state, "purge_scheduler", None)
    return {
        "app": {"version": __version__},
        "storage": {"kind": registry.storage.kind, "ok": registry.storage.ping()},
        "metadata": {
            "documents": len(registry.metadata.read_all()),
            "mirrored": registry.metadata.mirrored,
        },
        "purge": {
            "running": bool(scheduler and scheduler.running),
            "runs": scheduler.runs if scheduler else 0,
        },
        "metrics": metrics_registry.snapshot(),
    }


__all__ = ["router"]
