"""Test configuration for QR Docs."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Generator

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from qrdocs.config import reset_settings_cache  # noqa: E402
from qrdocs.observability import metrics_registry  # noqa: E402

PDF_BYTES = (
    b"%PDF-1.4\n"
    b"1 0 obj\n<< /Type /Catalog >>\nendobj\n"
    b"trailer\n<< /Root 1 0 R >>\n%%EOF\n"
)

_ISOLATED_VARS = (
    "ADMIN_USERNAME",
    "ADMIN_PASSWORD",
    "PUBLIC_BASE_URL",
    "RENDER_EXTERNAL_URL",
    "STORAGE_BACKEND",
    "METADATA_PATH",
    "DOCUMENT_TTL_SECONDS",
    "PORT",
)


@pytest.fixture(autouse=True)
def _isolate_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Generator[None, None, None]:
    """Provide isolated configuration for each test."""

    for name in _ISOLATED_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("MAX_UPLOAD_SIZE", str(4096))
    monkeypatch.setenv("PURGE_ON_STARTUP", "0")
    monkeypatch.setenv("PURGE_INTERVAL_SECONDS", "3600")
    reset_settings_cache()
    metrics_registry.reset()
    yield
    reset_settings_cache()
    metrics_registry.reset()


@pytest.fixture()
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    """Return a test client for the FastAPI application."""

    from qrdocs.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def admin_auth(monkeypatch: pytest.MonkeyPatch) -> tuple[str, str]:
    """Enable the admin gate and return working credentials."""

    monkeypatch.setenv("ADMIN_USERNAME", "operator")
    monkeypatch.setenv("ADMIN_PASSWORD", "s3cret")
    reset_settings_cache()
    return ("operator", "s3cret")
