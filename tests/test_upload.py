"""Tests covering upload, view and QR retrieval."""

from __future__ import annotations

import io
from datetime import UTC, datetime, timedelta
from pathlib import Path

from fastapi.testclient import TestClient

from qrdocs.config import Settings
from qrdocs.main import build_registry, create_app
from qrdocs.services.qr import render_qr
from qrdocs.services.registry import DocumentRegistry

PDF_BYTES = (
    b"%PDF-1.4\n"
    b"1 0 obj\n<< /Type /Catalog >>\nendobj\n"
    b"trailer\n<< /Root 1 0 R >>\n%%EOF\n"
)
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def _post_pdf(
    client: TestClient,
    content: bytes,
    filename: str = "sample.pdf",
    content_type: str = "application/pdf",
):
    return client.post(
        "/api/documents",
        files={"file": (filename, io.BytesIO(content), content_type)},
    )


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


def _client_with_registry(**kwargs) -> TestClient:
    def factory(settings: Settings) -> DocumentRegistry:
        base = build_registry(settings)
        return DocumentRegistry(
            storage=base.storage,
            metadata=base.metadata,
            ttl_seconds=settings.document_ttl_seconds,
            token_length=settings.token_length,
            **kwargs,
        )

    return TestClient(create_app(registry_factory=factory))


def test_upload_returns_token_and_links(client: TestClient) -> None:
    """Uploading a PDF should mint a fixed-length token and both links."""

    response = _post_pdf(client, PDF_BYTES)
    assert response.status_code == 201
    payload = response.json()

    token = payload["token"]
    assert len(token) == 80
    assert payload["original_name"] == "sample.pdf"
    assert payload["size_bytes"] == len(PDF_BYTES)
    assert payload["has_qr"] is True
    assert payload["view_url"] == f"http://localhost:3000/view/{token}"
    assert payload["qr_url"] == f"http://localhost:3000/qr/{token}"
    assert payload["expires_at"] is not None


def test_view_returns_original_bytes(client: TestClient) -> None:
    token = _post_pdf(client, PDF_BYTES).json()["token"]

    response = client.get(f"/view/{token}")
    assert response.status_code == 200
    assert response.content == PDF_BYTES
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"].startswith("inline;")

    download = client.get(f"/view/{token}", params={"download": "1"})
    assert download.headers["content-disposition"].startswith("attachment;")


def test_qr_endpoint_serves_png(client: TestClient) -> None:
    token = _post_pdf(client, PDF_BYTES, filename="report.pdf").json()["token"]

    inline = client.get(f"/qr/{token}")
    assert inline.status_code == 200
    assert inline.headers["content-type"] == "image/png"
    assert inline.content.startswith(PNG_MAGIC)
    assert "content-disposition" not in inline.headers

    download = client.get(f"/qr/{token}?download=1")
    assert download.status_code == 200
    assert 'filename="qr-report.png"' in download.headers["content-disposition"]


def test_document_metadata_endpoint(client: TestClient) -> None:
    token = _post_pdf(client, PDF_BYTES).json()["token"]

    response = client.get(f"/api/documents/{token}")
    assert response.status_code == 200
    assert response.json()["token"] == token

    missing = client.get("/api/documents/not-a-real-token")
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Document not found"


def test_html_form_upload_renders_result_page(client: TestClient) -> None:
    form = client.get("/")
    assert form.status_code == 200
    assert 'name="pdf"' in form.text

    response = client.post(
        "/upload",
        files={"pdf": ("flyer.pdf", io.BytesIO(PDF_BYTES), "application/pdf")},
    )
    assert response.status_code == 201
    assert "text/html" in response.headers["content-type"]
    assert "flyer.pdf" in response.text
    assert "/view/" in response.text
    assert "/qr/" in response.text and "download=1" in response.text


def test_get_upload_redirects_to_form(client: TestClient) -> None:
    response = client.get("/upload", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/"


def test_large_file_is_rejected(client: TestClient, upload_dir: Path) -> None:
    """Files exceeding the configured size limit should be rejected."""

    response = _post_pdf(client, PDF_BYTES + b"A" * 5000, filename="large.pdf")
    assert response.status_code == 413
    assert response.json()["detail"] == "File exceeds maximum allowed size"
    assert not any(upload_dir.rglob("*large.pdf"))


def test_non_pdf_is_rejected(client: TestClient) -> None:
    response = _post_pdf(client, b"hello", filename="notes.txt", content_type="text/plain")
    assert response.status_code == 415
    assert response.json()["detail"] == "Only PDF files are accepted"


def test_pdf_suffix_is_enough(client: TestClient) -> None:
    response = _post_pdf(
        client, PDF_BYTES, filename="scan.PDF", content_type="application/octet-stream"
    )
    assert response.status_code == 201


def test_empty_and_missing_uploads_are_rejected(client: TestClient) -> None:
    empty = _post_pdf(client, b"")
    assert empty.status_code == 400
    assert empty.json()["detail"] == "Uploaded file is empty"

    missing = client.post("/api/documents", data={"other": "value"})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "No file was uploaded"


def test_unknown_token_renders_invalid_link_page(client: TestClient) -> None:
    response = client.get("/view/does-not-exist")
    assert response.status_code == 404
    assert "Invalid link" in response.text


def test_expired_link_is_distinct_from_missing(monkeypatch) -> None:
    monkeypatch.setenv("DOCUMENT_TTL_SECONDS", "1")
    clock = _Clock()

    with _client_with_registry(clock=clock) as client:
        token = _post_pdf(client, PDF_BYTES).json()["token"]
        assert client.get(f"/view/{token}").status_code == 200

        clock.now += timedelta(seconds=2)
        page = client.get(f"/view/{token}")
        assert page.status_code == 410
        assert "Link expired" in page.text
        assert "2026-01-01 00:00:01 UTC" in page.text

        api = client.get(f"/api/documents/{token}")
        assert api.status_code == 410
        assert api.json()["expires_at"].startswith("2026-01-01T00:00:01")


def test_qr_failure_keeps_document_and_retries_on_read() -> None:
    calls: list[str] = []

    def flaky_renderer(url: str) -> bytes:
        calls.append(url)
        if len(calls) == 1:
            raise RuntimeError("renderer unavailable")
        return render_qr(url)

    with _client_with_registry(qr_renderer=flaky_renderer) as client:
        payload = _post_pdf(client, PDF_BYTES).json()
        assert payload["has_qr"] is False
        token = payload["token"]

        assert client.get(f"/view/{token}").status_code == 200

        qr = client.get(f"/qr/{token}")
        assert qr.status_code == 200
        assert qr.content.startswith(PNG_MAGIC)
        assert client.get(f"/api/documents/{token}").json()["has_qr"] is True
        assert calls == [f"http://localhost:3000/view/{token}"] * 2


def test_invoice_scenario(monkeypatch) -> None:
    """365-day TTL, 2 MB invoice: the QR encodes exactly the public view URL."""

    monkeypatch.setenv("DOCUMENT_TTL_SECONDS", str(365 * 24 * 3600))
    monkeypatch.setenv("MAX_UPLOAD_SIZE", str(3 * 1024 * 1024))
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://docs.example.com/")
    rendered: dict[str, bytes] = {}

    def recording_renderer(url: str) -> bytes:
        rendered[url] = render_qr(url)
        return rendered[url]

    invoice = PDF_BYTES + b"0" * (2 * 1024 * 1024)

    with _client_with_registry(qr_renderer=recording_renderer) as client:
        payload = _post_pdf(client, invoice, filename="invoice.pdf").json()
        token = payload["token"]
        view_url = f"https://docs.example.com/view/{token}"

        assert len(token) == 80
        assert payload["view_url"] == view_url
        created = datetime.fromisoformat(payload["created_at"])
        expires = datetime.fromisoformat(payload["expires_at"])
        assert expires - created == timedelta(days=365)

        view = client.get(f"/view/{token}")
        assert view.headers["content-type"] == "application/pdf"
        assert view.content == invoice

        qr = client.get(f"/qr/{token}")
        assert qr.headers["content-type"] == "image/png"
        assert list(rendered) == [view_url]
        assert qr.content == rendered[view_url]


def test_qr_links_ignore_the_request_host_header() -> None:
    rendered: list[str] = []

    def flaky_renderer(url: str) -> bytes:
        rendered.append(url)
        if len(rendered) == 1:
            raise RuntimeError("renderer unavailable")
        return render_qr(url)

    with _client_with_registry(qr_renderer=flaky_renderer) as client:
        payload = client.post(
            "/api/documents",
            files={"file": ("sample.pdf", io.BytesIO(PDF_BYTES), "application/pdf")},
            headers={"Host": "evil.example"},
        ).json()
        token = payload["token"]
        assert payload["view_url"] == f"http://localhost:3000/view/{token}"

        qr = client.get(f"/qr/{token}", headers={"Host": "evil.example"})
        assert qr.status_code == 200

    assert rendered == [f"http://localhost:3000/view/{token}"] * 2
