"""Tests for the operator endpoints and the optional basic-auth gate."""

from __future__ import annotations

import io
import json
from datetime import datetime
from pathlib import Path

from fastapi.testclient import TestClient

PDF_BYTES = b"%PDF-1.4\n%%EOF\n"


def _upload(client: TestClient, filename: str = "doc.pdf") -> dict:
    response = client.post(
        "/api/documents",
        files={"file": (filename, io.BytesIO(PDF_BYTES), "application/pdf")},
    )
    assert response.status_code == 201
    return response.json()


def test_admin_routes_are_open_without_credentials(client: TestClient) -> None:
    _upload(client)

    response = client.get("/api/admin/documents")
    assert response.status_code == 200
    assert len(response.json()) == 1


def test_admin_gate_requires_matching_credentials(
    admin_auth: tuple[str, str], client: TestClient
) -> None:
    anonymous = client.get("/api/admin/documents")
    assert anonymous.status_code == 401
    assert anonymous.headers["www-authenticate"].startswith("Basic")

    wrong = client.get("/api/admin/documents", auth=("operator", "nope"))
    assert wrong.status_code == 401

    ok = client.get("/api/admin/documents", auth=admin_auth)
    assert ok.status_code == 200

    # public routes stay open
    assert client.get("/api/health").status_code == 200


def test_list_is_newest_first(client: TestClient) -> None:
    first = _upload(client, "first.pdf")
    second = _upload(client, "second.pdf")

    listed = client.get("/api/admin/documents").json()
    assert {item["token"] for item in listed} == {first["token"], second["token"]}
    stamps = [datetime.fromisoformat(item["created_at"]) for item in listed]
    assert stamps == sorted(stamps, reverse=True)

    limited = client.get("/api/admin/documents", params={"limit": 1}).json()
    assert len(limited) == 1


def test_delete_revokes_token_and_removes_blobs(
    client: TestClient, upload_dir: Path
) -> None:
    token = _upload(client, "delete-me.pdf")["token"]
    assert any(upload_dir.rglob("*delete-me.pdf"))
    assert any(upload_dir.rglob("*delete-me.pdf-qr.png"))

    response = client.delete(f"/api/admin/documents/{token}")
    assert response.status_code == 204
    assert response.content == b""

    assert not any(upload_dir.rglob("*delete-me.pdf"))
    assert not any(upload_dir.rglob("*delete-me.pdf-qr.png"))
    assert client.get(f"/view/{token}").status_code == 404

    index = json.loads((upload_dir / "tokens.json").read_text(encoding="utf-8"))
    assert token not in index["byToken"]
    assert index["byFilename"] == {}

    again = client.delete(f"/api/admin/documents/{token}")
    assert again.status_code == 404
    assert again.json()["detail"] == "Document not found"


def test_manual_purge_reports_removed_count(client: TestClient) -> None:
    _upload(client)

    response = client.post("/api/admin/purge")
    assert response.status_code == 200
    assert response.json() == {"removed": 0}


def test_reindex_reports_orphans_without_minting(
    client: TestClient, upload_dir: Path
) -> None:
    orphan = upload_dir / "documents" / "1700000000000-lost.pdf"
    orphan.parent.mkdir(parents=True, exist_ok=True)
    orphan.write_bytes(PDF_BYTES)

    report = client.post("/api/admin/reindex").json()
    assert report == {
        "restored": [],
        "minted": [],
        "orphans": ["documents/1700000000000-lost.pdf"],
    }
    assert client.get("/api/admin/documents").json() == []

    minted = client.post("/api/admin/reindex", params={"mint_orphans": "true"}).json()
    assert len(minted["minted"]) == 1
    token = minted["minted"][0]
    view = client.get(f"/view/{token}")
    assert view.status_code == 200
    assert view.content == PDF_BYTES
    assert client.get(f"/qr/{token}").status_code == 200


def test_invalid_query_parameters_are_bad_requests(client: TestClient) -> None:
    response = client.get("/api/admin/documents", params={"limit": 0})

    assert response.status_code == 400
    assert "limit" in response.json()["detail"]
    assert response.json()["errors"][0]["loc"] == ["query", "limit"]
