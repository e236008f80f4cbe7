"""Shared fixtures for registry, storage and metadata unit tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Callable

import pytest

from qrdocs.services.metadata import MetadataStore
from qrdocs.services.registry import DocumentRegistry
from qrdocs.services.storage import LocalStorage, StorageBackend, validate_key
from qrdocs.utils.errors import BlobNotFound, StorageError

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF\n"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class MemoryStorage(StorageBackend):
    """Dictionary-backed storage with switchable failures."""

    kind = "memory"

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.fail_puts = False
        self.fail_deletes = False

    def put(self, key: str, data: bytes, content_type: str) -> None:
        validate_key(key)
        if self.fail_puts:
            raise StorageError(f"put refused for {key}")
        self.blobs[key] = data

    def get(self, key: str) -> bytes:
        try:
            return self.blobs[key]
        except KeyError as exc:
            raise BlobNotFound(key) from exc

    def delete(self, key: str) -> bool:
        if self.fail_deletes:
            raise StorageError(f"delete refused for {key}")
        return self.blobs.pop(key, None) is not None

    def list_by_prefix(self, prefix: str, limit: int | None = None) -> list[str]:
        keys = sorted(key for key in self.blobs if key.startswith(prefix))
        return keys if limit is None else keys[:limit]


def fake_qr(url: str) -> bytes:
    return b"QR:" + url.encode("utf-8")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def make_registry(tmp_path: Path, clock: FakeClock) -> Callable[..., DocumentRegistry]:
    """Return a factory building registries over ``tmp_path``."""

    def factory(
        *,
        ttl_seconds: int = 3600,
        storage: StorageBackend | None = None,
        mirror: StorageBackend | None = None,
        metadata_path: Path | None = None,
        **kwargs,
    ) -> DocumentRegistry:
        backend = storage or LocalStorage(tmp_path / "blobs")
        metadata = MetadataStore(
            metadata_path or tmp_path / "meta" / "tokens.json", mirror=mirror
        )
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("qr_renderer", fake_qr)
        return DocumentRegistry(
            storage=backend, metadata=metadata, ttl_seconds=ttl_seconds, **kwargs
        )

    return factory
