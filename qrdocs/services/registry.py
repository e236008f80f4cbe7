"""Token-indexed registry of uploaded PDFs.

The registry owns the metadata lock. Every read-modify-write of the token
index happens inside it, while blob I/O for cleanup runs outside it. Reads
(:meth:`DocumentRegistry.resolve` and :meth:`DocumentRegistry.list_documents`)
work on the latest persisted snapshot and never mutate state.
"""

from __future__ import annotations

import logging
import re
import secrets
import string
import threading
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable

from ..models import DocumentEntry, compute_expiry
from ..utils.errors import DocumentExpired, DocumentNotFound, StorageError
from .metadata import MetadataIndex, MetadataStore
from .qr import PNG_MEDIA_TYPE, render_qr
from .storage import StorageBackend

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
DOCUMENTS_PREFIX = "documents/"
QR_PREFIX = "qr/"
TOKEN_ALPHABET = string.ascii_letters + string.digits + "_-"

_STORAGE_NAME = re.compile(r"^(\d{10,16})-(?:[0-9a-f]{8}-)?(.+)$")

Clock = Callable[[], datetime]
QrRenderer = Callable[[str], bytes]
EventHook = Callable[[str, int], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def generate_token(length: int = 80) -> str:
    """Return a cryptographically random token of exactly ``length`` characters."""

    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def secure_filename(filename: str) -> str:
    """Return a filesystem-safe version of the provided filename."""

    if not filename:
        return f"document-{secrets.token_hex(8)}.pdf"
    name = Path(filename.replace("\\", "/")).name
    cleaned = re.sub(r"[^A-Za-z0-9._-]", "_", name).lstrip(".")
    return cleaned or f"document-{secrets.token_hex(8)}.pdf"


def build_view_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/view/{token}"


@dataclass
class ReindexReport:
    """Outcome of rebuilding the token index from storage."""

    restored: list[str] = field(default_factory=list)
    minted: list[str] = field(default_factory=list)
    orphans: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return asdict(self)


class DocumentRegistry:
    """Create, resolve, delete and purge token-addressed documents."""

    def __init__(
        self,
        *,
        storage: StorageBackend,
        metadata: MetadataStore,
        ttl_seconds: int,
        token_length: int = 80,
        list_limit: int = 500,
        clock: Clock = _utcnow,
        qr_renderer: QrRenderer = render_qr,
        token_factory: Callable[[], str] | None = None,
        on_event: EventHook | None = None,
    ) -> None:
        self.storage = storage
        self.metadata = metadata
        self.ttl_seconds = ttl_seconds
        self.list_limit = list_limit
        self._clock = clock
        self._qr_renderer = qr_renderer
        self._token_factory = token_factory or (lambda: generate_token(token_length))
        self._on_event = on_event
        self._lock = threading.Lock()

    def _now(self) -> datetime:
        now = self._clock()
        return now if now.tzinfo else now.replace(tzinfo=UTC)

    def _emit(self, name: str, count: int = 1) -> None:
        if self._on_event is not None and count:
            self._on_event(name, count)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    def create(
        self,
        data: bytes,
        original_name: str,
        mime_type: str | None,
        base_url: str,
    ) -> DocumentEntry:
        """Store ``data`` and register it under a fresh token.

        The PDF blob and the index entry are written before returning. QR
        generation happens last and never undoes the registration.
        """

        created_at = self._now()
        safe_name = secure_filename(original_name)
        storage_key = (
            f"{DOCUMENTS_PREFIX}{int(created_at.timestamp() * 1000)}-"
            f"{secrets.token_hex(4)}-{safe_name}"
        )
        self.storage.put(storage_key, data, PDF_MEDIA_TYPE)

        entry = DocumentEntry(
            token=self._token_factory(),
            original_name=original_name or safe_name,
            mime_type=mime_type or PDF_MEDIA_TYPE,
            size_bytes=len(data),
            storage_key=storage_key,
            created_at=created_at,
            expires_at=compute_expiry(created_at, self.ttl_seconds),
        )

        try:
            with self._lock:
                index = self.metadata.read_all(strict=True)
                while entry.token in index:
                    entry = entry.model_copy(update={"token": self._token_factory()})
                index.add(entry)
                self.metadata.write_all(index)
        except StorageError:
            self._delete_blob(storage_key)
            raise
        except OSError as exc:
            self._delete_blob(storage_key)
            raise StorageError(f"Failed to persist token index: {exc}") from exc

        self._mirror_put(entry)
        logger.info(
            "Registered %s (%d bytes) as token %s…",
            entry.original_name,
            entry.size_bytes,
            entry.token[:8],
        )
        self._emit("documents_created")
        return self._attach_qr(entry, base_url)

    def _attach_qr(self, entry: DocumentEntry, base_url: str) -> DocumentEntry:
        qr_key = f"{QR_PREFIX}{entry.filename}-qr.png"
        try:
            image = self._qr_renderer(build_view_url(base_url, entry.token))
            self.storage.put(qr_key, image, PNG_MEDIA_TYPE)
        except Exception:
            logger.exception("QR generation failed for token %s…", entry.token[:8])
            self._emit("qr_failures")
            return entry

        updated = entry.with_qr(qr_key)
        remote_only = False
        if self.metadata.mirrored and entry.token not in self.metadata.read_all():
            remote_only = self.metadata.mirror_get(entry.token) is not None
        try:
            with self._lock:
                index = self.metadata.read_all(strict=True)
                stale = entry.token not in index and not remote_only
                if not stale:
                    index.add(updated)
                    self.metadata.write_all(index)
        except (OSError, StorageError) as exc:
            logger.error(
                "Recording QR for token %s… failed: %s", entry.token[:8], exc
            )
            self._emit("qr_failures")
            self._delete_blob(qr_key)
            return entry
        if stale:
            self._delete_blob(qr_key)
            return entry
        self._mirror_put(updated)
        return updated

    def ensure_qr(self, token: str, base_url: str) -> DocumentEntry:
        """Return the entry for ``token``, rendering its QR image if missing."""

        entry = self.resolve(token)
        if entry.qr_storage_key:
            return entry
        return self._attach_qr(entry, base_url)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def _lookup(self, token: str) -> tuple[DocumentEntry | None, bool]:
        entry = self.metadata.read_all().get(token)
        if entry is not None:
            return entry, True
        return self.metadata.mirror_get(token), False

    def resolve(self, token: str) -> DocumentEntry:
        """Return the live entry for ``token``.

        Raises :class:`DocumentNotFound` for unknown tokens and
        :class:`DocumentExpired` for known tokens past their expiry.
        """

        entry, _ = self._lookup(token)
        if entry is None:
            raise DocumentNotFound(token)
        if entry.is_expired(self._now()):
            raise DocumentExpired(token, entry.expires_at)  # type: ignore[arg-type]
        return entry

    def read_document(self, entry: DocumentEntry) -> bytes:
        return self.storage.get(entry.storage_key)

    def read_qr(self, entry: DocumentEntry) -> bytes:
        if not entry.qr_storage_key:
            raise DocumentNotFound(entry.token)
        return self.storage.get(entry.qr_storage_key)

    def document_url(self, entry: DocumentEntry, *, download: bool = False) -> str | None:
        return self.storage.signed_url(
            entry.storage_key, download=download, filename=entry.original_name
        )

    def qr_url(self, entry: DocumentEntry, *, download: bool = False) -> str | None:
        if not entry.qr_storage_key:
            return None
        return self.storage.signed_url(
            entry.qr_storage_key,
            download=download,
            filename=qr_download_name(entry),
        )

    def list_documents(self, limit: int | None = None) -> list[DocumentEntry]:
        """Return entries newest first, capped at ``limit``."""

        limit = min(limit or self.list_limit, self.list_limit)
        merged = {entry.token: entry for entry in self.metadata.read_all()}
        if self.metadata.mirrored:
            try:
                remote = self.metadata.mirror_list(limit)
            except StorageError as exc:
                logger.warning("Listing mirror records failed: %s", exc)
                remote = []
            for entry in remote:
                merged[entry.token] = entry
        ordered = sorted(
            merged.values(), key=lambda item: (item.created_at, item.token), reverse=True
        )
        return ordered[:limit]

    # ------------------------------------------------------------------
    # Delete / purge
    # ------------------------------------------------------------------
    def delete(self, token: str) -> DocumentEntry:
        """Revoke ``token`` and remove its blobs.

        Raises :class:`DocumentNotFound` when the token is unknown, including on
        a repeated delete.
        """

        entry, local = self._lookup(token)
        if entry is None:
            raise DocumentNotFound(token)

        self._cleanup_blobs(entry)

        with self._lock:
            index = self.metadata.read_all(strict=True)
            removed = index.remove(token)
            if removed is not None:
                self.metadata.write_all(index)

        self._mirror_delete(token)
        if removed is None and local:
            raise DocumentNotFound(token)

        logger.info("Deleted token %s… (%s)", token[:8], entry.original_name)
        self._emit("documents_deleted")
        return entry

    def purge(self) -> int:
        """Remove every expired entry and return how many were removed."""

        scan_time = self._now()
        candidates = [
            entry for entry in self.metadata.read_all() if entry.is_expired(scan_time)
        ]
        if not candidates:
            logger.info("Purge complete: no expired documents")
            return 0

        for entry in candidates:
            self._cleanup_blobs(entry)

        removed: list[str] = []
        with self._lock:
            index = self.metadata.read_all(strict=True)
            commit_time = self._now()
            for entry in candidates:
                current = index.get(entry.token)
                if current is not None and current.is_expired(commit_time):
                    index.remove(entry.token)
                    removed.append(entry.token)
            if removed:
                self.metadata.write_all(index)

        for token in removed:
            self._mirror_delete(token)

        logger.info("Purge complete: removed %d expired documents", len(removed))
        self._emit("documents_purged", len(removed))
        return len(removed)

    # ------------------------------------------------------------------
    # Reindex
    # ------------------------------------------------------------------
    def reindex(self, *, mint_orphans: bool = False, base_url: str | None = None) -> ReindexReport:
        """Rebuild missing index entries from mirror records and stored PDFs.

        PDFs without any metadata are reported as orphans. New tokens are
        issued for them only when ``mint_orphans`` is set, since previously
        shared links for those files cannot be recovered.
        """

        mirrored = self.metadata.mirror_list() if self.metadata.mirrored else []
        blob_keys = self.storage.list_by_prefix(DOCUMENTS_PREFIX)

        report = ReindexReport()
        minted: list[DocumentEntry] = []
        with self._lock:
            index = self.metadata.read_all(strict=True)
            for entry in mirrored:
                if entry.token not in index:
                    index.add(entry)
                    report.restored.append(entry.token)
            known = index.by_filename
            for key in blob_keys:
                if key in known:
                    continue
                if not mint_orphans:
                    report.orphans.append(key)
                    continue
                entry = self._orphan_entry(key, index)
                index.add(entry)
                minted.append(entry)
                report.minted.append(entry.token)
            if report.restored or minted:
                self.metadata.write_all(index)

        for entry in minted:
            self._mirror_put(entry)
            if base_url:
                self._attach_qr(entry, base_url)

        logger.info(
            "Reindex complete: restored=%d minted=%d orphans=%d",
            len(report.restored),
            len(report.minted),
            len(report.orphans),
        )
        return report

    def _orphan_entry(self, key: str, index: MetadataIndex) -> DocumentEntry:
        created_at = self._now()
        name = key[len(DOCUMENTS_PREFIX):]
        match = _STORAGE_NAME.match(name)
        token = self._token_factory()
        while token in index:
            token = self._token_factory()
        return DocumentEntry(
            token=token,
            original_name=match.group(2) if match else name,
            storage_key=key,
            created_at=created_at,
            expires_at=compute_expiry(created_at, self.ttl_seconds),
        )

    # ------------------------------------------------------------------
    # Best-effort helpers
    # ------------------------------------------------------------------
    def _delete_blob(self, key: str) -> bool:
        try:
            self.storage.delete(key)
        except StorageError as exc:
            logger.warning("Could not delete blob %s: %s", key, exc)
            self._emit("blob_cleanup_failures")
            return False
        return True

    def _cleanup_blobs(self, entry: DocumentEntry) -> None:
        self._delete_blob(entry.storage_key)
        if entry.qr_storage_key:
            self._delete_blob(entry.qr_storage_key)

    def _mirror_put(self, entry: DocumentEntry) -> None:
        try:
            self.metadata.mirror_put(entry)
        except StorageError as exc:
            logger.warning("Mirror write failed for token %s…: %s", entry.token[:8], exc)

    def _mirror_delete(self, token: str) -> None:
        try:
            self.metadata.mirror_delete(token)
        except StorageError as exc:
            logger.warning("Mirror delete failed for token %s…: %s", token[:8], exc)


def qr_download_name(entry: DocumentEntry) -> str:
    return f"qr-{Path(entry.original_name).stem or 'document'}.png"


__all__ = [
    "DOCUMENTS_PREFIX",
    "PDF_MEDIA_TYPE",
    "QR_PREFIX",
    "TOKEN_ALPHABET",
    "DocumentRegistry",
    "ReindexReport",
    "build_view_url",
    "generate_token",
    "qr_download_name",
    "secure_filename",
]
