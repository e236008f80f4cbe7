from __future__ import annotations

from datetime import datetime
from typing import Any, Dict


class RegistryError(Exception):
    """Base class for errors surfaced by the document registry."""

    status_code = 400

    def __init__(self, message: str, extra: Dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class DocumentValidationError(RegistryError):
    """Raised when an upload is not an acceptable PDF."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 400,
        extra: Dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, extra)
        self.status_code = status_code


class DocumentNotFound(RegistryError):
    """Raised when a token does not map to any document."""

    status_code = 404

    def __init__(self, token: str) -> None:
        super().__init__("Document not found")
        self.token = token


class DocumentExpired(RegistryError):
    """Raised when a token is known but its entry has lapsed."""

    status_code = 410

    def __init__(self, token: str, expires_at: datetime) -> None:
        super().__init__(
            f"Link expired on {expires_at.strftime('%Y-%m-%d %H:%M:%S UTC')}"
        )
        self.token = token
        self.expires_at = expires_at


class StorageError(RegistryError):
    """Raised when the storage backend fails."""

    status_code = 502


class BlobNotFound(StorageError):
    """Raised when a storage key has no blob behind it."""

    status_code = 404

    def __init__(self, key: str) -> None:
        super().__init__(f"Blob not found: {key}")
        self.key = key


class InvalidKeyError(StorageError):
    """Raised when a storage key escapes the backend namespace."""

    status_code = 400

    def __init__(self, key: str) -> None:
        super().__init__(f"Invalid storage key: {key!r}")
        self.key = key


class MetadataCorruption(Exception):
    """Raised when the persisted token index cannot be parsed."""

    def __init__(self, message: str, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


__all__ = [
    "BlobNotFound",
    "DocumentExpired",
    "DocumentNotFound",
    "DocumentValidationError",
    "InvalidKeyError",
    "MetadataCorruption",
    "RegistryError",
    "StorageError",
]
