"""Blob storage backends for uploaded PDFs and rendered QR images.

Two implementations share the :class:`StorageBackend` interface:

* :class:`LocalStorage` keeps blobs under a root directory. Keys are relative
  POSIX paths and are validated before any filesystem access so a key can
  never resolve outside the root.
* :class:`S3Storage` keeps blobs in an S3-compatible bucket under an optional
  prefix. Reads can be served through short-lived presigned URLs.
"""

from __future__ import annotations

import logging
import os
import secrets
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import LocalStorageConfig, RemoteStorageConfig, StorageConfig
from ..utils.errors import BlobNotFound, InvalidKeyError, StorageError

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def validate_key(key: str) -> str:
    """Return ``key`` unchanged if it is a safe relative storage key."""

    if not key or "\x00" in key or "\\" in key:
        raise InvalidKeyError(key)
    path = PurePosixPath(key)
    if path.is_absolute() or any(part in ("..", ".") for part in path.parts):
        raise InvalidKeyError(key)
    return key


class StorageBackend(ABC):
    """Capability interface over opaque string keys."""

    kind: str = "abstract"

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> None:
        """Store ``data`` under ``key``, replacing any existing blob."""

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return the blob stored under ``key`` or raise :class:`BlobNotFound`."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``; return ``False`` when nothing was stored there."""

    @abstractmethod
    def list_by_prefix(self, prefix: str, limit: int | None = None) -> list[str]:
        """Return up to ``limit`` keys starting with ``prefix`` in sorted order."""

    def signed_url(
        self, key: str, *, download: bool = False, filename: str | None = None
    ) -> str | None:
        """Return a short-lived direct URL for ``key`` if the backend supports it."""

        return None

    def ping(self) -> bool:
        """Return ``True`` when the backend is reachable."""

        return True


class LocalStorage(StorageBackend):
    """Store blobs as files under ``root``."""

    kind = "local"

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        """Resolve ``key`` to a path guaranteed to live inside ``root``."""

        validate_key(key)
        candidate = (self.root / key).resolve()
        if self.root not in candidate.parents:
            raise InvalidKeyError(key)
        return candidate

    def put(self, key: str, data: bytes, content_type: str) -> None:
        target = self.path_for(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            temp_path = target.with_name(f".{target.name}.{secrets.token_hex(8)}.tmp")
            try:
                with temp_path.open("wb") as buffer:
                    buffer.write(data)
                    buffer.flush()
                    os.fsync(buffer.fileno())
                temp_path.replace(target)
            finally:
                if temp_path.exists():
                    temp_path.unlink()
        except OSError as exc:
            raise StorageError(f"Failed to write {key}: {exc}") from exc

    def get(self, key: str) -> bytes:
        target = self.path_for(key)
        try:
            return target.read_bytes()
        except FileNotFoundError as exc:
            raise BlobNotFound(key) from exc
        except OSError as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc

    def delete(self, key: str) -> bool:
        target = self.path_for(key)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete {key}: {exc}") from exc
        return True

    def list_by_prefix(self, prefix: str, limit: int | None = None) -> list[str]:
        keys: list[str] = []
        for path in self.root.rglob("*"):
            if not path.is_file() or path.name.endswith(".tmp"):
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        keys.sort()
        return keys if limit is None else keys[:limit]

    def ping(self) -> bool:
        return self.root.is_dir()


class S3Storage(StorageBackend):
    """Store blobs as objects in an S3-compatible bucket."""

    kind = "s3"

    def __init__(
        self,
        bucket: str,
        *,
        prefix: str = "",
        region: str | None = None,
        endpoint_url: str | None = None,
        timeout_seconds: float = 10.0,
        signed_url_ttl_seconds: int = 300,
        client: Any | None = None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix
        self.signed_url_ttl_seconds = signed_url_ttl_seconds
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            config=Config(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                retries={"max_attempts": 3, "mode": "standard"},
            ),
        )

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}{validate_key(key)}"

    @staticmethod
    def _is_missing(exc: ClientError) -> bool:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        return code in _MISSING_CODES

    def put(self, key: str, data: bytes, content_type: str) -> None:
        object_key = self._object_key(key)
        try:
            self._client.put_object(
                Bucket=self.bucket, Key=object_key, Body=data, ContentType=content_type
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to upload {key}: {exc}") from exc

    def get(self, key: str) -> bytes:
        object_key = self._object_key(key)
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=object_key)
            return response["Body"].read()
        except ClientError as exc:
            if self._is_missing(exc):
                raise BlobNotFound(key) from exc
            raise StorageError(f"Failed to download {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to download {key}: {exc}") from exc

    def delete(self, key: str) -> bool:
        object_key = self._object_key(key)
        try:
            self._client.head_object(Bucket=self.bucket, Key=object_key)
        except ClientError as exc:
            if self._is_missing(exc):
                return False
            raise StorageError(f"Failed to delete {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to delete {key}: {exc}") from exc
        try:
            self._client.delete_object(Bucket=self.bucket, Key=object_key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to delete {key}: {exc}") from exc
        return True

    def list_by_prefix(self, prefix: str, limit: int | None = None) -> list[str]:
        keys: list[str] = []
        paginator = self._client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(
                Bucket=self.bucket, Prefix=f"{self.prefix}{prefix}"
            ):
                for item in page.get("Contents", []):
                    keys.append(item["Key"][len(self.prefix):])
                    if limit is not None and len(keys) >= limit:
                        return sorted(keys)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to list {prefix!r}: {exc}") from exc
        return sorted(keys)

    def signed_url(
        self, key: str, *, download: bool = False, filename: str | None = None
    ) -> str | None:
        params: dict[str, str] = {"Bucket": self.bucket, "Key": self._object_key(key)}
        if download:
            name = filename or PurePosixPath(key).name
            params["ResponseContentDisposition"] = f'attachment; filename="{name}"'
        try:
            return self._client.generate_presigned_url(
                "get_object", Params=params, ExpiresIn=self.signed_url_ttl_seconds
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to sign {key}: {exc}") from exc

    def ping(self) -> bool:
        try:
            self._client.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError):
            return False
        return True


def build_storage(config: StorageConfig) -> StorageBackend:
    """Instantiate the backend described by ``config``."""

    if isinstance(config, RemoteStorageConfig):
        logger.info(
            "Using S3 storage bucket=%s prefix=%r", config.bucket, config.prefix
        )
        return S3Storage(
            config.bucket,
            prefix=config.prefix,
            region=config.region,
            endpoint_url=config.endpoint_url,
            timeout_seconds=config.timeout_seconds,
            signed_url_ttl_seconds=config.signed_url_ttl_seconds,
        )
    if isinstance(config, LocalStorageConfig):
        logger.info("Using local storage root=%s", config.root)
        return LocalStorage(config.root)
    raise TypeError(f"Unsupported storage config: {config!r}")


__all__ = [
    "LocalStorage",
    "S3Storage",
    "StorageBackend",
    "build_storage",
    "validate_key",
]
