"""Configuration utilities for the QR Docs backend."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Tuple, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator


def _env_flag(name: str, default: bool) -> bool:
    """Return a boolean flag derived from environment variables."""

    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_optional(*names: str) -> str | None:
    """Return the first non-blank value among ``names``."""

    for name in names:
        raw = os.getenv(name)
        if raw and raw.strip():
            return raw.strip()
    return None


BASE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = BASE_DIR.parent

MIN_TOKEN_LENGTH = 32
DEFAULT_TTL_SECONDS = 365 * 24 * 60 * 60
DEFAULT_PURGE_INTERVAL_SECONDS = 6 * 60 * 60


def _load_environment() -> None:
    """Load environment variables from a ``.env`` file if present."""

    explicit_path = os.getenv("QRDOCS_ENV_FILE")
    candidates = []

    if explicit_path:
        candidates.append(Path(explicit_path))

    candidates.append(PROJECT_ROOT / ".env")

    for candidate in candidates:
        try_path = candidate.expanduser()
        if try_path.exists():
            load_dotenv(try_path, override=False)


_load_environment()


class LocalStorageConfig(BaseModel):
    """Blobs live in a directory on the local filesystem."""

    kind: Literal["local"] = "local"
    root: Path


class RemoteStorageConfig(BaseModel):
    """Blobs live in an S3-compatible bucket."""

    kind: Literal["s3"] = "s3"
    bucket: str
    prefix: str = ""
    region: str | None = None
    endpoint_url: str | None = None
    timeout_seconds: float = 10.0
    signed_url_ttl_seconds: int = 300


StorageConfig = Union[LocalStorageConfig, RemoteStorageConfig]


class Settings(BaseModel):
    """Application configuration loaded from environment variables."""

    upload_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("UPLOAD_DIR", str(PROJECT_ROOT / "uploads"))
        )
    )
    metadata_path: Path | None = Field(
        default_factory=lambda: (
            Path(os.environ["METADATA_PATH"]) if os.getenv("METADATA_PATH") else None
        )
    )
    max_upload_size: int = Field(
        default_factory=lambda: int(os.getenv("MAX_UPLOAD_SIZE", str(25 * 1024 * 1024)))
    )
    allowed_mimetypes: Tuple[str, ...] = Field(
        default_factory=lambda: tuple(
            mime.strip()
            for mime in os.getenv("ALLOWED_MIMETYPES", "application/pdf").split(",")
            if mime.strip()
        )
    )
    token_length: int = Field(
        default_factory=lambda: int(os.getenv("TOKEN_LENGTH", "80"))
    )
    document_ttl_seconds: int = Field(
        default_factory=lambda: int(
            os.getenv("DOCUMENT_TTL_SECONDS", str(DEFAULT_TTL_SECONDS))
        )
    )
    purge_interval_seconds: float = Field(
        default_factory=lambda: float(
            os.getenv("PURGE_INTERVAL_SECONDS", str(DEFAULT_PURGE_INTERVAL_SECONDS))
        )
    )
    purge_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("PURGE_TIMEOUT_SECONDS", "300"))
    )
    purge_on_startup: bool = Field(
        default_factory=lambda: _env_flag("PURGE_ON_STARTUP", True)
    )
    list_limit: int = Field(
        default_factory=lambda: int(os.getenv("LIST_LIMIT", "500"))
    )
    public_base_url: str | None = Field(
        default_factory=lambda: _env_optional("PUBLIC_BASE_URL", "RENDER_EXTERNAL_URL")
    )
    storage_backend: Literal["local", "s3"] = Field(
        default_factory=lambda: os.getenv("STORAGE_BACKEND", "local").strip().lower()
    )
    s3_bucket: str | None = Field(default_factory=lambda: _env_optional("S3_BUCKET"))
    s3_prefix: str = Field(default_factory=lambda: os.getenv("S3_PREFIX", ""))
    s3_region: str | None = Field(
        default_factory=lambda: _env_optional("S3_REGION", "AWS_REGION")
    )
    s3_endpoint_url: str | None = Field(
        default_factory=lambda: _env_optional("S3_ENDPOINT_URL")
    )
    s3_signed_url_ttl_seconds: int = Field(
        default_factory=lambda: int(os.getenv("S3_SIGNED_URL_TTL_SECONDS", "300"))
    )
    s3_redirect_reads: bool = Field(
        default_factory=lambda: _env_flag("S3_REDIRECT_READS", True)
    )
    storage_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("STORAGE_TIMEOUT_SECONDS", "10"))
    )
    metadata_mirror: bool = Field(
        default_factory=lambda: _env_flag("METADATA_MIRROR", True)
    )
    admin_username: str | None = Field(
        default_factory=lambda: _env_optional("ADMIN_USERNAME")
    )
    admin_password: str | None = Field(
        default_factory=lambda: _env_optional("ADMIN_PASSWORD")
    )
    qr_box_size: int = Field(default_factory=lambda: int(os.getenv("QR_BOX_SIZE", "10")))
    qr_border: int = Field(default_factory=lambda: int(os.getenv("QR_BORDER", "2")))
    host: str = Field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "3000")))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "info"))
    shutdown_grace_seconds: int = Field(
        default_factory=lambda: int(os.getenv("SHUTDOWN_GRACE_SECONDS", "10"))
    )

    @field_validator("upload_dir", mode="after")
    @classmethod
    def _ensure_upload_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value

    @field_validator("allowed_mimetypes", mode="after")
    @classmethod
    def _normalise_mimetypes(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if not value:
            return ("application/pdf",)
        return tuple(dict.fromkeys(item.lower() for item in value))

    @field_validator("token_length", mode="after")
    @classmethod
    def _clamp_token_length(cls, value: int) -> int:
        return max(MIN_TOKEN_LENGTH, value)

    @field_validator("public_base_url", mode="after")
    @classmethod
    def _strip_base_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.rstrip("/") or None

    @field_validator("s3_prefix", mode="after")
    @classmethod
    def _normalise_prefix(cls, value: str) -> str:
        value = value.strip().strip("/")
        return f"{value}/" if value else ""

    @field_validator("list_limit", mode="after")
    @classmethod
    def _positive_limit(cls, value: int) -> int:
        return max(1, value)

    @model_validator(mode="after")
    def _require_bucket(self) -> "Settings":
        if self.storage_backend == "s3" and not self.s3_bucket:
            raise ValueError("S3_BUCKET must be set when STORAGE_BACKEND=s3")
        return self

    @property
    def metadata_file(self) -> Path:
        """Return the path of the persisted token index."""

        return self.metadata_path or self.upload_dir / "tokens.json"

    @property
    def link_base_url(self) -> str:
        """Return the origin embedded in view URLs and QR images."""

        return self.public_base_url or f"http://localhost:{self.port}"

    @property
    def admin_gate_enabled(self) -> bool:
        return bool(self.admin_username and self.admin_password)

    def storage_config(self) -> StorageConfig:
        """Resolve the tagged storage configuration for this process."""

        if self.storage_backend == "s3":
            return RemoteStorageConfig(
                bucket=self.s3_bucket or "",
                prefix=self.s3_prefix,
                region=self.s3_region,
                endpoint_url=self.s3_endpoint_url,
                timeout_seconds=self.storage_timeout_seconds,
                signed_url_ttl_seconds=self.s3_signed_url_ttl_seconds,
            )
        return LocalStorageConfig(root=self.upload_dir)


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached settings so that subsequent calls reload from the environment."""

    get_settings.cache_clear()


__all__ = [
    "LocalStorageConfig",
    "RemoteStorageConfig",
    "Settings",
    "StorageConfig",
    "get_settings",
    "reset_settings_cache",
]
