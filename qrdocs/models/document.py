"""Document entry model definition."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    """Return the current UTC timestamp."""

    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class DocumentEntry(BaseModel):
    """Represents an uploaded PDF reachable through its access token."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    token: str = Field(min_length=1, description="Opaque access token.")
    original_name: str = Field(description="Filename supplied by the uploader.")
    mime_type: str = Field(default="application/pdf")
    size_bytes: int = Field(default=0, ge=0)
    storage_key: str = Field(description="Backend locator for the PDF blob.")
    qr_storage_key: str | None = Field(
        default=None, description="Backend locator for the rendered QR image."
    )
    created_at: datetime = Field(default_factory=_utcnow)
    expires_at: datetime | None = Field(
        default=None, description="Expiry timestamp; ``None`` means never."
    )

    @field_validator("created_at", "expires_at", mode="after")
    @classmethod
    def _normalise_timezone(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return _as_utc(value)

    @model_validator(mode="after")
    def _check_expiry_order(self) -> "DocumentEntry":
        if self.expires_at is not None and self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        return self

    @property
    def filename(self) -> str:
        """Return the storage filename used by the secondary index."""

        return self.storage_key.rsplit("/", 1)[-1]

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= _as_utc(now)

    def with_qr(self, qr_storage_key: str) -> "DocumentEntry":
        return self.model_copy(update={"qr_storage_key": qr_storage_key})

    def to_record(self) -> dict:
        """Return the JSON-compatible persisted form."""

        return self.model_dump(mode="json", by_alias=True)


def compute_expiry(created_at: datetime, ttl_seconds: int) -> datetime | None:
    """Return ``created_at + ttl`` or ``None`` when expiry is disabled."""

    if ttl_seconds <= 0:
        return None
    return created_at + timedelta(seconds=ttl_seconds)


__all__ = ["DocumentEntry", "compute_expiry"]
