"""Validation and buffering of incoming PDF uploads."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import UploadFile, status

from ..config import Settings
from ..utils.errors import DocumentValidationError

CHUNK_SIZE = 1024 * 1024  # 1MB


@dataclass(frozen=True)
class IncomingPdf:
    """A fully buffered upload that passed validation."""

    data: bytes
    filename: str
    content_type: str


def is_pdf_upload(filename: str | None, content_type: str | None, settings: Settings) -> bool:
    """Accept by declared content type or by ``.pdf`` suffix."""

    if content_type and content_type.split(";")[0].strip().lower() in settings.allowed_mimetypes:
        return True
    return bool(filename) and filename.lower().endswith(".pdf")


async def read_pdf_upload(upload: UploadFile | None, *, settings: Settings) -> IncomingPdf:
    """Return the upload's bytes, enforcing type and size limits."""

    if upload is None or not upload.filename:
        raise DocumentValidationError("No file was uploaded")

    try:
        if not is_pdf_upload(upload.filename, upload.content_type, settings):
            raise DocumentValidationError(
                "Only PDF files are accepted",
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            )

        chunks: list[bytes] = []
        total_bytes = 0
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            total_bytes += len(chunk)
            if total_bytes > settings.max_upload_size:
                raise DocumentValidationError(
                    "File exceeds maximum allowed size",
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    extra={"max_upload_size": settings.max_upload_size},
                )
            chunks.append(chunk)
    finally:
        await upload.close()

    if total_bytes == 0:
        raise DocumentValidationError("Uploaded file is empty")

    return IncomingPdf(
        data=b"".join(chunks),
        filename=upload.filename,
        content_type=upload.content_type or "application/pdf",
    )


__all__ = ["CHUNK_SIZE", "IncomingPdf", "is_pdf_upload", "read_pdf_upload"]
