"""Data models for the QR Docs backend."""

from .document import DocumentEntry, compute_expiry

__all__ = ["DocumentEntry", "compute_expiry"]
