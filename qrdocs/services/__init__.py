"""Service layer for the QR Docs backend."""
