"""Shared helpers for the QR Docs backend."""
