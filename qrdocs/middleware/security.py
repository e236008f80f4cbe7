"""Default security headers for HTML pages, PDFs and QR images."""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

DEFAULT_CSP = (
    "default-src 'self'; img-src 'self' data: https:; "
    "style-src 'self' 'unsafe-inline'; frame-ancestors 'self'; form-action 'self'"
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach hardened defaults without overriding headers set by a route."""

    def __init__(
        self, app: ASGIApp, *, content_security_policy: str | None = DEFAULT_CSP
    ) -> None:
        super().__init__(app)
        self._defaults = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "SAMEORIGIN",
            "Referrer-Policy": "no-referrer",
            "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
        }
        if content_security_policy:
            self._defaults["Content-Security-Policy"] = content_security_policy

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        for name, value in self._defaults.items():
            response.headers.setdefault(name, value)
        return response


__all__ = ["DEFAULT_CSP", "SecurityHeadersMiddleware"]
