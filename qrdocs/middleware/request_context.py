"""Request identifiers carried through a context variable and into log records."""

from __future__ import annotations

import contextvars
import logging
import re
import secrets

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

_REQUEST_ID: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "qrdocs_request_id", default=None
)

_SAFE_ID = re.compile(r"[A-Za-z0-9._-]{1,64}")


def get_request_id(default: str | None = None) -> str | None:
    """Return the identifier of the request being served, if any."""

    value = _REQUEST_ID.get()
    return default if value is None else value


def _accept_request_id(value: str | None) -> str:
    if value is not None and _SAFE_ID.fullmatch(value.strip()):
        return value.strip()
    return secrets.token_hex(16)


class RequestIdLogFilter(logging.Filter):
    """Expose the current request id to log formatters as ``request_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id("-")
        return True


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Echo a sanitised ``X-Request-ID`` header on every response."""

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID") -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next):
        request_id = _accept_request_id(request.headers.get(self.header_name))
        reset_token = _REQUEST_ID.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _REQUEST_ID.reset(reset_token)
        response.headers[self.header_name] = request_id
        return response


__all__ = ["RequestIdLogFilter", "RequestIdMiddleware", "get_request_id"]
