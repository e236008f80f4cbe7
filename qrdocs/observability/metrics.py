"""Request and registry metrics collection."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from threading import Lock
from time import perf_counter
from typing import Dict

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp


@dataclass
class RouteStats:
    """Latency aggregate for one route template."""

    count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    def observe(self, duration_ms: float) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.max_ms = max(self.max_ms, duration_ms)


class MetricsRegistry:
    """In-memory counters shared by the middleware and the document registry."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.reset()

    def reset(self) -> None:
        """Reset all counters (useful for tests)."""

        with self._lock:
            self._in_flight = 0
            self._requests_total = 0
            self._status_families: Counter[str] = Counter()
            self._routes: Dict[str, RouteStats] = {}
            self._events: Counter[str] = Counter()

    def record_event(self, name: str, count: int = 1) -> None:
        """Increment a named registry event such as ``documents_created``."""

        with self._lock:
            self._events[name] += count

    def request_started(self) -> None:
        with self._lock:
            self._in_flight += 1

    def request_finished(
        self, method: str, route: str, status_code: int, duration_seconds: float
    ) -> None:
        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)
            self._requests_total += 1
            self._status_families[f"{status_code // 100}xx"] += 1
            stats = self._routes.setdefault(f"{method.upper()} {route}", RouteStats())
            stats.observe(max(duration_seconds * 1000.0, 0.0))

    def snapshot(self) -> Dict[str, object]:
        """Return a point-in-time copy of every counter."""

        with self._lock:
            return {
                "requests_total": self._requests_total,
                "in_flight": self._in_flight,
                "status_codes": dict(self._status_families),
                "routes": {
                    key: {
                        "count": stats.count,
                        "avg_duration_ms": stats.total_ms / (stats.count or 1),
                        "max_duration_ms": stats.max_ms,
                    }
                    for key, stats in self._routes.items()
                },
                "events": dict(self._events),
            }


def _route_template(request: Request) -> str:
    """Return the matched route path so tokens do not explode the key space."""

    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records request metrics."""

    def __init__(self, app: ASGIApp, *, registry: MetricsRegistry | None = None) -> None:
        super().__init__(app)
        self._registry = registry or metrics_registry

    async def dispatch(self, request: Request, call_next):
        start = perf_counter()
        self._registry.request_started()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = getattr(response, "status_code", 200)
            return response
        finally:
            self._registry.request_finished(
                request.method,
                _route_template(request),
                status_code,
                perf_counter() - start,
            )


metrics_registry = MetricsRegistry()

__all__ = [
    "MetricsRegistry",
    "RequestMetricsMiddleware",
    "metrics_registry",
]
