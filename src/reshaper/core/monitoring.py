"""Prometheus instrumentation.

Two families of series live here: per-route HTTP traffic, recorded by
``MetricsMiddleware``, and per-category delivery outcomes, recorded by the
ingestion pipeline through ``record_delivery`` and ``track_delivery``.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

METRICS_PATH = "/metrics"
NO_TAG = "none"

# ── Deliveries ───────────────────────────────────────────────────────────────

deliveries_total = Counter(
    "deliveries_total",
    "Webhook deliveries by category, outcome status and classification tag",
    ["category", "outcome", "tag"],
)

delivery_processing_seconds = Histogram(
    "delivery_processing_seconds",
    "Wall-clock time to reshape one delivery",
    ["category"],
    buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.5, 1.0),
)

# ── HTTP ─────────────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Requests served, by route template and status",
    ["method", "route", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "Request latency by route template",
    ["method", "route"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)


def record_delivery(category: str, outcome: str, tag: str | None) -> None:
    deliveries_total.labels(category=category, outcome=outcome, tag=tag or NO_TAG).inc()


@contextmanager
def track_delivery(category: str) -> Iterator[None]:
    """Time the enclosed block into ``delivery_processing_seconds``.

    The observation is made even if the block raises.
    """
    series = delivery_processing_seconds.labels(category=category)
    started = time.perf_counter()
    try:
        yield
    finally:
        series.observe(time.perf_counter() - started)


def _route_label(request: Request) -> str:
    # Route template keeps /api/v1/transform/{category} to one series.
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count and time every request except scrapes of the metrics route."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == METRICS_PATH:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        route = _route_label(request)
        http_requests_total.labels(request.method, route, str(response.status_code)).inc()
        http_request_duration_seconds.labels(request.method, route).observe(elapsed)
        return response


def get_metrics_response() -> Response:
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
