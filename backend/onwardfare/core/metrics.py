"""
OnwardFare - Prometheus Metrics
Request latency, Duffel call latency, search outcomes

Metrics:
- http_requests_total: Total HTTP requests
- http_request_duration_seconds: Request latency histogram
- onwardfare_external_api_duration_seconds: Duffel call latency per operation
- onwardfare_external_api_calls_total: Duffel call counts per operation/status
- onwardfare_destination_searches_total: Per-destination search outcomes
- onwardfare_search_outcomes_total: Whole-search outcomes
"""

import time
import logging
from typing import Callable
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

logger = logging.getLogger("OnwardFare-Metrics")

UNMATCHED_ENDPOINT = "<unmatched>"

# ═══════════════════════════════════════════════════════════════════
# METRIC DEFINITIONS
# ═══════════════════════════════════════════════════════════════════

# HTTP Metrics
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

# External API Metrics
EXTERNAL_API_DURATION = Histogram(
    "onwardfare_external_api_duration_seconds",
    "External API call duration",
    ["operation"],  # create_offer_request, list_offers, get_offer, create_order
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0, 30.0]
)

EXTERNAL_API_CALLS = Counter(
    "onwardfare_external_api_calls_total",
    "Total external API calls",
    ["operation", "status"]
)

# Search Metrics
DESTINATION_SEARCHES = Counter(
    "onwardfare_destination_searches_total",
    "Per-destination search attempts",
    ["outcome"]  # candidate, empty, filtered, error
)

SEARCH_OUTCOMES = Counter(
    "onwardfare_search_outcomes_total",
    "Fare search outcomes",
    ["outcome"]  # quoted, no_offers, price_ceiling, origin_not_allowed
)


# ═══════════════════════════════════════════════════════════════════
# MIDDLEWARE
# ═══════════════════════════════════════════════════════════════════

class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for automatic request metrics
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip metrics endpoint itself
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        endpoint = self._endpoint_label(request)

        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            status = str(response.status_code)
        finally:
            duration = time.perf_counter() - start_time

            HTTP_REQUESTS_TOTAL.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).inc()

            HTTP_REQUEST_DURATION.labels(
                method=method,
                endpoint=endpoint
            ).observe(duration)

        return response

    def _endpoint_label(self, request: Request) -> str:
        """
        Route template of the matched route; anything unrouted shares one label
        """
        for route in request.app.routes:
            match, _ = route.matches(request.scope)
            if match == Match.FULL:
                return getattr(route, "path", UNMATCHED_ENDPOINT)
        return UNMATCHED_ENDPOINT


# ═══════════════════════════════════════════════════════════════════
# CONTEXT MANAGERS
# ═══════════════════════════════════════════════════════════════════

@contextmanager
def track_external_api(operation: str):
    """
    Context manager to track Duffel calls

    Usage:
        with track_external_api("create_order"):
            response = await http.post("/air/orders", json=body)
    """
    start_time = time.perf_counter()
    status = "success"

    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        EXTERNAL_API_DURATION.labels(operation=operation).observe(duration)
        EXTERNAL_API_CALLS.labels(operation=operation, status=status).inc()

        if duration > 10.0:
            logger.warning(f"⚠️ Slow Duffel call: {operation} took {duration:.2f}s")


def record_destination_outcome(outcome: str) -> None:
    DESTINATION_SEARCHES.labels(outcome=outcome).inc()


def record_search_outcome(outcome: str) -> None:
    SEARCH_OUTCOMES.labels(outcome=outcome).inc()


# ═══════════════════════════════════════════════════════════════════
# METRICS ENDPOINT
# ═══════════════════════════════════════════════════════════════════

async def metrics_endpoint():
    """
    Prometheus metrics endpoint
    Returns metrics in Prometheus text format
    """
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )


# ═══════════════════════════════════════════════════════════════════
# SETUP FUNCTION
# ═══════════════════════════════════════════════════════════════════

def setup_metrics(app):
    """
    Setup Prometheus metrics for FastAPI app

    Usage in main.py:
        from onwardfare.core.metrics import setup_metrics
        setup_metrics(app)
    """
    app.add_middleware(PrometheusMiddleware)
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Monitoring"])

    logger.info("✅ Prometheus metrics enabled at /metrics")


__all__ = [
    "setup_metrics",
    "PrometheusMiddleware",
    "metrics_endpoint",
    "track_external_api",
    "record_destination_outcome",
    "record_search_outcome",
    "HTTP_REQUESTS_TOTAL",
    "HTTP_REQUEST_DURATION",
    "EXTERNAL_API_DURATION",
    "EXTERNAL_API_CALLS",
    "DESTINATION_SEARCHES",
    "SEARCH_OUTCOMES",
]
