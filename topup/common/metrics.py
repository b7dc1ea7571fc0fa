"""Prometheus metric definitions shared across services."""

from time import perf_counter

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


orders_created_total = Counter("orders_created_total", "Total orders created", ["service", "operator"])
payment_triggers_total = Counter("payment_triggers_total", "Total payment trigger requests", ["service"])
payment_events_published_total = Counter(
    "payment_events_published_total",
    "Payment events handed to the message channel",
    ["service", "topic", "result"],
)
payment_publish_multiplicity = Histogram(
    "payment_publish_multiplicity",
    "Copies published per payment trigger",
    ["service"],
    buckets=(1, 2, 3),
)
payment_deliveries_consumed_total = Counter(
    "payment_deliveries_consumed_total",
    "Payment event deliveries handled by the order service",
    ["service", "topic"],
)
fulfillment_dispatch_total = Counter(
    "fulfillment_dispatch_total",
    "Outbound fulfillment dispatch attempts by outcome",
    ["service", "outcome"],
)
duplicate_dispatch_skipped_total = Counter(
    "duplicate_dispatch_skipped_total",
    "Dispatches suppressed by the client-side idempotency check",
    ["service"],
)
external_outcomes_total = Counter(
    "external_outcomes_total",
    "External fulfillment outcomes returned",
    ["service", "status", "replayed"],
)
outbound_calls_total = Counter(
    "outbound_calls_total",
    "Outbound HTTP calls by classified outcome",
    ["service", "target", "outcome"],
)
retries_total = Counter("retries_total", "Retry count", ["service", "dependency"])
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")


def add_http_metrics_middleware(app, service_name: str) -> None:
    """Record request count and latency for every HTTP call served by `app`."""

    @app.middleware("http")
    async def metrics_middleware(request, call_next):
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()
