"""OpenTelemetry wiring for the three services and their outbound calls."""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from topup.common.config import settings
from topup.common.logging import logger

UNTRACED_ROUTES = "health,metrics"


def setup_tracing(service_name: str, endpoint: str | None = None) -> TracerProvider:
    """Register the process tracer provider and trace outbound httpx calls.

    An empty endpoint keeps spans in-process (nothing is exported).
    """

    endpoint = settings.otel_exporter_otlp_endpoint if endpoint is None else endpoint
    provider = TracerProvider(resource=Resource.create({"service.name": service_name, "service.namespace": "topup"}))
    if endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    else:
        logger.info("span export disabled service=%s", service_name)
    trace.set_tracer_provider(provider)
    HTTPXClientInstrumentor().instrument(tracer_provider=provider)
    return provider


def instrument_app(app: FastAPI, provider: TracerProvider | None = None) -> None:
    # Health checks and metric scrapes would drown out request spans.
    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, excluded_urls=UNTRACED_ROUTES)
