"""Internal order service process entrypoint (port 8000)."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from topup.common.config import settings
from topup.common.db import SessionLocal
from topup.common.events import build_channel
from topup.common.http import OutboundClient
from topup.common.logging import configure_logging, logger
from topup.common.startup import log_startup_config
from topup.common.tracing import instrument_app, setup_tracing
from topup.services.order.api import build_app
from topup.services.order.service import OrderService

configure_logging()
tracer_provider = setup_tracing(settings.service_name)
log_startup_config(
    settings,
    [
        "postgres_dsn",
        "kafka_bootstrap_servers",
        "message_transport",
        "fulfillment_service_url",
        "fulfillment_timeout_ms",
        "idempotency_check",
    ],
)
channel = build_channel()
service = OrderService(
    SessionLocal,
    OutboundClient(settings.service_name),
    settings.fulfillment_service_url,
    idempotency_check=settings.idempotency_check,
    fulfillment_timeout_ms=settings.fulfillment_timeout_ms,
    service_name=settings.service_name,
)
logger.info("internal order configured idempotency_check=%s", service.idempotency_check)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Consume `payment.paid` for the app lifetime; finish dispatches on shutdown."""

    service.subscribe(channel)
    yield
    await channel.close()
    await service.drain()
    await service.outbound.close()


app = build_app(service, lifespan=lifespan)
instrument_app(app, tracer_provider)
