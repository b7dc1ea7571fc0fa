"""Internal payment service process entrypoint (port 8001)."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from topup.common.config import settings
from topup.common.db import SessionLocal
from topup.common.events import build_channel
from topup.common.logging import configure_logging, logger
from topup.common.startup import log_startup_config
from topup.common.tracing import instrument_app, setup_tracing
from topup.services.payment.api import build_app
from topup.services.payment.service import PaymentService

configure_logging()
tracer_provider = setup_tracing(settings.service_name)
log_startup_config(
    settings,
    ["postgres_dsn", "kafka_bootstrap_servers", "message_transport", "payment_timeout_ms"],
)
service = PaymentService(
    SessionLocal,
    build_channel(),
    delay_ms=settings.payment_timeout_ms,
    service_name=settings.service_name,
)
logger.info("internal payment configured payment_timeout_ms=%s", service.delay_ms)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Close the message channel with the app lifecycle."""

    yield
    await service.channel.close()


app = build_app(service, lifespan=lifespan)
instrument_app(app, tracer_provider)
