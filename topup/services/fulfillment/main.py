"""External fulfillment vendor process entrypoint (port 9000)."""

from topup.common.config import settings
from topup.common.db import SessionLocal
from topup.common.logging import configure_logging, logger
from topup.common.startup import log_startup_config
from topup.common.tracing import instrument_app, setup_tracing
from topup.services.fulfillment.api import build_app
from topup.services.fulfillment.service import FulfillmentService

configure_logging()
tracer_provider = setup_tracing(settings.service_name)
log_startup_config(settings, ["postgres_dsn", "external_idempotency_check", "timezone"])
service = FulfillmentService(
    SessionLocal,
    idempotency_check=settings.external_idempotency_check,
    tz_name=settings.timezone,
    service_name=settings.service_name,
)
logger.info("external fulfillment configured external_idempotency_check=%s", service.idempotency_check)

app = build_app(service)
instrument_app(app, tracer_provider)
