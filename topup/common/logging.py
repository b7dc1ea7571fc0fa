"""Structured JSON logging with request/message correlation fields."""

import logging
import secrets
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from topup.common.config import settings


correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")
order_id_ctx: ContextVar[str] = ContextVar("order_id", default="")

_CORRELATION_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def new_correlation_id() -> str:
    """Short opaque token used to stitch log lines across services."""

    return "".join(secrets.choice(_CORRELATION_ALPHABET) for _ in range(6))


class ContextFilter(logging.Filter):
    """Inject service and correlation identifiers into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.correlation_id = correlation_id_ctx.get()
        record.order_id = order_id_ctx.get()
        return True


def configure_logging() -> None:
    """Configure root logger once per service process."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(service_name)s %(correlation_id)s %(order_id)s %(message)s"
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)
    root.addFilter(context_filter)


logger = logging.getLogger("topup")
