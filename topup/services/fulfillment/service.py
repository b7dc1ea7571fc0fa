"""External fulfillment vendor simulation.

Each request draws a random outcome (10% error). With the external idempotency
check enabled, a request for an order that already has a stored outcome
replays that outcome instead of drawing again.
"""

import asyncio
import random
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import select

from topup.common.logging import logger
from topup.common.metrics import external_outcomes_total
from topup.services.fulfillment.models import ExternalOutcome
from topup.services.fulfillment.schemas import ProcessOrderData, ProcessOrderRequest, ProcessOrderResponse

ERROR_RATE_PERCENT = 10
RANDOM_ERROR_MESSAGE = "Random error occurred"


def format_vendor_timestamp(value: datetime, tz_name: str) -> str:
    """Render `YYYY-MM-DD HH:MM:SS.mmm +HH:MM` in the vendor's timezone."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    local = value.astimezone(ZoneInfo(tz_name))
    offset = local.strftime("%z")
    return f"{local:%Y-%m-%d %H:%M:%S}.{local.microsecond // 1000:03d} {offset[:3]}:{offset[3:]}"


class FulfillmentService:
    """Processes fulfillment requests and stores one outcome row per draw."""

    def __init__(
        self,
        session_factory,
        idempotency_check: bool = False,
        rng: random.Random | None = None,
        tz_name: str = "Asia/Jakarta",
        service_name: str = "external-fulfillment",
    ) -> None:
        self.session_factory = session_factory
        self.idempotency_check = idempotency_check
        self.rng = rng or random.Random()
        self.tz_name = tz_name
        self.service_name = service_name

    def draw_outcome(self) -> tuple[str, str]:
        """Return `(status, error)` for a fresh, non-replayed request."""

        if self.rng.randrange(100) < ERROR_RATE_PERCENT:
            return "error", RANDOM_ERROR_MESSAGE
        return "success", ""

    def find_outcome(self, db, order_id: str) -> ExternalOutcome | None:
        return db.execute(
            select(ExternalOutcome).where(ExternalOutcome.order_id == order_id).order_by(ExternalOutcome.id).limit(1)
        ).scalar_one_or_none()

    def outcomes_for(self, order_id: str) -> list[ExternalOutcome]:
        """All stored outcomes for one order, oldest first."""

        with self.session_factory() as db:
            return list(
                db.execute(
                    select(ExternalOutcome).where(ExternalOutcome.order_id == order_id).order_by(ExternalOutcome.id)
                ).scalars()
            )

    def render(self, outcome: ExternalOutcome) -> ProcessOrderResponse:
        data = None
        if outcome.status == "success":
            data = ProcessOrderData(
                order_id=outcome.order_id,
                vendor_order_id=outcome.id,
                processed_at=format_vendor_timestamp(outcome.processed_at, self.tz_name),
            )
        return ProcessOrderResponse(status=outcome.status, error=outcome.error or "", data=data)

    def store_outcome(self, req: ProcessOrderRequest, status: str, error: str) -> ExternalOutcome:
        """Insert one freshly drawn outcome row; plain INSERT, rows accumulate."""

        outcome = ExternalOutcome(
            order_id=req.order_id,
            destination_phone=req.destination_phone,
            amount=req.amount,
            status=status,
            error=error,
            processed_at=datetime.now(timezone.utc),
        )
        with self.session_factory() as db:
            db.add(outcome)
            db.commit()
        return outcome

    def lookup_outcome(self, order_id: str) -> ExternalOutcome | None:
        with self.session_factory() as db:
            return self.find_outcome(db, order_id)

    async def process_order(self, req: ProcessOrderRequest) -> ProcessOrderResponse:
        """Replay a stored outcome or draw, store and return a new one.

        The lookup and the insert are separate worker-thread calls with no
        lock between them, so concurrent duplicates can both miss the lookup
        and each store an outcome.
        """

        logger.info(
            "processing external fulfillment order_id=%s amount=%s external_idempotency_check=%s",
            req.order_id,
            req.amount,
            self.idempotency_check,
        )
        if self.idempotency_check:
            existing = await asyncio.to_thread(self.lookup_outcome, req.order_id)
            if existing is not None:
                logger.info(
                    "duplicate request detected, returning stored outcome order_id=%s status=%s",
                    req.order_id,
                    existing.status,
                )
                external_outcomes_total.labels(
                    service=self.service_name, status=existing.status, replayed="true"
                ).inc()
                return self.render(existing)
        else:
            logger.warning("external idempotency check is disabled, processing all requests")

        status, error = self.draw_outcome()
        if status == "error":
            logger.info("random error generated order_id=%s", req.order_id)
        outcome = await asyncio.to_thread(self.store_outcome, req, status, error)

        external_outcomes_total.labels(service=self.service_name, status=status, replayed="false").inc()
        logger.info(
            "external fulfillment processed order_id=%s status=%s vendor_order_id=%s",
            req.order_id,
            status,
            outcome.id,
        )
        return self.render(outcome)
