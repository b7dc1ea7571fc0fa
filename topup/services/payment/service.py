"""Payment trigger handling with deliberately redundant event publishing.

A trigger publishes the `payment.paid` event one to three times (70/20/10)
to exercise at-least-once delivery downstream, then stores the payment with
insert-or-ignore so repeated triggers keep a single record per order.
"""

import asyncio
import random
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from topup.common.events import PAYMENT_PAID_TOPIC, PaymentPaidMessage
from topup.common.db import insert_or_ignore
from topup.common.logging import logger
from topup.common.metrics import payment_events_published_total, payment_publish_multiplicity
from topup.services.payment.models import PaymentRecord
from topup.services.payment.schemas import PaymentTriggerRequest, PaymentTriggerResponse

PUBLISH_COUNTS = [1, 2, 3]
PUBLISH_WEIGHTS = [0.70, 0.20, 0.10]


class PaymentService:
    """Accepts payment triggers and fans them out to the message channel."""

    def __init__(
        self,
        session_factory,
        channel,
        delay_ms: int = 200,
        rng: random.Random | None = None,
        service_name: str = "internal-payment",
    ) -> None:
        self.session_factory = session_factory
        self.channel = channel
        self.delay_ms = delay_ms
        self.rng = rng or random.Random()
        self.service_name = service_name

    def publish_count(self) -> int:
        return self.rng.choices(population=PUBLISH_COUNTS, weights=PUBLISH_WEIGHTS, k=1)[0]

    async def publish_copies(self, message: PaymentPaidMessage, count: int) -> int:
        """Publish `count` independent copies; return how many were accepted."""

        published = 0
        for copy in range(1, count + 1):
            try:
                await self.channel.publish(PAYMENT_PAID_TOPIC, message)
            except Exception as exc:
                payment_events_published_total.labels(
                    service=self.service_name, topic=PAYMENT_PAID_TOPIC, result="failed"
                ).inc()
                logger.error(
                    "failed to publish payment event order_id=%s copy=%s error=%s",
                    message.order_id,
                    copy,
                    exc,
                )
                continue
            published += 1
            payment_events_published_total.labels(
                service=self.service_name, topic=PAYMENT_PAID_TOPIC, result="published"
            ).inc()
            logger.info(
                "published to %s order_id=%s paid_amount=%s copy=%s/%s",
                PAYMENT_PAID_TOPIC,
                message.order_id,
                message.paid_amount,
                copy,
                count,
            )
        return published

    def store_payment(self, order_id: str, paid_amount: int, paid_at: datetime) -> None:
        """Insert the payment once per order; later inserts are no-ops."""

        try:
            with self.session_factory() as db:
                db.execute(
                    insert_or_ignore(
                        db,
                        PaymentRecord,
                        {"order_id": order_id, "paid_amount": paid_amount, "paid_at": paid_at},
                        conflict_column="order_id",
                    )
                )
                db.commit()
        except SQLAlchemyError as exc:
            logger.error("failed to store payment order_id=%s error=%s", order_id, exc)

    async def trigger_payment(self, req: PaymentTriggerRequest) -> PaymentTriggerResponse:
        """Delay, publish 1-3 copies, store the payment, report success.

        Publish and storage failures are logged only; the caller always sees
        success once the delay has elapsed.
        """

        logger.info("processing payment order_id=%s amount=%s", req.order_id, req.paid_amount)
        await asyncio.sleep(self.delay_ms / 1000)
        logger.info("payment validation against internal order api result=success")

        count = self.publish_count()
        payment_publish_multiplicity.labels(service=self.service_name).observe(count)
        paid_at = datetime.now(timezone.utc)
        message = PaymentPaidMessage(
            order_id=req.order_id,
            paid_amount=req.paid_amount,
            paid_at=paid_at,
            correlation_id=req.correlation_id,
        )
        logger.info("publish count order_id=%s count=%s", req.order_id, count)
        await self.publish_copies(message, count)
        self.store_payment(req.order_id, req.paid_amount, paid_at)
        return PaymentTriggerResponse(status="success")
