"""Order service logic.

Creates phone-credit orders, consumes `payment.paid` deliveries (one handler
call per delivery, duplicates included) and dispatches fulfillment to the
external vendor. The client-side idempotency check gates dispatch on the
number of audit rows already written for the order. Database steps run in
worker threads, one call per step, with nothing locking the count against
the following insert: tightly concurrent duplicates can all see a count
above one and none of them dispatch, and concurrent dispatches can store the
same attempt number.
"""

import asyncio
import os
import random
import time
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from topup.common.events import PAYMENT_PAID_TOPIC, PaymentPaidMessage
from topup.common.http import CallResult, OutboundClient
from topup.common.logging import correlation_id_ctx, logger, new_correlation_id, order_id_ctx
from topup.common.metrics import (
    duplicate_dispatch_skipped_total,
    fulfillment_dispatch_total,
    orders_created_total,
    payment_deliveries_consumed_total,
)
from topup.common.state_machine import FULFILMENT, PAID, PENDING, validate_transition
from topup.services.fulfillment.schemas import ProcessOrderRequest
from topup.services.order.models import FulfillmentAttempt, Order

OPERATOR_ADMIN_FEES = {"indosat": 100, "xl": 200, "three": 300}
OPERATOR_PHONE_PREFIXES = {"indosat": "0815-000-00", "xl": "0817-000-00", "three": "0896-000-00"}
ORDER_AMOUNTS = [1000, 2000, 3000, 4000, 5000, 6000, 7000, 8000, 9000]


def new_order_id() -> str:
    """Time-ordered UUIDv7 string: 48-bit unix milliseconds then random bits."""

    unix_ms = time.time_ns() // 1_000_000
    value = (unix_ms & ((1 << 48) - 1)) << 80 | int.from_bytes(os.urandom(10), "big")
    value = (value & ~(0xF << 76)) | (0x7 << 76)
    value = (value & ~(0x3 << 62)) | (0x2 << 62)
    return str(uuid.UUID(int=value))


def placeholder_payload(order_id: str) -> dict:
    """Audit payload recorded for a delivery, before any dispatch happens."""

    return {"order_id": order_id, "amount": 0, "destination_phone": ""}


def generate_order(rng: random.Random) -> Order:
    """Build a random pending order; fee and phone prefix follow the operator."""

    operator = rng.choice(list(OPERATOR_ADMIN_FEES))
    admin_fee = OPERATOR_ADMIN_FEES[operator]
    amount = rng.choice(ORDER_AMOUNTS)
    destination_phone = f"{OPERATOR_PHONE_PREFIXES[operator]}{rng.randint(1, 99):02d}"
    return Order(
        id=new_order_id(),
        amount=amount,
        admin_fee=admin_fee,
        type="phone_credit",
        operator=operator,
        destination_phone=destination_phone,
        total=amount + admin_fee,
        status=PENDING,
    )


class OrderService:
    """Owns the order state machine and the fulfillment dispatch path."""

    def __init__(
        self,
        session_factory,
        outbound: OutboundClient,
        fulfillment_url: str,
        idempotency_check: bool = False,
        fulfillment_timeout_ms: int = 5000,
        rng: random.Random | None = None,
        service_name: str = "internal-order",
    ) -> None:
        self.session_factory = session_factory
        self.outbound = outbound
        self.fulfillment_url = fulfillment_url.rstrip("/")
        self.idempotency_check = idempotency_check
        self.fulfillment_timeout_ms = fulfillment_timeout_ms
        self.rng = rng or random.Random()
        self.service_name = service_name
        self._dispatch_tasks: set[asyncio.Task] = set()

    def create_order(self) -> Order:
        """Generate and persist one pending order.

        Storage errors propagate; the HTTP layer turns them into a 500.
        """

        order = generate_order(self.rng)
        logger.info(
            "creating order order_id=%s operator=%s amount=%s admin_fee=%s",
            order.id,
            order.operator,
            order.amount,
            order.admin_fee,
        )
        with self.session_factory() as db:
            db.add(order)
            db.commit()
        orders_created_total.labels(service=self.service_name, operator=order.operator).inc()
        logger.info("order created successfully order_id=%s", order.id)
        return order

    def get_order(self, order_id: str) -> Order | None:
        with self.session_factory() as db:
            return db.get(Order, order_id)

    def attempts_for(self, order_id: str) -> list[FulfillmentAttempt]:
        with self.session_factory() as db:
            return list(
                db.execute(
                    select(FulfillmentAttempt)
                    .where(FulfillmentAttempt.order_id == order_id)
                    .order_by(FulfillmentAttempt.id)
                ).scalars()
            )

    def count_attempts(self, order_id: str) -> int:
        with self.session_factory() as db:
            return db.execute(
                select(func.count()).select_from(FulfillmentAttempt).where(FulfillmentAttempt.order_id == order_id)
            ).scalar_one()

    def record_attempt(self, order_id: str, attempt_number: int, payload: dict) -> None:
        with self.session_factory() as db:
            db.add(FulfillmentAttempt(order_id=order_id, attempt_number=attempt_number, payload=payload))
            db.commit()

    def set_status(self, order_id: str, new_status: str) -> None:
        """Write `new_status` unconditionally, warning on undeclared transitions."""

        with self.session_factory() as db:
            current = db.execute(select(Order.status).where(Order.id == order_id)).scalar_one_or_none()
            if current is None:
                logger.warning("status update for unknown order order_id=%s status=%s", order_id, new_status)
            else:
                try:
                    validate_transition(current, new_status)
                except ValueError as exc:
                    logger.warning("out-of-order status change order_id=%s detail=%s", order_id, exc)
            db.execute(update(Order).where(Order.id == order_id).values(status=new_status))
            db.commit()

    async def handle_delivery(self, body: bytes) -> asyncio.Task | None:
        """Channel entrypoint: decode one delivery and process it."""

        try:
            message = PaymentPaidMessage.decode(body)
        except ValueError as exc:
            logger.error("failed to decode payment message error=%s", exc)
            return None
        correlation_id_ctx.set(message.correlation_id or new_correlation_id())
        order_id_ctx.set(message.order_id)
        return await self.handle_payment_paid(message)


    async def handle_payment_paid(self, message: PaymentPaidMessage) -> asyncio.Task | None:
        """Process one delivery of a payment event.

        Returns the detached dispatch task, or None when dispatch was skipped
        or the delivery could not be applied.
        """

        order_id = message.order_id
        correlation_id = message.correlation_id or correlation_id_ctx.get() or new_correlation_id()
        payment_deliveries_consumed_total.labels(service=self.service_name, topic=PAYMENT_PAID_TOPIC).inc()
        logger.info("received %s message order_id=%s", PAYMENT_PAID_TOPIC, order_id)

        try:
            await asyncio.to_thread(self.set_status, order_id, PAID)
        except SQLAlchemyError as exc:
            logger.error("failed to update order status order_id=%s error=%s", order_id, exc)
            return None
        logger.info("order status updated to paid order_id=%s", order_id)

        try:
            await asyncio.to_thread(self.record_attempt, order_id, 1, placeholder_payload(order_id))
        except SQLAlchemyError as exc:
            logger.error("failed to insert fulfillment attempt order_id=%s error=%s", order_id, exc)

        if self.idempotency_check:
            try:
                attempt_count = await asyncio.to_thread(self.count_attempts, order_id)
            except SQLAlchemyError as exc:
                logger.error("failed to count fulfillment attempts order_id=%s error=%s", order_id, exc)
            else:
                if attempt_count > 1:
                    duplicate_dispatch_skipped_total.labels(service=self.service_name).inc()
                    logger.info(
                        "order already processed for fulfillment order_id=%s attempt_count=%s",
                        order_id,
                        attempt_count,
                    )
                    return None
        else:
            logger.warning("idempotency check is disabled, dispatching every delivery")

        return self.start_dispatch(order_id, correlation_id)

    def start_dispatch(self, order_id: str, correlation_id: str) -> asyncio.Task:
        """Run `dispatch_fulfillment` detached from the message handler."""

        task = asyncio.create_task(self.dispatch_fulfillment(order_id, correlation_id))
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._dispatch_tasks.discard)
        return task

    @property
    def pending_dispatches(self) -> int:
        return len(self._dispatch_tasks)

    async def drain(self) -> None:
        """Wait for every in-flight dispatch task."""

        while self._dispatch_tasks:
            await asyncio.gather(*list(self._dispatch_tasks), return_exceptions=True)


    async def dispatch_fulfillment(self, order_id: str, correlation_id: str) -> CallResult | None:
        """Record an attempt, call the vendor once and mark `fulfilment` on 2xx.

        The attempt number is counted and then inserted in two separate
        calls, so concurrent dispatches for one order can store the same
        number. Failures leave the order in `paid`; nothing retries it.
        """

        try:
            order = await asyncio.to_thread(self.get_order, order_id)
        except SQLAlchemyError as exc:
            logger.error("failed to get order for fulfillment order_id=%s error=%s", order_id, exc)
            return None
        if order is None:
            logger.error("failed to get order for fulfillment order_id=%s error=not found", order_id)
            return None

        request = ProcessOrderRequest(
            order_id=order.id,
            destination_phone=order.destination_phone,
            amount=order.amount,
            correlation_id=correlation_id,
        )
        try:
            attempt_number = await asyncio.to_thread(self.count_attempts, order_id) + 1
        except SQLAlchemyError:
            attempt_number = 1
        logger.info("processing fulfillment attempt no. %s order_id=%s", attempt_number, order_id)

        payload = request.model_dump(by_alias=True)
        try:
            await asyncio.to_thread(self.record_attempt, order_id, attempt_number, payload)
        except SQLAlchemyError as exc:
            logger.error("failed to insert fulfillment attempt order_id=%s error=%s", order_id, exc)

        logger.info("calling external fulfillment service order_id=%s", order_id)
        result = await self.outbound.post_json(
            f"{self.fulfillment_url}/process-order",
            payload,
            timeout=self.fulfillment_timeout_ms / 1000,
            target="external-fulfillment",
        )
        fulfillment_dispatch_total.labels(service=self.service_name, outcome=result.outcome.value).inc()
        if not result.ok:
            logger.error(
                "failed to call external fulfillment order_id=%s outcome=%s attempt_number=%s error=%s",
                order_id,
                result.outcome.value,
                attempt_number,
                result.error,
            )
            return result

        vendor_status = result.body.get("status") if isinstance(result.body, dict) else None
        if vendor_status != "success":
            logger.warning("external fulfillment reported status=%s order_id=%s", vendor_status, order_id)
        try:
            await asyncio.to_thread(self.set_status, order_id, FULFILMENT)
        except SQLAlchemyError as exc:
            logger.error("failed to update order status to fulfilment order_id=%s error=%s", order_id, exc)
            return result
        logger.info("order fulfillment processed order_id=%s attempt_number=%s", order_id, attempt_number)
        return result

    def subscribe(self, channel) -> None:
        channel.subscribe(PAYMENT_PAID_TOPIC, "internal-order-payment-paid", self.handle_delivery)
