"""Payment event schema + at-least-once message channels.

Two transports share one small interface (`publish`, `subscribe`, `close`):
Kafka for the deployed services and an in-process asyncio channel for
single-process runs and tests. Both deliver every publish independently, so a
payload published three times reaches the handler three times.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from datetime import datetime

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from pydantic import BaseModel

from topup.common.config import settings
from topup.common.logging import logger


PAYMENT_PAID_TOPIC = "payment.paid"

Handler = Callable[[bytes], Awaitable[None]]


class PaymentPaidMessage(BaseModel):
    """Payload carried on the `payment.paid` topic."""

    order_id: str
    paid_amount: int
    paid_at: datetime
    correlation_id: str = ""

    def encode(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def decode(cls, body: bytes) -> "PaymentPaidMessage":
        return cls.model_validate(json.loads(body.decode("utf-8")))


class KafkaChannel:
    """Lazy Kafka producer plus one consumer loop per subscription."""

    def __init__(self, bootstrap_servers: str | None = None) -> None:
        self.bootstrap_servers = bootstrap_servers or settings.kafka_bootstrap_servers
        self._producer: AIOKafkaProducer | None = None
        self._consumer_tasks: list[asyncio.Task] = []

    async def producer(self) -> AIOKafkaProducer:
        if self._producer is None:
            self._producer = AIOKafkaProducer(bootstrap_servers=self.bootstrap_servers)
            await self._producer.start()
        return self._producer

    async def publish(self, topic: str, message: PaymentPaidMessage) -> None:
        producer = await self.producer()
        await producer.send_and_wait(topic, message.encode())

    def subscribe(self, topic: str, group_id: str, handler: Handler) -> None:
        self._consumer_tasks.append(
            asyncio.create_task(consume_forever(self.bootstrap_servers, topic, group_id, handler))
        )

    async def close(self) -> None:
        for task in self._consumer_tasks:
            task.cancel()
        await asyncio.gather(*self._consumer_tasks, return_exceptions=True)
        self._consumer_tasks.clear()
        if self._producer:
            await self._producer.stop()
            self._producer = None


async def make_consumer(bootstrap_servers: str, topic: str, group_id: str) -> AIOKafkaConsumer:
    """Create a configured Kafka consumer for one topic/group."""

    consumer = AIOKafkaConsumer(
        topic,
        bootstrap_servers=bootstrap_servers,
        group_id=group_id,
        auto_offset_reset="earliest",
        enable_auto_commit=False,
    )
    await consumer.start()
    return consumer


async def consume_forever(bootstrap_servers: str, topic: str, group_id: str, handler: Handler) -> None:
    """Continuously consume one topic and pass raw message bodies to `handler`.

    Offsets are committed after each batch, so a crash between handling and
    commit redelivers the batch. Errors in individual messages are logged and
    processing continues.
    """

    while True:
        consumer = None
        try:
            consumer = await make_consumer(bootstrap_servers, topic, group_id)
            while True:
                results = await consumer.getmany(timeout_ms=500, max_records=50)
                for _, messages in results.items():
                    for msg in messages:
                        try:
                            await handler(msg.value)
                        except Exception as exc:
                            logger.error(
                                "handler_error topic=%s group=%s offset=%s error=%s",
                                topic,
                                group_id,
                                msg.offset,
                                exc,
                            )
                await consumer.commit()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("consumer_loop_error topic=%s group=%s error=%s", topic, group_id, exc)
            await asyncio.sleep(2)
        finally:
            if consumer is not None:
                await consumer.stop()
            await asyncio.sleep(0)


class InMemoryChannel:
    """In-process channel: every publish becomes its own handler task."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._pending: set[asyncio.Task] = set()

    async def publish(self, topic: str, message: PaymentPaidMessage) -> None:
        body = message.encode()
        handlers = self._handlers.get(topic, [])
        if not handlers:
            logger.debug("no subscribers topic=%s", topic)
        for handler in handlers:
            task = asyncio.create_task(self._deliver(topic, handler, body))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    def subscribe(self, topic: str, group_id: str, handler: Handler) -> None:
        del group_id
        self._handlers.setdefault(topic, []).append(handler)

    async def _deliver(self, topic: str, handler: Handler, body: bytes) -> None:
        try:
            await handler(body)
        except Exception as exc:
            logger.error("handler_error topic=%s error=%s", topic, exc)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every delivery scheduled so far has been handled."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        self._handlers.clear()


def build_channel(transport: str | None = None):
    """Return the channel selected by `MESSAGE_TRANSPORT`."""

    transport = transport or settings.message_transport
    if transport == "kafka":
        return KafkaChannel()
    if transport == "memory":
        return InMemoryChannel()
    raise ValueError(f"unknown message transport: {transport}")
