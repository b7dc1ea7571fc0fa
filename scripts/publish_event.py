"""Publish a `payment.paid` event directly to Kafka, optionally several times.

Useful for manual duplicate-delivery testing against a running order service.
"""

import argparse
import asyncio
from datetime import datetime, timezone
from pathlib import Path

from aiokafka import AIOKafkaProducer

from topup.common.events import PAYMENT_PAID_TOPIC, PaymentPaidMessage


async def publish(bootstrap_servers: str, topic: str, message: PaymentPaidMessage, copies: int) -> None:
    """Open producer, publish `copies` identical messages, close producer."""

    producer = AIOKafkaProducer(bootstrap_servers=bootstrap_servers)
    await producer.start()
    try:
        for _ in range(copies):
            await producer.send_and_wait(topic, message.encode())
    finally:
        await producer.stop()


def main() -> None:
    """Parse CLI args and publish the payment event."""

    parser = argparse.ArgumentParser(description="Publish a payment.paid event to Kafka.")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--topic", default=PAYMENT_PAID_TOPIC)
    parser.add_argument("--order-id", default=None)
    parser.add_argument("--paid-amount", type=int, default=0)
    parser.add_argument("--correlation-id", default="")
    parser.add_argument("--file", dest="json_file", default=None, help="Path to JSON message file")
    parser.add_argument("--copies", type=int, default=1)
    args = parser.parse_args()

    if bool(args.order_id) == bool(args.json_file):
        raise SystemExit("Provide exactly one of --order-id or --file")

    if args.json_file:
        message = PaymentPaidMessage.decode(Path(args.json_file).read_bytes())
    else:
        message = PaymentPaidMessage(
            order_id=args.order_id,
            paid_amount=args.paid_amount,
            paid_at=datetime.now(timezone.utc),
            correlation_id=args.correlation_id,
        )

    asyncio.run(publish(args.bootstrap_servers, args.topic, message, args.copies))
    print(f"Published {args.copies} copies to topic={args.topic}")


if __name__ == "__main__":
    main()
