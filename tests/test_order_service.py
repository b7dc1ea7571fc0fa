"""Order creation, payment-event consumption and fulfillment dispatch."""

import asyncio
import json
import random
import uuid
from datetime import datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from topup.common.events import PAYMENT_PAID_TOPIC, InMemoryChannel, PaymentPaidMessage
from topup.common.http import CallOutcome, OutboundClient
from topup.services.order.api import build_app
from topup.services.order.models import Order
from topup.services.order.service import (
    OPERATOR_ADMIN_FEES,
    OPERATOR_PHONE_PREFIXES,
    ORDER_AMOUNTS,
    OrderService,
    generate_order,
    new_order_id,
    placeholder_payload,
)


class VendorStub:
    """Records fulfillment calls and answers with a fixed status code."""

    def __init__(self, status_code=200, raise_timeout=False):
        self.status_code = status_code
        self.raise_timeout = raise_timeout
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_timeout:
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(self.status_code, json={"status": "success", "error": "", "data": None})


def make_service(session_factory, vendor, idempotency_check):
    return OrderService(
        session_factory,
        OutboundClient("test-order", transport=httpx.MockTransport(vendor)),
        "http://vendor.test",
        idempotency_check=idempotency_check,
        fulfillment_timeout_ms=1000,
        rng=random.Random(7),
    )


def paid_message(order: Order) -> PaymentPaidMessage:
    return PaymentPaidMessage(
        order_id=order.id,
        paid_amount=order.total,
        paid_at=datetime.now(timezone.utc),
        correlation_id="CORR01",
    )


def test_generated_orders_follow_fee_and_total_rules():
    rng = random.Random(42)
    for _ in range(300):
        order = generate_order(rng)
        assert order.admin_fee == OPERATOR_ADMIN_FEES[order.operator]
        assert order.total == order.amount + order.admin_fee
        assert order.amount in ORDER_AMOUNTS
        assert order.status == "pending"
        prefix = OPERATOR_PHONE_PREFIXES[order.operator]
        assert order.destination_phone.startswith(prefix)
        assert 1 <= int(order.destination_phone[len(prefix):]) <= 99


def test_order_ids_are_time_ordered_uuid7():
    first = new_order_id()
    second = new_order_id()
    assert uuid.UUID(first).version == 7
    assert uuid.UUID(first).variant == uuid.RFC_4122
    assert first[:8] <= second[:8]


def test_create_order_endpoint_persists_pending_order(session_factory):
    service = make_service(session_factory, VendorStub(), idempotency_check=True)
    with TestClient(build_app(service)) as client:
        resp = client.post("/create-order")
        health = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert set(body) == {"id", "status", "amount", "admin_fee", "total", "operator", "destination_phone"}
    assert body["status"] == "pending"
    assert body["total"] == body["amount"] + body["admin_fee"]
    assert service.get_order(body["id"]).status == "pending"
    assert health.status_code == 200
    assert health.text == "OK"


def test_create_order_storage_failure_is_server_error(session_factory, engine):
    from topup.common.db import Base

    Base.metadata.drop_all(bind=engine)
    service = make_service(session_factory, VendorStub(), idempotency_check=True)
    with TestClient(build_app(service)) as client:
        resp = client.post("/create-order")
    assert resp.status_code == 500


@pytest.mark.asyncio
async def test_toggle_on_dispatches_once_for_duplicate_deliveries(session_factory):
    vendor = VendorStub()
    service = make_service(session_factory, vendor, idempotency_check=True)
    order = service.create_order()
    message = paid_message(order)

    tasks = [await service.handle_payment_paid(message) for _ in range(3)]
    await service.drain()

    assert sum(task is not None for task in tasks) == 1
    assert len(vendor.requests) == 1
    # One placeholder row per delivery plus one for the dispatched attempt.
    attempts = service.attempts_for(order.id)
    placeholders = [a for a in attempts if a.payload == placeholder_payload(order.id)]
    dispatched = [a for a in attempts if "order-id" in a.payload]
    assert len(attempts) == 4
    assert len(placeholders) == 3
    assert len(dispatched) == 1


@pytest.mark.asyncio
async def test_dispatch_numbers_attempt_after_existing_rows(session_factory):
    vendor = VendorStub()
    service = make_service(session_factory, vendor, idempotency_check=True)
    order = service.create_order()
    for _ in range(3):
        service.record_attempt(order.id, 1, placeholder_payload(order.id))

    result = await service.dispatch_fulfillment(order.id, "CORR01")

    assert result.ok
    attempts = service.attempts_for(order.id)
    assert attempts[-1].attempt_number == 4
    assert attempts[-1].payload["order-id"] == order.id
    assert service.get_order(order.id).status == "fulfilment"


@pytest.mark.asyncio
async def test_concurrent_dispatches_can_share_an_attempt_number(session_factory, held_together):
    vendor = VendorStub()
    service = make_service(session_factory, vendor, idempotency_check=False)
    order = service.create_order()
    service.count_attempts = held_together(service.count_attempts, 2)

    await asyncio.gather(
        service.dispatch_fulfillment(order.id, "CORR01"),
        service.dispatch_fulfillment(order.id, "CORR02"),
    )

    assert [a.attempt_number for a in service.attempts_for(order.id)] == [1, 1]
    assert len(vendor.requests) == 2


@pytest.mark.asyncio
async def test_toggle_off_dispatches_every_delivery(session_factory):
    vendor = VendorStub()
    service = make_service(session_factory, vendor, idempotency_check=False)
    order = service.create_order()
    message = paid_message(order)

    for _ in range(3):
        await service.handle_payment_paid(message)
    await service.drain()

    assert len(vendor.requests) == 3
    assert len(service.attempts_for(order.id)) == 6
    assert service.get_order(order.id).status == "fulfilment"


@pytest.mark.asyncio
async def test_channel_deliveries_reach_handler_independently(session_factory):
    vendor = VendorStub()
    service = make_service(session_factory, vendor, idempotency_check=True)
    channel = InMemoryChannel()
    service.subscribe(channel)
    order = service.create_order()

    for _ in range(3):
        await channel.publish(PAYMENT_PAID_TOPIC, paid_message(order))
    await channel.drain()
    await service.drain()

    # Concurrent duplicates all count their own rows: at most one dispatches.
    assert len(vendor.requests) <= 1
    assert len(service.attempts_for(order.id)) == 3 + len(vendor.requests)


@pytest.mark.asyncio
async def test_dispatch_payload_uses_order_fields(session_factory):
    vendor = VendorStub()
    service = make_service(session_factory, vendor, idempotency_check=True)
    order = service.create_order()

    await service.handle_payment_paid(paid_message(order))
    await service.drain()

    sent = vendor.requests[0]
    assert sent.url.path == "/process-order"
    body = json.loads(sent.content)
    assert body == {
        "order-id": order.id,
        "destination-phone-no": order.destination_phone,
        "amount": order.amount,
        "correlation-id": "CORR01",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("vendor", [VendorStub(status_code=503), VendorStub(raise_timeout=True)])
async def test_failed_dispatch_leaves_order_paid(session_factory, vendor):
    service = make_service(session_factory, vendor, idempotency_check=True)
    order = service.create_order()

    task = await service.handle_payment_paid(paid_message(order))
    result = await task

    assert result.outcome in (CallOutcome.FAILURE, CallOutcome.TIMEOUT)
    assert service.get_order(order.id).status == "paid"
    # No automatic follow-up: a redelivery is suppressed by the attempt count.
    assert await service.handle_payment_paid(paid_message(order)) is None


@pytest.mark.asyncio
async def test_late_duplicate_rewrites_paid_after_fulfilment(session_factory):
    vendor = VendorStub()
    service = make_service(session_factory, vendor, idempotency_check=True)
    order = service.create_order()

    await service.handle_payment_paid(paid_message(order))
    await service.drain()
    assert service.get_order(order.id).status == "fulfilment"

    assert await service.handle_payment_paid(paid_message(order)) is None
    assert service.get_order(order.id).status == "paid"
    assert len(vendor.requests) == 1


@pytest.mark.asyncio
async def test_malformed_delivery_is_dropped(session_factory):
    service = make_service(session_factory, VendorStub(), idempotency_check=True)
    assert await service.handle_delivery(b"{not json") is None
    assert await service.handle_delivery(b'{"paid_amount": 1}') is None


@pytest.mark.asyncio
async def test_dispatch_for_unknown_order_makes_no_call(session_factory):
    vendor = VendorStub()
    service = make_service(session_factory, vendor, idempotency_check=False)

    result = await service.dispatch_fulfillment("missing-order", "CORR02")

    assert result is None
    assert vendor.requests == []
