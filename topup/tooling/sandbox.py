"""Run all three services inside one event loop.

The services talk over an in-memory channel and ASGI transports instead of
Kafka and sockets. Outbound calls are shielded from the caller's deadline, so
a callee keeps running after the caller gives up, as it would across a real
network.
"""

import asyncio
import random
from dataclasses import dataclass, field

import httpx

from topup.common.events import InMemoryChannel
from topup.common.http import OutboundClient
from topup.services.fulfillment.api import build_app as build_fulfillment_app
from topup.services.fulfillment.service import FulfillmentService
from topup.services.order.api import build_app as build_order_app
from topup.services.order.service import OrderService
from topup.services.payment.api import build_app as build_payment_app
from topup.services.payment.service import PaymentService

ORDER_URL = "http://order.local"
PAYMENT_URL = "http://payment.local"
FULFILLMENT_URL = "http://fulfillment.local"


class HostRouterTransport(httpx.AsyncBaseTransport):
    """Route requests to per-host transports, detached from caller cancellation."""

    def __init__(self, routes: dict[str, httpx.AsyncBaseTransport]) -> None:
        self.routes = routes
        self._in_flight: set[asyncio.Task] = set()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        transport = self.routes.get(request.url.host)
        if transport is None:
            raise httpx.ConnectError(f"no route to host {request.url.host}", request=request)
        task = asyncio.ensure_future(transport.handle_async_request(request))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return await asyncio.shield(task)

    @property
    def pending(self) -> int:
        return len(self._in_flight)

    async def drain(self) -> None:
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)


@dataclass
class Sandbox:
    order: OrderService
    payment: PaymentService
    fulfillment: FulfillmentService
    channel: InMemoryChannel
    transport: HostRouterTransport
    outbound: OutboundClient = field(init=False)

    def __post_init__(self) -> None:
        self.outbound = OutboundClient("sandbox", transport=self.transport)

    async def settle(self) -> None:
        """Wait until no request, delivery or dispatch is still running."""

        while True:
            await self.transport.drain()
            await self.channel.drain()
            await self.order.drain()
            if not (self.transport.pending or self.channel.pending or self.order.pending_dispatches):
                return

    async def close(self) -> None:
        await self.settle()
        await self.channel.close()
        await self.outbound.close()
        await self.order.outbound.close()


def build_sandbox(
    session_factory,
    idempotency_check: bool = True,
    external_idempotency_check: bool = True,
    payment_delay_ms: int = 0,
    fulfillment_timeout_ms: int = 5000,
    tz_name: str = "Asia/Jakarta",
    order_rng: random.Random | None = None,
    payment_rng: random.Random | None = None,
    fulfillment_rng: random.Random | None = None,
) -> Sandbox:
    """Wire order, payment and fulfillment services against one session factory."""

    channel = InMemoryChannel()
    routes: dict[str, httpx.AsyncBaseTransport] = {}
    transport = HostRouterTransport(routes)

    fulfillment = FulfillmentService(
        session_factory,
        idempotency_check=external_idempotency_check,
        rng=fulfillment_rng,
        tz_name=tz_name,
    )
    payment = PaymentService(session_factory, channel, delay_ms=payment_delay_ms, rng=payment_rng)
    order = OrderService(
        session_factory,
        OutboundClient("internal-order", transport=transport),
        FULFILLMENT_URL,
        idempotency_check=idempotency_check,
        fulfillment_timeout_ms=fulfillment_timeout_ms,
        rng=order_rng,
    )
    order.subscribe(channel)

    routes[httpx.URL(ORDER_URL).host] = httpx.ASGITransport(app=build_order_app(order))
    routes[httpx.URL(PAYMENT_URL).host] = httpx.ASGITransport(app=build_payment_app(payment))
    routes[httpx.URL(FULFILLMENT_URL).host] = httpx.ASGITransport(app=build_fulfillment_app(fulfillment))
    return Sandbox(order=order, payment=payment, fulfillment=fulfillment, channel=channel, transport=transport)
