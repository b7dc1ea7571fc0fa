"""Load simulator iteration outcomes and work partitioning."""

import json

import httpx
import pytest

from topup.common.http import OutboundClient
from topup.tooling.simulator import IterationStatus, Simulator, partition


class FakeServices:
    """Answers create-order and trigger-payment from one mock transport."""

    def __init__(self, payment_error=None, payment_status=200, order_status=200):
        self.payment_error = payment_error
        self.payment_status = payment_status
        self.order_status = order_status
        self.payment_calls = []
        self.created = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/create-order":
            if self.order_status != 200:
                return httpx.Response(self.order_status, json={"detail": "Internal server error"})
            self.created += 1
            return httpx.Response(
                200,
                json={"id": f"order-{self.created}", "status": "pending", "total": 5200},
            )
        self.payment_calls.append(json.loads(request.content))
        if self.payment_error is not None:
            raise self.payment_error(request)
        return httpx.Response(self.payment_status, json={"status": "success"})


def make_simulator(services, workers=4):
    return Simulator(
        OutboundClient("simulator", transport=httpx.MockTransport(services)),
        "http://order.test",
        "http://payment.test",
        workers=workers,
        max_attempts=4,
        delay_ms=0,
    )


def test_partition_covers_range_contiguously():
    assert partition(10, 4) == [(0, 3), (3, 6), (6, 9), (9, 10)]
    assert partition(4, 4) == [(0, 1), (1, 2), (2, 3), (3, 4)]
    assert partition(2, 4) == [(0, 1), (1, 2)]
    assert partition(0, 4) == []


@pytest.mark.asyncio
async def test_timeouts_are_retried_up_to_four_attempts():
    services = FakeServices(payment_error=lambda request: httpx.ReadTimeout("slow", request=request))
    result = await make_simulator(services).run_iteration(1)

    assert result.status is IterationStatus.TIMEOUT
    assert result.attempts == 4
    assert len(services.payment_calls) == 4
    # Every attempt carries the same correlation id.
    assert {call["correlation-id"] for call in services.payment_calls} == {result.correlation_id}
    assert "TIMEOUT after 4 attempts" in result.line()


@pytest.mark.asyncio
async def test_non_timeout_failure_is_not_retried():
    services = FakeServices(payment_status=500)
    result = await make_simulator(services).run_iteration(1)

    assert result.status is IterationStatus.FAILURE
    assert len(services.payment_calls) == 1
    assert result.line().startswith("Iteration 1 [")


@pytest.mark.asyncio
async def test_create_order_failure_skips_payment():
    services = FakeServices(order_status=500)
    result = await make_simulator(services).run_iteration(1)

    assert result.status is IterationStatus.FAILURE
    assert services.payment_calls == []


@pytest.mark.asyncio
async def test_run_reports_every_iteration_in_order():
    services = FakeServices()
    summary = await make_simulator(services, workers=3).run(8)

    assert [r.iteration for r in summary.results] == list(range(1, 9))
    assert summary.success == 8
    assert summary.timeout == summary.failure == 0
    assert services.payment_calls[0]["paid-amount"] == 5200
    assert len({r.correlation_id for r in summary.results}) == 8
