"""End-to-end load simulation: create order, then trigger its payment.

Iterations are split into contiguous index ranges, one per worker. A payment
trigger that times out is retried after a fixed delay (4 attempts in total by
default); any other failure ends the iteration immediately.
"""

import asyncio
import enum
from dataclasses import dataclass, field

from topup.common.http import CallOutcome, CallResult, OutboundClient, call_with_retry
from topup.common.logging import correlation_id_ctx, logger, new_correlation_id
from topup.services.payment.schemas import PaymentTriggerRequest


class IterationStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    TIMEOUT = "TIMEOUT"
    FAILURE = "FAILURE"


@dataclass
class IterationResult:
    iteration: int
    correlation_id: str
    status: IterationStatus
    order_id: str = ""
    amount: int = 0
    attempts: int = 0
    detail: str = ""

    def line(self) -> str:
        prefix = f"Iteration {self.iteration} [{self.correlation_id}]"
        if self.status is IterationStatus.SUCCESS:
            return f"{prefix}: SUCCESS - Order: {self.order_id}, Amount: {self.amount}"
        if self.status is IterationStatus.TIMEOUT:
            return f"{prefix}: TIMEOUT after {self.attempts} attempts - Order: {self.order_id}"
        return f"{prefix}: FAILED - {self.detail}"


@dataclass
class SimulationSummary:
    results: list[IterationResult] = field(default_factory=list)

    def count(self, status: IterationStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def success(self) -> int:
        return self.count(IterationStatus.SUCCESS)

    @property
    def timeout(self) -> int:
        return self.count(IterationStatus.TIMEOUT)

    @property
    def failure(self) -> int:
        return self.count(IterationStatus.FAILURE)


def partition(count: int, workers: int) -> list[tuple[int, int]]:
    """Split `range(count)` into at most `workers` contiguous `(start, end)` ranges."""

    if count <= 0:
        return []
    chunk = -(-count // workers)
    return [(start, min(start + chunk, count)) for start in range(0, count, chunk)]


class Simulator:
    """Drives concurrent create-order / trigger-payment iterations."""

    def __init__(
        self,
        outbound: OutboundClient,
        order_url: str,
        payment_url: str,
        payment_timeout_ms: int = 200,
        create_order_timeout_ms: int = 500,
        workers: int = 4,
        max_attempts: int = 4,
        delay_ms: int = 100,
    ) -> None:
        self.outbound = outbound
        self.order_url = order_url.rstrip("/")
        self.payment_url = payment_url.rstrip("/")
        self.payment_timeout_ms = payment_timeout_ms
        self.create_order_timeout_ms = create_order_timeout_ms
        self.workers = workers
        self.max_attempts = max_attempts
        self.delay_ms = delay_ms

    async def create_order(self) -> CallResult:
        return await self.outbound.post_json(
            f"{self.order_url}/create-order",
            None,
            timeout=self.create_order_timeout_ms / 1000,
            target="internal-order",
        )

    async def trigger_payment(self, order_id: str, amount: int, correlation_id: str) -> CallResult:
        payload = PaymentTriggerRequest(order_id=order_id, paid_amount=amount, correlation_id=correlation_id)
        logger.info("triggering payment order_id=%s amount=%s", order_id, amount)
        return await self.outbound.post_json(
            f"{self.payment_url}/trigger-payment",
            payload.model_dump(by_alias=True),
            timeout=self.payment_timeout_ms / 1000,
            target="internal-payment",
        )

    async def run_iteration(self, iteration: int) -> IterationResult:
        correlation_id = new_correlation_id()
        correlation_id_ctx.set(correlation_id)

        created = await self.create_order()
        if not created.ok or not isinstance(created.body, dict):
            logger.error("failed to create order iteration=%s error=%s", iteration, created.error)
            return IterationResult(
                iteration,
                correlation_id,
                IterationStatus.FAILURE,
                detail=f"create order {created.outcome.value.lower()}: {created.error}",
            )
        order_id = created.body["id"]
        total = created.body["total"]
        logger.info("order created for simulation iteration=%s order_id=%s", iteration, order_id)

        await asyncio.sleep(self.delay_ms / 1000)
        result, attempts = await call_with_retry(
            lambda: self.trigger_payment(order_id, total, correlation_id),
            max_attempts=self.max_attempts,
            delay_seconds=self.delay_ms / 1000,
            service_name="simulator",
            dependency="internal-payment",
        )
        if result.outcome is CallOutcome.SUCCESS:
            logger.info("payment triggered successfully order_id=%s attempts=%s", order_id, attempts)
            return IterationResult(
                iteration, correlation_id, IterationStatus.SUCCESS, order_id, total, attempts
            )
        if result.outcome is CallOutcome.TIMEOUT:
            logger.error("payment timeout order_id=%s attempts=%s", order_id, attempts)
            return IterationResult(
                iteration, correlation_id, IterationStatus.TIMEOUT, order_id, total, attempts
            )
        logger.error("payment failed order_id=%s error=%s", order_id, result.error)
        return IterationResult(
            iteration,
            correlation_id,
            IterationStatus.FAILURE,
            order_id,
            total,
            attempts,
            detail=f"payment for order {order_id}: {result.error}",
        )

    async def _worker(self, start: int, end: int) -> list[IterationResult]:
        return [await self.run_iteration(index + 1) for index in range(start, end)]

    async def run(self, count: int) -> SimulationSummary:
        """Run `count` iterations across the worker pool and collect results."""

        ranges = partition(count, self.workers)
        batches = await asyncio.gather(*(self._worker(start, end) for start, end in ranges))
        results = sorted((r for batch in batches for r in batch), key=lambda r: r.iteration)
        return SimulationSummary(results)


def print_summary(summary: SimulationSummary) -> None:
    for result in summary.results:
        print(result.line())
    print(
        f"\nSimulation completed. Success: {summary.success}, "
        f"Timeouts: {summary.timeout}, Failures: {summary.failure}"
    )
