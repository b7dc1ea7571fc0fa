"""Deadline-bound outbound HTTP calls with outcome classification.

Every call ends in exactly one of three outcomes: SUCCESS (2xx), TIMEOUT (the
caller's deadline elapsed) or FAILURE (non-2xx or transport error). The
deadline only bounds the caller; the callee may still finish its work.
"""

import asyncio
import enum
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from topup.common.logging import logger
from topup.common.metrics import outbound_calls_total, retries_total


class CallOutcome(str, enum.Enum):
    SUCCESS = "SUCCESS"
    TIMEOUT = "TIMEOUT"
    FAILURE = "FAILURE"


@dataclass
class CallResult:
    """Classified result of one outbound call."""

    outcome: CallOutcome
    status_code: int | None = None
    body: Any = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is CallOutcome.SUCCESS


class OutboundClient:
    """Thin wrapper over `httpx.AsyncClient` that enforces a total deadline."""

    def __init__(
        self,
        service_name: str,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.service_name = service_name
        self._client = client or httpx.AsyncClient(transport=transport)

    async def post_json(self, url: str, payload: Any, timeout: float, target: str = "") -> CallResult:
        """POST `payload` as JSON and classify the outcome within `timeout` seconds."""

        target = target or url
        try:
            resp = await asyncio.wait_for(self._client.post(url, json=payload, timeout=timeout), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            result = CallResult(CallOutcome.TIMEOUT, error=f"timeout after {timeout:.3f}s: {exc!r}")
        except httpx.HTTPError as exc:
            result = CallResult(CallOutcome.FAILURE, error=str(exc) or exc.__class__.__name__)
        else:
            result = _classify_response(resp)
        outbound_calls_total.labels(
            service=self.service_name,
            target=target,
            outcome=result.outcome.value,
        ).inc()
        return result

    async def close(self) -> None:
        await self._client.aclose()


def _classify_response(resp: httpx.Response) -> CallResult:
    try:
        body = resp.json()
    except ValueError:
        body = resp.text
    if 200 <= resp.status_code < 300:
        return CallResult(CallOutcome.SUCCESS, status_code=resp.status_code, body=body)
    return CallResult(
        CallOutcome.FAILURE,
        status_code=resp.status_code,
        body=body,
        error=f"unexpected status {resp.status_code}",
    )


async def call_with_retry(
    call: Callable[[], Awaitable[CallResult]],
    max_attempts: int,
    delay_seconds: float,
    service_name: str = "",
    dependency: str = "",
) -> tuple[CallResult, int]:
    """Run `call` until it does not time out, at most `max_attempts` times.

    Only TIMEOUT is retried; SUCCESS and FAILURE return immediately. Returns
    the last result and the number of attempts made.
    """

    attempt = 0
    result = CallResult(CallOutcome.FAILURE, error="no attempt made")
    while attempt < max_attempts:
        if attempt > 0:
            retries_total.labels(service=service_name, dependency=dependency).inc()
            await asyncio.sleep(delay_seconds)
        attempt += 1
        result = await call()
        if result.outcome is not CallOutcome.TIMEOUT:
            break
        logger.warning("outbound timeout dependency=%s attempt=%s/%s", dependency, attempt, max_attempts)
    return result, attempt
