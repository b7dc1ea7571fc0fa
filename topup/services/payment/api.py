"""HTTP routes for the payment service."""

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from topup.common.logging import correlation_id_ctx, new_correlation_id, order_id_ctx
from topup.common.metrics import add_http_metrics_middleware, metrics_response, payment_triggers_total
from topup.services.payment.schemas import PaymentTriggerRequest, PaymentTriggerResponse
from topup.services.payment.service import PaymentService


def build_app(service: PaymentService, lifespan=None) -> FastAPI:
    app = FastAPI(title="Top-up Internal Payment", lifespan=lifespan)
    add_http_metrics_middleware(app, service.service_name)

    @app.post("/trigger-payment", response_model=PaymentTriggerResponse)
    async def trigger_payment(req: PaymentTriggerRequest):
        """Mark an order paid by publishing `payment.paid` (possibly more than once)."""

        if not req.correlation_id:
            req.correlation_id = new_correlation_id()
        correlation_id_ctx.set(req.correlation_id)
        order_id_ctx.set(req.order_id)
        payment_triggers_total.labels(service=service.service_name).inc()
        return await service.trigger_payment(req)

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health", response_class=PlainTextResponse)
    def health():
        """Container health check endpoint."""

        return "OK"

    return app
