"""HTTP routes for the external fulfillment vendor."""

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from topup.common.logging import correlation_id_ctx, logger, new_correlation_id, order_id_ctx
from topup.common.metrics import add_http_metrics_middleware, metrics_response
from topup.services.fulfillment.schemas import ProcessOrderRequest, ProcessOrderResponse
from topup.services.fulfillment.service import FulfillmentService


def build_app(service: FulfillmentService, lifespan=None) -> FastAPI:
    app = FastAPI(title="Top-up External Fulfillment", lifespan=lifespan)
    add_http_metrics_middleware(app, service.service_name)

    @app.post("/process-order", response_model=ProcessOrderResponse)
    async def process_order(req: ProcessOrderRequest):
        """Return the stored or freshly drawn outcome for one order."""

        if not req.correlation_id:
            req.correlation_id = new_correlation_id()
            logger.info("generated new correlation id order_id=%s", req.order_id)
        correlation_id_ctx.set(req.correlation_id)
        order_id_ctx.set(req.order_id)
        try:
            return await service.process_order(req)
        except SQLAlchemyError as exc:
            logger.error("failed to store external outcome order_id=%s error=%s", req.order_id, exc)
            raise HTTPException(status_code=500, detail="Internal server error") from exc

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health", response_class=PlainTextResponse)
    def health():
        """Container health check endpoint."""

        return "OK"

    return app
