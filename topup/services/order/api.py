"""HTTP routes for the order service."""

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from topup.common.logging import correlation_id_ctx, logger, new_correlation_id, order_id_ctx
from topup.common.metrics import add_http_metrics_middleware, metrics_response
from topup.services.order.schemas import CreateOrderResponse
from topup.services.order.service import OrderService


def build_app(service: OrderService, lifespan=None) -> FastAPI:
    app = FastAPI(title="Top-up Internal Order", lifespan=lifespan)
    add_http_metrics_middleware(app, service.service_name)

    @app.post("/create-order", response_model=CreateOrderResponse)
    async def create_order():
        """Create a random pending order."""

        correlation_id_ctx.set(new_correlation_id())
        try:
            order = service.create_order()
        except SQLAlchemyError as exc:
            logger.error("failed to insert order error=%s", exc)
            raise HTTPException(status_code=500, detail="Internal server error") from exc
        order_id_ctx.set(order.id)
        return CreateOrderResponse(
            id=order.id,
            status=order.status,
            amount=order.amount,
            admin_fee=order.admin_fee,
            total=order.total,
            operator=order.operator,
            destination_phone=order.destination_phone,
        )

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health", response_class=PlainTextResponse)
    def health():
        """Container health check endpoint."""

        return "OK"

    return app
