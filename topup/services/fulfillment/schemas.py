"""API request/response schemas for the external fulfillment vendor."""

from pydantic import BaseModel, ConfigDict, Field


class ProcessOrderRequest(BaseModel):
    """Fulfillment request sent by the order service."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="order-id")
    destination_phone: str = Field(alias="destination-phone-no")
    amount: int
    correlation_id: str = Field(default="", alias="correlation-id")


class ProcessOrderData(BaseModel):
    """Vendor receipt included with successful outcomes."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="order-id")
    vendor_order_id: int = Field(alias="vendor-order-id")
    processed_at: str


class ProcessOrderResponse(BaseModel):
    """Outcome payload; `data` is null for error outcomes."""

    status: str
    error: str = ""
    data: ProcessOrderData | None = None
