"""API request/response schemas for the payment trigger endpoint."""

from pydantic import BaseModel, ConfigDict, Field


class PaymentTriggerRequest(BaseModel):
    """Payment trigger payload; wire keys are kebab-case."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="order-id")
    paid_amount: int = Field(alias="paid-amount")
    correlation_id: str = Field(default="", alias="correlation-id")


class PaymentTriggerResponse(BaseModel):
    status: str = "success"
