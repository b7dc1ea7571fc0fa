"""API response schemas for order endpoints."""

from pydantic import BaseModel


class CreateOrderResponse(BaseModel):
    """Subset of the stored order returned to the caller."""

    id: str
    status: str
    amount: int
    admin_fee: int
    total: int
    operator: str
    destination_phone: str
