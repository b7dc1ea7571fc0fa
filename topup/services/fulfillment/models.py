"""External fulfillment vendor persistence models."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from topup.common.db import Base


class ExternalOutcome(Base):
    """Outcome of one processed fulfillment request.

    `order_id` is deliberately not unique: with the idempotency check off, each
    request for the same order stores its own independent outcome.
    """

    __tablename__ = "ext_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String(64), index=True)
    destination_phone: Mapped[str] = mapped_column(String(20))
    amount: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20))
    error: Mapped[str] = mapped_column(String(255), default="")
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
