"""Payment service persistence models."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from topup.common.db import Base


class PaymentRecord(Base):
    """One stored payment per order; the unique key absorbs duplicate triggers."""

    __tablename__ = "internal_payments"
    __table_args__ = (UniqueConstraint("order_id", name="uq_internal_payments_order"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String(64))
    paid_amount: Mapped[int] = mapped_column(Integer)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
