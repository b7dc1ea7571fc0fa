"""Order service database models.

This DB is the source of truth for order state and the append-only audit of
fulfillment attempts.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from topup.common.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base):
    """Current state of a phone-credit order."""

    __tablename__ = "internal_orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    amount: Mapped[int] = mapped_column(Integer)
    admin_fee: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(50), default="phone_credit")
    operator: Mapped[str] = mapped_column(String(50))
    destination_phone: Mapped[str] = mapped_column(String(20))
    total: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)


class FulfillmentAttempt(Base):
    """Audit row written per consumed delivery and per dispatch.

    Not deduplicated: duplicates of one payment event each leave a row, and
    `attempt_number` is derived from a row count taken without isolation.
    """

    __tablename__ = "fulfillment_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String(64), index=True)
    attempt_number: Mapped[int] = mapped_column(Integer, default=1)
    payload: Mapped[dict | None] = mapped_column(JSON().with_variant(JSONB, "postgresql"), nullable=True)
    attempted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)
