"""initial top-up schema

Revision ID: 0001_topup
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_topup"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "internal_orders",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("admin_fee", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("operator", sa.String(length=50), nullable=False),
        sa.Column("destination_phone", sa.String(length=20), nullable=False),
        sa.Column("total", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_internal_orders_status", "internal_orders", ["status"])
    op.create_index("ix_internal_orders_created_at", "internal_orders", ["created_at"])

    op.create_table(
        "internal_payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.String(length=64), nullable=False),
        sa.Column("paid_amount", sa.Integer(), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", name="uq_internal_payments_order"),
    )

    # No unique key on order_id: duplicate outcomes are possible by design.
    op.create_table(
        "ext_orders",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.String(length=64), nullable=False),
        sa.Column("destination_phone", sa.String(length=20), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("error", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ext_orders_order_id", "ext_orders", ["order_id"])
    op.create_index("ix_ext_orders_processed_at", "ext_orders", ["processed_at"])

    op.create_table(
        "fulfillment_attempts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.String(length=64), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("payload", sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql"), nullable=True),
        sa.Column("attempted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_fulfillment_attempts_order_id", "fulfillment_attempts", ["order_id"])
    op.create_index("ix_fulfillment_attempts_attempted_at", "fulfillment_attempts", ["attempted_at"])


def downgrade() -> None:
    op.drop_index("ix_fulfillment_attempts_attempted_at", table_name="fulfillment_attempts")
    op.drop_index("ix_fulfillment_attempts_order_id", table_name="fulfillment_attempts")
    op.drop_table("fulfillment_attempts")
    op.drop_index("ix_ext_orders_processed_at", table_name="ext_orders")
    op.drop_index("ix_ext_orders_order_id", table_name="ext_orders")
    op.drop_table("ext_orders")
    op.drop_table("internal_payments")
    op.drop_index("ix_internal_orders_created_at", table_name="internal_orders")
    op.drop_index("ix_internal_orders_status", table_name="internal_orders")
    op.drop_table("internal_orders")
