"""Initial schema: stores, orders, activity log, integration settings.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Stores
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("platform_type", sa.String(50), nullable=False),
        sa.Column("platform_site_id", sa.String(255)),
        sa.Column("oauth_credentials_encrypted", sa.Text),
        sa.Column("webhook_status", sa.String(20), server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_stores_platform_type", "stores", ["platform_type"])
    op.create_index("ix_stores_platform_site_id", "stores", ["platform_site_id"])

    # Orders
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.id", ondelete="SET NULL")),
        sa.Column("platform", sa.String(50), nullable=False),
        sa.Column("platform_order_id", sa.String(255), nullable=False),
        sa.Column("order_number", sa.String(255)),
        sa.Column("status", sa.String(50), server_default="pending"),
        sa.Column("customer_name", sa.String(255)),
        sa.Column("customer_email", sa.String(255)),
        sa.Column("total_amount", sa.Numeric(10, 2), server_default="0.00"),
        sa.Column("currency", sa.String(10), server_default="USD"),
        sa.Column("order_date", sa.DateTime, nullable=False),
        sa.Column("raw_payload", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("platform", "platform_order_id", name="uq_orders_platform_order"),
    )
    op.create_index("ix_orders_store_id", "orders", ["store_id"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_order_date", "orders", ["order_date"])
    op.create_index("ix_orders_customer_email", "orders", ["customer_email"])
    op.create_index("ix_orders_store_platform_status", "orders", ["store_id", "platform", "status"])
    op.create_index("ix_orders_platform_status_date", "orders", ["platform", "status", "order_date"])

    # Activity log
    op.create_table(
        "log_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("store_id", sa.Integer),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("payload", postgresql.JSONB),
        sa.Column("status", sa.String(20), server_default="info"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_log_entries_store_id", "log_entries", ["store_id"])
    op.create_index("ix_log_entries_event_type", "log_entries", ["event_type"])
    op.create_index("ix_log_entries_status", "log_entries", ["status"])
    op.create_index("ix_log_entries_created_at", "log_entries", ["created_at"])

    # Stored integration configuration
    op.create_table(
        "integration_settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value", sa.Text),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("integration_settings")
    op.drop_table("log_entries")
    op.drop_table("orders")
    op.drop_table("stores")
