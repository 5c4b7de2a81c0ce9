"""
Order model - the canonical, platform-agnostic order record.
(platform, platform_order_id) is unique: it is the idempotency key for
webhook replay, enforced by the database.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy import (
    String, Numeric, DateTime, ForeignKey, Index, Integer, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from storesync.database import Base


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("stores.id", ondelete="SET NULL")
    )
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    platform_order_id: Mapped[str] = mapped_column(String(255), nullable=False)
    order_number: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(
        String(50), default="pending", server_default="pending"
    )  # pending, processing, completed, on-hold, cancelled, refunded, disputed, failed
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0.00")
    )
    currency: Mapped[str] = mapped_column(String(10), default="USD")
    order_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Full source payload, kept verbatim for the details view and audits
    raw_payload: Mapped[Optional[dict]] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("platform", "platform_order_id", name="uq_orders_platform_order"),
        Index("ix_orders_store_id", "store_id"),
        Index("ix_orders_status", "status"),
        Index("ix_orders_order_date", "order_date"),
        Index("ix_orders_customer_email", "customer_email"),
        Index("ix_orders_store_platform_status", "store_id", "platform", "status"),
        Index("ix_orders_platform_status_date", "platform", "status", "order_date"),
    )

    def __repr__(self) -> str:
        return f"<Order {self.platform}:{self.platform_order_id} status={self.status}>"
