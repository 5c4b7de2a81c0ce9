"""
Order schemas - normalized order records, listing filters and operator requests.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional
from pydantic import BaseModel, Field


CANONICAL_STATUSES = (
    "pending",
    "processing",
    "completed",
    "on-hold",
    "cancelled",
    "refunded",
    "disputed",
    "failed",
)


class NormalizedOrder(BaseModel):
    """Output of the order normalizer; input of the order store upsert."""
    store_id: Optional[int] = None
    platform: str
    platform_order_id: str
    order_number: Optional[str] = None
    status: str = "pending"
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    total_amount: Decimal = Decimal("0.00")
    currency: str = "USD"
    order_date: datetime
    raw_payload: dict[str, Any] = Field(default_factory=dict)


class OrderFilters(BaseModel):
    """Listing filters. Also the cache signature for listing/count results."""
    store_id: Optional[int] = None
    platform: Optional[str] = None
    status: Optional[str] = None
    search: Optional[str] = None
    order_by: str = "order_date"
    direction: Literal["asc", "desc"] = "desc"
    limit: int = Field(default=20, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class OrderSummary(BaseModel):
    id: int
    store_id: Optional[int] = None
    platform: str
    platform_order_id: str
    order_number: Optional[str] = None
    status: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    total_amount: Decimal
    currency: str
    order_date: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OrderDetail(OrderSummary):
    raw_payload: Optional[dict[str, Any]] = None


class OrderListResponse(BaseModel):
    orders: list[OrderSummary]
    total: int
    limit: int
    offset: int


class ShippingUpdateRequest(BaseModel):
    shipping_provider: Optional[str] = None
    shipping_tracking: Optional[str] = None
    shipping_tracking_url: Optional[str] = None


class CommentUpdateRequest(BaseModel):
    comment: str = ""


class StatusUpdateRequest(BaseModel):
    action: Literal["fulfill", "unfulfill", "refund"]
    send_fulfillment_email: bool = False
    refund_reason: Optional[str] = None


class OrderActionResponse(BaseModel):
    message: str
    order: Optional[dict[str, Any]] = None
    new_status: Optional[str] = None
