"""
Order normalizer - converts platform payloads into NormalizedOrder records.

Pure functions, no I/O. The only configuration read is the store timezone,
used to express order dates as naive local datetimes.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from storesync.config import get_settings
from storesync.integrations.platform_base import PlatformType
from storesync.schemas.orders import NormalizedOrder

logger = logging.getLogger(__name__)

WEBFLOW_STATUS_MAP = {
    "unfulfilled": "pending",
    "fulfilled": "completed",
    "refunded": "refunded",
    "disputed": "disputed",
}

WOOCOMMERCE_STATUS_MAP = {
    status: status
    for status in ("pending", "processing", "on-hold", "completed", "cancelled", "refunded", "failed")
}

SHOPIFY_FINANCIAL_STATUS_MAP = {
    "refunded": "refunded",
    "voided": "cancelled",
    "pending": "pending",
    "authorized": "pending",
    "paid": "processing",
    "partially_refunded": "processing",
}

SHOPIFY_FULFILLMENT_STATUS_MAP = {
    "fulfilled": "completed",
}


class InvalidOrderData(Exception):
    """Payload is missing the fields needed to identify the order."""
    pass


def _local_zone() -> ZoneInfo:
    name = get_settings().store_timezone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown store timezone %s, using UTC", name)
        return ZoneInfo("UTC")


def parse_order_date(value: Any) -> datetime:
    """
    ISO 8601 / RFC 3339 string -> naive datetime in the store timezone.
    Naive inputs are taken as UTC. Anything unparsable yields "now".
    """
    zone = _local_zone()
    parsed = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("Unparsable order date: %s", value)

    if parsed is None:
        return datetime.now(zone).replace(tzinfo=None)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(zone).replace(tzinfo=None)


def to_amount(value: Any) -> Decimal:
    """Decimal with two places. Missing or garbage -> 0.00."""
    if value is None or value == "":
        return Decimal("0.00")
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return Decimal("0.00")


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def map_status(status: Any, table: dict[str, str]) -> str:
    return table.get(str(status or "").lower(), "pending")


def normalize_webflow_order(body: dict, store_id: Optional[int]) -> NormalizedOrder:
    """`{triggerType, siteId, payload: {orderId, status, customerInfo, totals, acceptedOn}}`"""
    payload = _dict(body.get("payload"))
    order_id = _text(payload.get("orderId"))
    if not order_id:
        raise InvalidOrderData("Webflow order payload is missing payload.orderId")

    customer = _dict(payload.get("customerInfo"))
    total = _dict(_dict(payload.get("totals")).get("total"))

    return NormalizedOrder(
        store_id=store_id,
        platform=PlatformType.WEBFLOW.value,
        platform_order_id=order_id,
        order_number=order_id,
        status=map_status(payload.get("status") or "pending", WEBFLOW_STATUS_MAP),
        customer_name=_text(customer.get("fullName")),
        customer_email=_text(customer.get("email")),
        total_amount=to_amount(total.get("value")),
        currency=_text(total.get("unit")) or "USD",
        order_date=parse_order_date(payload.get("acceptedOn")),
        raw_payload=body,
    )


def _shopify_status(order: dict) -> str:
    if order.get("cancelled_at"):
        return "cancelled"
    financial = str(order.get("financial_status") or "").lower()
    if financial in SHOPIFY_FINANCIAL_STATUS_MAP:
        return SHOPIFY_FINANCIAL_STATUS_MAP[financial]
    return map_status(order.get("fulfillment_status"), SHOPIFY_FULFILLMENT_STATUS_MAP)


def normalize_shopify_order(body: dict, store_id: Optional[int]) -> NormalizedOrder:
    order = body.get("payload") if isinstance(body.get("payload"), dict) else body
    order_id = _text(order.get("id"))
    if not order_id:
        raise InvalidOrderData("Shopify order payload is missing id")

    customer = _dict(order.get("customer"))
    name = " ".join(
        part for part in (_text(customer.get("first_name")), _text(customer.get("last_name"))) if part
    )
    if not name:
        name = _text(_dict(order.get("billing_address")).get("name")) or ""

    return NormalizedOrder(
        store_id=store_id,
        platform=PlatformType.SHOPIFY.value,
        platform_order_id=order_id,
        order_number=_text(order.get("name")) or _text(order.get("order_number")),
        status=_shopify_status(order),
        customer_name=name or None,
        customer_email=_text(order.get("email")) or _text(customer.get("email")),
        total_amount=to_amount(order.get("total_price")),
        currency=_text(order.get("currency")) or "USD",
        order_date=parse_order_date(order.get("created_at")),
        raw_payload=body,
    )


def normalize_woocommerce_order(body: dict, store_id: Optional[int]) -> NormalizedOrder:
    order = body.get("payload") if isinstance(body.get("payload"), dict) else body
    order_id = _text(order.get("id"))
    if not order_id:
        raise InvalidOrderData("WooCommerce order payload is missing id")

    billing = _dict(order.get("billing"))
    name = " ".join(
        part for part in (_text(billing.get("first_name")), _text(billing.get("last_name"))) if part
    )

    return NormalizedOrder(
        store_id=store_id,
        platform=PlatformType.WOOCOMMERCE.value,
        platform_order_id=order_id,
        order_number=_text(order.get("number")) or order_id,
        status=map_status(order.get("status"), WOOCOMMERCE_STATUS_MAP),
        customer_name=name or None,
        customer_email=_text(billing.get("email")),
        total_amount=to_amount(order.get("total")),
        currency=_text(order.get("currency")) or "USD",
        order_date=parse_order_date(order.get("date_created_gmt") or order.get("date_created")),
        raw_payload=body,
    )


NORMALIZERS = {
    PlatformType.WEBFLOW: normalize_webflow_order,
    PlatformType.SHOPIFY: normalize_shopify_order,
    PlatformType.WOOCOMMERCE: normalize_woocommerce_order,
}


def normalize_order(platform, body: dict, store_id: Optional[int] = None) -> NormalizedOrder:
    normalizer = NORMALIZERS.get(PlatformType.parse(platform))
    if normalizer is None:
        raise InvalidOrderData(f"No normalizer for platform {platform}")
    if not isinstance(body, dict):
        raise InvalidOrderData("Order payload must be a JSON object")
    return normalizer(body, store_id)


def extract_order_id(platform, body: Any) -> Optional[str]:
    """External order id from a raw payload, or None. Never raises."""
    if not isinstance(body, dict):
        return None
    platform = PlatformType.parse(platform)
    if platform == PlatformType.WEBFLOW:
        return _text(_dict(body.get("payload")).get("orderId"))
    if platform in (PlatformType.SHOPIFY, PlatformType.WOOCOMMERCE):
        order = body.get("payload") if isinstance(body.get("payload"), dict) else body
        return _text(order.get("id"))
    return None
