"""
Webhook dispatcher - resolves the owning store for an inbound platform event,
routes it by event type and upserts the normalized order.

Delivery is at-least-once; replays are absorbed by the order upsert. Errors
are contained per event: the sender always gets an acknowledgement.
"""
import logging
from enum import Enum
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storesync.integrations.platform_base import PlatformType
from storesync.models.store import Store
from storesync.schemas.webhook_payloads import WebhookEnvelope
from storesync.services.order_normalizer import InvalidOrderData, extract_order_id, normalize_order
from storesync.services.order_store import OrderStore
from storesync.services.stores import StoreRepository

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    NEW_ORDER = "new_order"
    ORDER_CHANGED = "order_changed"
    INVENTORY_CHANGED = "inventory_changed"


class DispatchOutcome(str, Enum):
    ORDER_PROCESSED = "order_processed"
    INVENTORY_PROCESSED = "inventory_processed"
    IGNORED = "ignored"
    STORE_UNRESOLVED = "store_unresolved"
    INVALID_ORDER = "invalid_order"
    FAILED = "failed"


EVENT_ROUTES = {
    "ecomm_new_order": (PlatformType.WEBFLOW, EventKind.NEW_ORDER),
    "ecomm_order_changed": (PlatformType.WEBFLOW, EventKind.ORDER_CHANGED),
    "ecomm_inventory_changed": (PlatformType.WEBFLOW, EventKind.INVENTORY_CHANGED),
    "orders/create": (PlatformType.SHOPIFY, EventKind.NEW_ORDER),
    "orders/updated": (PlatformType.SHOPIFY, EventKind.ORDER_CHANGED),
    "inventory_levels/update": (PlatformType.SHOPIFY, EventKind.INVENTORY_CHANGED),
    "order.created": (PlatformType.WOOCOMMERCE, EventKind.NEW_ORDER),
    "order.updated": (PlatformType.WOOCOMMERCE, EventKind.ORDER_CHANGED),
}

ORDER_EVENTS = (EventKind.NEW_ORDER, EventKind.ORDER_CHANGED)


def route_event(event_type: str) -> tuple[PlatformType, Optional[EventKind]]:
    """Unknown event types are attributed to webflow and carry no kind."""
    return EVENT_ROUTES.get(event_type, (PlatformType.WEBFLOW, None))


class WebhookDispatcher:
    def __init__(self, db: AsyncSession, activity, order_store: Optional[OrderStore] = None):
        self.db = db
        self.activity = activity
        self.stores = StoreRepository(db)
        self.orders = order_store or OrderStore(db)

    async def resolve_store(
        self,
        platform: PlatformType,
        kind: Optional[EventKind],
        site_id: Optional[str],
        body: dict,
    ) -> Optional[Store]:
        if site_id:
            store = await self.stores.get_by_site_id(site_id)
            if store is not None:
                return store

        if kind not in ORDER_EVENTS:
            return None

        order_id = extract_order_id(platform, body)
        if order_id:
            existing = await self.orders.get_by_platform_order_id(platform.value, order_id)
            if existing is not None and existing.store_id:
                store = await self.stores.get(existing.store_id)
                if store is not None:
                    return store

        store = await self.stores.first_connected(platform.value)
        if store is not None:
            logger.warning(
                "Webhook store resolved by platform fallback: store %s for site %s",
                store.id, site_id,
                extra={"store_id": store.id, "site_id": site_id, "platform": platform.value},
            )
        return store

    async def dispatch(self, body: Any) -> DispatchOutcome:
        if not isinstance(body, dict):
            logger.warning("Malformed webhook body ignored")
            await self.activity.log("Malformed webhook body received", "warning", {
                "event_type": "webhook_callback",
            })
            return DispatchOutcome.IGNORED

        envelope = WebhookEnvelope.model_validate(body)
        event_type = envelope.resolved_event_type
        site_id = envelope.resolved_site_id
        platform, kind = route_event(event_type)

        store = await self.resolve_store(platform, kind, site_id, body)
        store_id = store.id if store else None
        await self.activity.log_webhook_callback(
            store.platform_type if store else "unknown", event_type, body, store_id,
        )

        if kind is None:
            return DispatchOutcome.IGNORED
        if kind == EventKind.INVENTORY_CHANGED:
            return DispatchOutcome.INVENTORY_PROCESSED

        if store is None:
            logger.warning(
                "Order webhook %s received but store not found (site %s)", event_type, site_id,
                extra={"trigger_type": event_type, "site_id": site_id},
            )
            await self.activity.log("Order webhook received but store not found", "warning", {
                "event_type": "webhook_callback",
                "site_id": site_id,
                "trigger_type": event_type,
            })
            return DispatchOutcome.STORE_UNRESOLVED

        if store.platform_type != platform.value:
            await self.activity.log("Order webhook received for unsupported store type", "warning", {
                "store_type": store.platform_type,
                "trigger_type": event_type,
            }, store_id=store_id)
            return DispatchOutcome.IGNORED

        return await self._process_order(platform, body, store)

    async def _process_order(self, platform: PlatformType, body: dict, store: Store) -> DispatchOutcome:
        try:
            normalized = normalize_order(platform, body, store.id)
        except InvalidOrderData as e:
            await self.activity.log("Invalid order data in webhook", "error", {
                "error": str(e),
            }, store_id=store.id)
            return DispatchOutcome.INVALID_ORDER

        try:
            async with self.db.begin_nested():
                order, created = await self.orders.upsert(normalized)
        except Exception as e:
            logger.exception("Error processing order webhook for store %s", store.id)
            await self.activity.log("Error processing order webhook", "error", {
                "error": str(e),
                "platform_order_id": normalized.platform_order_id,
            }, store_id=store.id)
            return DispatchOutcome.FAILED

        await self.activity.log(
            "Order %s %s from webhook" % (normalized.platform_order_id, "created" if created else "updated"),
            "success" if created else "info",
            {"order_id": order.id, "platform_order_id": normalized.platform_order_id},
            store_id=store.id,
        )
        return DispatchOutcome.ORDER_PROCESSED
