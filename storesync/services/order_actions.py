"""
Operator order actions - shipping, comment and status changes pushed to the
platform first, then mirrored into the local order record.
"""
import logging
from typing import Optional

from storesync.config import get_settings
from storesync.integrations.platform_base import MISSING_SCOPES
from storesync.models.order import Order
from storesync.models.store import Store
from storesync.schemas.orders import OrderActionResponse
from storesync.services.order_store import OrderStore, ensure_status_change_allowed
from storesync.services.stores import StoreRepository

logger = logging.getLogger(__name__)

STATUS_ACTIONS = {
    # action: (new local status, success message)
    "fulfill": ("completed", "Order fulfilled successfully."),
    "unfulfill": ("pending", "Order unfulfilled successfully."),
    "refund": ("refunded", "Order refunded successfully."),
}

SHIPPING_FIELDS = {
    "shipping_provider": "shippingProvider",
    "shipping_tracking": "shippingTracking",
    "shipping_tracking_url": "shippingTrackingURL",
}


class OrderNotFound(Exception):
    pass


class OrderActionFailed(Exception):
    pass


class MissingScopes(Exception):
    """The store token lacks write scopes; the operator must reconnect."""

    def __init__(self, store_id: int, reconnect_url: str):
        self.store_id = store_id
        self.reconnect_url = reconnect_url
        super().__init__(
            "Your store connection is missing the required permissions (ecommerce:write). "
            "Reconnect the store to grant them."
        )


def reconnect_url(store_id: int) -> str:
    base = get_settings().app_base_url.rstrip("/")
    return f"{base}/api/v1/oauth/webflow/authorize?store_id={store_id}"


def _merged_payload(order: Order, updates: dict) -> dict:
    raw = dict(order.raw_payload or {})
    payload = dict(raw.get("payload") or {})
    payload.update(updates)
    raw["payload"] = payload
    return raw


class OrderActions:
    def __init__(self, db, activity, client_factory=None, order_store: Optional[OrderStore] = None):
        if client_factory is None:
            from storesync.integrations.registry import get_platform_client as client_factory
        self.db = db
        self.activity = activity
        self.client_factory = client_factory
        self.orders = order_store or OrderStore(db)
        self.stores = StoreRepository(db)

    async def _load(self, order_id: int) -> tuple[Order, Store, object, str]:
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found")

        client = self.client_factory(order.platform, activity=self.activity)
        if client is None:
            raise OrderActionFailed("Order not found or not a Webflow order.")

        store = await self.stores.get(order.store_id) if order.store_id else None
        if store is None or store.platform_type != order.platform or not store.platform_site_id:
            raise OrderActionFailed("Store not found or invalid.")

        token = store.access_token
        if not token:
            raise OrderActionFailed("Store not authenticated with Webflow.")
        return order, store, client, token

    def _check_result(self, result, store: Store, failure_message: str) -> dict:
        if result is False or result is None:
            raise OrderActionFailed(failure_message)
        if isinstance(result, dict) and result.get("error") == MISSING_SCOPES:
            logger.warning(
                "Store %s is missing write scopes: %s", store.id, result.get("message"),
                extra={"store_id": store.id},
            )
            raise MissingScopes(store.id, reconnect_url(store.id))
        return result

    async def update_shipping(
        self,
        order_id: int,
        shipping_provider: Optional[str] = None,
        shipping_tracking: Optional[str] = None,
        shipping_tracking_url: Optional[str] = None,
    ) -> OrderActionResponse:
        values = {
            "shipping_provider": shipping_provider,
            "shipping_tracking": shipping_tracking,
            "shipping_tracking_url": shipping_tracking_url,
        }
        fields = {key: value for key, value in values.items() if value is not None}
        if not fields:
            raise OrderActionFailed("No data to update.")

        order, store, client, token = await self._load(order_id)
        result = await client.update_order(store.platform_site_id, order.platform_order_id, token, fields)
        remote = self._check_result(result, store, "Failed to update order on Webflow. Please check logs for details.")

        merged = _merged_payload(order, {SHIPPING_FIELDS[key]: value for key, value in fields.items()})
        await self.orders.update(order.id, raw_payload=merged)
        return OrderActionResponse(message="Shipping information updated successfully.", order=remote)

    async def update_comment(self, order_id: int, comment: str) -> OrderActionResponse:
        order, store, client, token = await self._load(order_id)
        result = await client.update_order(
            store.platform_site_id, order.platform_order_id, token, {"comment": comment},
        )
        remote = self._check_result(result, store, "Failed to update order on Webflow. Please check logs for details.")

        await self.orders.update(order.id, raw_payload=_merged_payload(order, {"comment": comment}))
        return OrderActionResponse(message="Comment updated successfully.", order=remote)

    async def update_status(
        self,
        order_id: int,
        action: str,
        send_email: bool = False,
        refund_reason: Optional[str] = None,
    ) -> OrderActionResponse:
        if action not in STATUS_ACTIONS:
            raise OrderActionFailed("Invalid status action.")

        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found")
        ensure_status_change_allowed(order)

        order, store, client, token = await self._load(order_id)
        site_id, remote_id = store.platform_site_id, order.platform_order_id
        if action == "fulfill":
            result = await client.fulfill_order(site_id, remote_id, token, send_email)
        elif action == "unfulfill":
            result = await client.unfulfill_order(site_id, remote_id, token)
        else:
            result = await client.refund_order(site_id, remote_id, token, refund_reason or None)
        remote = self._check_result(
            result, store, "Failed to update order status on Webflow. Please check logs for details.",
        )

        new_status, message = STATUS_ACTIONS[action]
        raw = dict(order.raw_payload or {})
        raw["payload"] = remote
        await self.orders.update(order.id, status=new_status, raw_payload=raw)
        await self.activity.log(f"Order {remote_id} {action} pushed to platform", "success", {
            "event_type": "order_status",
            "order_id": order.id,
            "new_status": new_status,
        }, store_id=store.id)
        return OrderActionResponse(message=message, order=remote, new_status=new_status)
