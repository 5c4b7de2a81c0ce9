"""
Self-hosted shop sync - the woocommerce shop pushes its orders straight to us.

The shop is identified by the configured site URL; its store record is created
on the first push and needs no OAuth credentials.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from storesync.config import get_settings
from storesync.integrations.platform_base import PlatformType
from storesync.schemas.api_responses import SyncResponse
from storesync.services.order_normalizer import normalize_order
from storesync.services.order_store import OrderStore
from storesync.services.stores import StoreRepository

logger = logging.getLogger(__name__)


async def sync_self_hosted_order(
    db: AsyncSession, body: dict, activity, order_store: OrderStore = None,
) -> SyncResponse:
    """
    Normalize and upsert one pushed order.
    Raises InvalidOrderData when the payload has no order id.
    """
    settings = get_settings()
    orders = order_store or OrderStore(db)

    store, created_store = await StoreRepository(db).get_or_create_by_site(
        PlatformType.WOOCOMMERCE.value,
        settings.self_hosted_site_url,
        settings.self_hosted_site_name,
        webhook_status="active",
    )
    if created_store:
        await activity.log("Store created", "success", {"site_url": settings.self_hosted_site_url}, store_id=store.id)

    normalized = normalize_order(PlatformType.WOOCOMMERCE, body, store.id)
    order, created = await orders.upsert(normalized)
    await activity.log(
        "Order %s %s from shop sync" % (normalized.platform_order_id, "created" if created else "updated"),
        "success" if created else "info",
        {"event_type": "order_sync", "order_id": order.id},
        store_id=store.id,
    )
    return SyncResponse(order_id=order.id, created=created)
