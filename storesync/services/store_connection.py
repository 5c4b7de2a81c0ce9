"""
Store connection - binds a store to a remote site and registers webhooks.
"""
import logging

from storesync.models.store import Store

logger = logging.getLogger(__name__)


class StoreNotConnected(Exception):
    """The store has no OAuth token or its platform has no remote API."""
    pass


async def list_remote_sites(store: Store, client_factory, activity=None) -> list[dict]:
    client = client_factory(store.platform_type, activity=activity)
    if client is None:
        raise StoreNotConnected(f"{store.platform_type} stores have no remote sites")
    if not store.access_token:
        raise StoreNotConnected("Store is not authorized yet")
    return await client.list_remote_stores(store.access_token)


async def connect_site(store: Store, site_id: str, client_factory, activity) -> Store:
    """
    Set the store's site and make sure our webhooks are registered there.
    webhook_status ends up "active" when hooks exist or were created, else "failed".
    """
    client = client_factory(store.platform_type, activity=activity)
    if client is None:
        raise StoreNotConnected(f"{store.platform_type} stores cannot be connected remotely")
    token = store.access_token
    if not token:
        raise StoreNotConnected("Store is not authorized yet")

    existing = client.registered_triggers(await client.get_webhooks(site_id, token))
    has_webhooks = all(trigger in existing for trigger in client.trigger_types)
    same_site = store.platform_site_id == site_id
    store.platform_site_id = site_id

    if has_webhooks and same_site and store.webhook_status == "active":
        await activity.log("Webhooks already exist, skipping creation", "info", {
            "event_type": "webhook_creation",
            "site_id": site_id,
        }, store_id=store.id)
        return store

    result = await client.create_webhooks(site_id, token)
    if result:
        store.webhook_status = "active"
    else:
        store.webhook_status = "active" if has_webhooks else "failed"

    await activity.log_webhook_creation(
        store.platform_type, site_id, bool(result),
        {"created": len(result["webhooks"]) if result else 0},
        store_id=store.id,
    )
    logger.info(
        "Store %s connected to site %s (webhooks %s)", store.id, site_id, store.webhook_status,
        extra={"store_id": store.id, "site_id": site_id},
    )
    return store
