"""
Request-scoped service dependencies. Each request gets its own session,
activity logger and order store.
"""
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storesync.database import get_db
from storesync.integrations.registry import get_platform_client
from storesync.services.activity_log import ActivityLogger, build_activity_logger
from storesync.services.oauth import OAuthStateStore
from storesync.services.order_cache import OrderCache
from storesync.services.order_store import OrderStore


async def get_activity_logger(db: AsyncSession = Depends(get_db)) -> ActivityLogger:
    return build_activity_logger(db)


async def get_order_store(db: AsyncSession = Depends(get_db)) -> AsyncGenerator[OrderStore, None]:
    """
    Order store for one request. Order writes are committed here, before
    get_db exits, so the listing cache is cleared after the data is visible.
    """
    orders = OrderStore(db, cache=OrderCache())
    try:
        yield orders
        await orders.commit()
    finally:
        await orders.invalidate_if_dirty()


def get_client_factory():
    return get_platform_client


def get_state_store() -> OAuthStateStore:
    return OAuthStateStore()
