"""
Store repository - lookups used by webhook resolution, OAuth and the stores API.
"""
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storesync.models.order import Order
from storesync.models.store import Store
from storesync.schemas.api_responses import StoreSummary

logger = logging.getLogger(__name__)


def store_summary(store: Store) -> StoreSummary:
    return StoreSummary(
        id=store.id,
        title=store.title,
        platform_type=store.platform_type,
        platform_site_id=store.platform_site_id,
        webhook_status=store.webhook_status,
        connected=bool(store.oauth_credentials_encrypted),
        created_at=store.created_at,
        updated_at=store.updated_at,
    )


class StoreRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, store_id: int) -> Optional[Store]:
        return await self.db.get(Store, store_id)

    async def list(self, platform_type: Optional[str] = None) -> list[Store]:
        query = select(Store).order_by(Store.id)
        if platform_type:
            query = query.where(Store.platform_type == platform_type)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_by_site_id(self, site_id: str) -> Optional[Store]:
        result = await self.db.execute(
            select(Store).where(Store.platform_site_id == str(site_id)).order_by(Store.id).limit(1)
        )
        return result.scalar_one_or_none()

    async def first_connected(self, platform_type: str) -> Optional[Store]:
        """Lowest-id store of the platform that has a site id."""
        result = await self.db.execute(
            select(Store)
            .where(Store.platform_type == platform_type, Store.platform_site_id.is_not(None))
            .order_by(Store.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create(self, title: str, platform_type: str, **fields) -> Store:
        store = Store(title=title, platform_type=platform_type, **fields)
        self.db.add(store)
        await self.db.flush()
        logger.info(
            "Store created: %s (%s)", store.id, platform_type,
            extra={"store_id": store.id, "platform": platform_type},
        )
        return store

    async def get_or_create_by_site(
        self, platform_type: str, site_id: str, title: str, **fields,
    ) -> tuple[Store, bool]:
        result = await self.db.execute(
            select(Store)
            .where(Store.platform_type == platform_type, Store.platform_site_id == site_id)
            .order_by(Store.id)
            .limit(1)
        )
        store = result.scalar_one_or_none()
        if store is not None:
            return store, False
        store = await self.create(title, platform_type, platform_site_id=site_id, **fields)
        return store, True

    async def order_count(self, store_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Order.id)).where(Order.store_id == store_id)
        )
        return result.scalar() or 0

    async def delete(self, store: Store) -> None:
        await self.db.delete(store)
        await self.db.flush()
