"""
Order store gateway - the only writer of the orders table.

(platform, platform_order_id) uniqueness is enforced by the database; upsert
turns a losing concurrent insert into an update, so replayed or duplicated
webhook deliveries converge on one row (last write wins).
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storesync.models.order import Order
from storesync.schemas.orders import NormalizedOrder, OrderFilters, OrderSummary
from storesync.services.order_cache import OrderCache

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    "id": Order.id,
    "order_date": Order.order_date,
    "order_number": Order.order_number,
    "status": Order.status,
    "total_amount": Order.total_amount,
    "customer_name": Order.customer_name,
    "created_at": Order.created_at,
    "updated_at": Order.updated_at,
}

UPDATABLE_FIELDS = (
    "store_id",
    "order_number",
    "status",
    "customer_name",
    "customer_email",
    "total_amount",
    "currency",
    "order_date",
    "raw_payload",
)

TERMINAL_STATUSES = ("refunded",)


class DuplicateOrder(Exception):
    """An order with the same (platform, platform_order_id) already exists."""
    pass


class OrderStatusLocked(Exception):
    """The order is in a terminal status and cannot change status again."""

    def __init__(self, order_id: int, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} is {status}; its status can no longer be changed")


def ensure_status_change_allowed(order: Order) -> None:
    if order.status in TERMINAL_STATUSES:
        raise OrderStatusLocked(order.id, order.status)


class OrderStore:
    def __init__(self, db: AsyncSession, cache: Optional[OrderCache] = None):
        self.db = db
        self.cache = cache
        self.dirty = False

    async def _invalidate(self) -> None:
        self.dirty = True
        if self.cache is not None:
            await self.cache.invalidate()

    async def commit(self) -> None:
        """
        Commit the session, then clear the listing cache again.

        A concurrent reader can repopulate the cache from pre-commit data
        between a flush and the commit, so writes are only visible to
        cached listings once this second clear has run.
        """
        if self.dirty:
            await self.db.commit()
        await self.invalidate_if_dirty()

    async def invalidate_if_dirty(self) -> None:
        if self.dirty:
            self.dirty = False
            if self.cache is not None:
                await self.cache.invalidate()

    async def get(self, order_id: int) -> Optional[Order]:
        return await self.db.get(Order, order_id)

    async def get_by_platform_order_id(self, platform: str, platform_order_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(
                Order.platform == platform,
                Order.platform_order_id == str(platform_order_id),
            ).limit(1)
        )
        return result.scalar_one_or_none()

    async def create(self, normalized: NormalizedOrder) -> Order:
        """Insert a new order. Raises DuplicateOrder when the unique key is taken."""
        order = Order(**normalized.model_dump())
        try:
            async with self.db.begin_nested():
                self.db.add(order)
                await self.db.flush()
        except IntegrityError as e:
            raise DuplicateOrder(
                f"{normalized.platform}:{normalized.platform_order_id} already exists"
            ) from e

        await self._invalidate()
        logger.info(
            "Order created: %s:%s",
            normalized.platform, normalized.platform_order_id,
            extra={"platform": normalized.platform, "platform_order_id": normalized.platform_order_id},
        )
        return order

    def _apply(self, order: Order, fields: dict) -> None:
        for key, value in fields.items():
            if key in UPDATABLE_FIELDS:
                setattr(order, key, value)
        order.updated_at = datetime.now(timezone.utc)

    async def upsert(self, normalized: NormalizedOrder) -> tuple[Order, bool]:
        """Create or update by (platform, platform_order_id). Returns (order, created)."""
        existing = await self.get_by_platform_order_id(
            normalized.platform, normalized.platform_order_id,
        )
        if existing is None:
            try:
                return await self.create(normalized), True
            except DuplicateOrder:
                # Lost a race with a concurrent delivery of the same order
                existing = await self.get_by_platform_order_id(
                    normalized.platform, normalized.platform_order_id,
                )
                if existing is None:
                    raise

        fields = normalized.model_dump(exclude={"platform", "platform_order_id"})
        if fields.get("store_id") is None:
            fields.pop("store_id")
        self._apply(existing, fields)
        await self.db.flush()
        await self._invalidate()
        logger.info(
            "Order updated: %s:%s",
            normalized.platform, normalized.platform_order_id,
            extra={"platform": normalized.platform, "platform_order_id": normalized.platform_order_id},
        )
        return existing, False

    async def update(self, order_id: int, **fields) -> Optional[Order]:
        order = await self.get(order_id)
        if order is None:
            return None
        self._apply(order, fields)
        await self.db.flush()
        await self._invalidate()
        return order

    async def delete(self, order_id: int) -> bool:
        order = await self.get(order_id)
        if order is None:
            return False
        await self.db.delete(order)
        await self.db.flush()
        await self._invalidate()
        return True

    def _filtered(self, query, filters: OrderFilters):
        if filters.store_id is not None:
            query = query.where(Order.store_id == filters.store_id)
        if filters.platform:
            query = query.where(Order.platform == filters.platform)
        if filters.status:
            query = query.where(Order.status == filters.status)
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.where(or_(
                Order.order_number.ilike(pattern),
                Order.customer_name.ilike(pattern),
                Order.customer_email.ilike(pattern),
                Order.platform_order_id.ilike(pattern),
            ))
        return query

    async def list(self, filters: Optional[OrderFilters] = None) -> list[OrderSummary]:
        filters = filters or OrderFilters()
        signature = filters.model_dump()

        if self.cache is not None:
            cached = await self.cache.get("list", signature)
            if cached is not None:
                return [OrderSummary.model_validate(row) for row in cached]

        column = SORTABLE_COLUMNS.get(filters.order_by, Order.order_date)
        ordering = column.asc() if filters.direction == "asc" else column.desc()
        query = self._filtered(select(Order), filters).order_by(ordering, Order.id.desc())
        result = await self.db.execute(query.limit(filters.limit).offset(filters.offset))
        orders = [OrderSummary.model_validate(order) for order in result.scalars().all()]

        if self.cache is not None:
            await self.cache.set("list", signature, [o.model_dump(mode="json") for o in orders])
        return orders

    async def count(self, filters: Optional[OrderFilters] = None) -> int:
        filters = filters or OrderFilters()
        signature = filters.model_dump(exclude={"order_by", "direction", "limit", "offset"})

        if self.cache is not None:
            cached = await self.cache.get("count", signature)
            if cached is not None:
                return int(cached)

        result = await self.db.execute(self._filtered(select(func.count(Order.id)), filters))
        total = result.scalar() or 0

        if self.cache is not None:
            await self.cache.set("count", signature, total)
        return total
