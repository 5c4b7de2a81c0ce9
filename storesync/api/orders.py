"""
Order endpoints - listing and details, operator actions pushed to the
platform, and the activity log.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from storesync.api.auth import get_current_operator
from storesync.api.deps import get_activity_logger, get_client_factory, get_order_store
from storesync.database import get_db
from storesync.schemas.api_responses import LogEntrySummary, LogListResponse
from storesync.schemas.orders import (
    CommentUpdateRequest,
    OrderActionResponse,
    OrderDetail,
    OrderFilters,
    OrderListResponse,
    ShippingUpdateRequest,
    StatusUpdateRequest,
)
from storesync.services.activity_log import ActivityLogger
from storesync.services.order_actions import (
    MissingScopes,
    OrderActionFailed,
    OrderActions,
    OrderNotFound,
)
from storesync.services.order_store import OrderStatusLocked, OrderStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["orders"])


@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    store_id: Optional[int] = Query(default=None),
    platform: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    order_by: str = Query(default="order_date"),
    direction: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=20, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    operator_id: str = Depends(get_current_operator),
    orders: OrderStore = Depends(get_order_store),
):
    filters = OrderFilters(
        store_id=store_id,
        platform=platform,
        status=status,
        search=search or None,
        order_by=order_by,
        direction=direction,
        limit=limit,
        offset=offset,
    )
    return OrderListResponse(
        orders=await orders.list(filters),
        total=await orders.count(filters),
        limit=limit,
        offset=offset,
    )


@router.get("/orders/{order_id}", response_model=OrderDetail)
async def get_order(
    order_id: int,
    operator_id: str = Depends(get_current_operator),
    orders: OrderStore = Depends(get_order_store),
):
    order = await orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return OrderDetail.model_validate(order)


async def _run_action(db: AsyncSession, action):
    """Map action failures onto HTTP responses. The activity log is kept either way."""
    try:
        return await action
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OrderStatusLocked as e:
        raise HTTPException(status_code=409, detail=str(e))
    except MissingScopes as e:
        await db.commit()
        return JSONResponse(status_code=403, content={
            "detail": str(e),
            "error": "MISSING_SCOPES",
            "reconnect_url": e.reconnect_url,
        })
    except OrderActionFailed as e:
        await db.commit()
        raise HTTPException(status_code=400, detail=str(e))


def _actions(db, activity, orders, client_factory) -> OrderActions:
    return OrderActions(db, activity, client_factory=client_factory, order_store=orders)


@router.post("/orders/{order_id}/shipping", response_model=OrderActionResponse)
async def update_shipping(
    order_id: int,
    payload: ShippingUpdateRequest,
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    orders: OrderStore = Depends(get_order_store),
    client_factory=Depends(get_client_factory),
):
    actions = _actions(db, activity, orders, client_factory)
    return await _run_action(db, actions.update_shipping(
        order_id,
        shipping_provider=payload.shipping_provider,
        shipping_tracking=payload.shipping_tracking,
        shipping_tracking_url=payload.shipping_tracking_url,
    ))


@router.post("/orders/{order_id}/comment", response_model=OrderActionResponse)
async def update_comment(
    order_id: int,
    payload: CommentUpdateRequest,
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    orders: OrderStore = Depends(get_order_store),
    client_factory=Depends(get_client_factory),
):
    actions = _actions(db, activity, orders, client_factory)
    return await _run_action(db, actions.update_comment(order_id, payload.comment))


@router.post("/orders/{order_id}/status", response_model=OrderActionResponse)
async def update_status(
    order_id: int,
    payload: StatusUpdateRequest,
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    orders: OrderStore = Depends(get_order_store),
    client_factory=Depends(get_client_factory),
):
    """fulfill -> completed, unfulfill -> pending, refund -> refunded (terminal)."""
    actions = _actions(db, activity, orders, client_factory)
    return await _run_action(db, actions.update_status(
        order_id,
        payload.action,
        send_email=payload.send_fulfillment_email,
        refund_reason=payload.refund_reason,
    ))


@router.get("/logs", response_model=LogListResponse)
async def list_logs(
    store_id: Optional[int] = Query(default=None),
    event_type: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    operator_id: str = Depends(get_current_operator),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    repo = activity.repository
    entries = await repo.list(store_id=store_id, event_type=event_type, status=status, limit=limit, offset=offset)
    total = await repo.count(store_id=store_id, event_type=event_type, status=status)
    return LogListResponse(
        entries=[
            LogEntrySummary(
                id=entry.id,
                store_id=entry.store_id,
                event_type=entry.event_type,
                status=entry.status,
                message=entry.message,
                context=(entry.payload or {}).get("context"),
                created_at=entry.created_at,
            )
            for entry in entries
        ],
        total=total,
    )
