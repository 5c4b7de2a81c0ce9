"""
Inbound platform webhooks and the self-hosted shop sync endpoint.

The webhook endpoint acknowledges every delivery with 200 once routing is
done, including bodies it cannot parse; failures end up in the activity log.
No signature verification is performed on deliveries.
"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from storesync.api.auth import get_current_operator
from storesync.api.deps import get_activity_logger, get_order_store
from storesync.database import get_db
from storesync.schemas.api_responses import SyncResponse
from storesync.schemas.webhook_payloads import WebhookAckResponse
from storesync.services.activity_log import ActivityLogger
from storesync.services.order_normalizer import InvalidOrderData
from storesync.services.order_store import OrderStore
from storesync.services.self_hosted_sync import sync_self_hosted_order
from storesync.services.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["webhooks"])


@router.post("/webhook", response_model=WebhookAckResponse)
async def receive_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    orders: OrderStore = Depends(get_order_store),
):
    """Platform event callback. Always acknowledged."""
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None

    try:
        outcome = await WebhookDispatcher(db, activity, order_store=orders).dispatch(body)
        logger.info("Webhook dispatched: %s", outcome.value)
    except Exception:
        logger.exception("Webhook dispatch failed")
    return WebhookAckResponse(success=True)


@router.post("/sync/woocommerce", response_model=SyncResponse)
async def sync_woocommerce_order(
    request: Request,
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    orders: OrderStore = Depends(get_order_store),
):
    """Order push from the self-hosted shop."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Order payload must be a JSON object")

    try:
        return await sync_self_hosted_order(db, body, activity, order_store=orders)
    except InvalidOrderData as e:
        raise HTTPException(status_code=422, detail=str(e))
