"""
Store management endpoints - list/add/remove stores, browse remote sites and
connect a store to one of them (registers webhooks).
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storesync.api.auth import get_current_operator
from storesync.api.deps import get_activity_logger, get_client_factory
from storesync.database import get_db
from storesync.integrations.platform_base import PlatformType
from storesync.schemas.api_responses import (
    ConnectSiteRequest,
    RemoteSite,
    StoreCreateRequest,
    StoreSummary,
)
from storesync.services.activity_log import ActivityLogger
from storesync.services.store_connection import StoreNotConnected, connect_site, list_remote_sites
from storesync.services.stores import StoreRepository, store_summary

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/stores", tags=["stores"])


async def _get_store_or_404(repo: StoreRepository, store_id: int):
    store = await repo.get(store_id)
    if store is None:
        raise HTTPException(status_code=404, detail="Store not found")
    return store


@router.get("", response_model=list[StoreSummary])
async def list_stores(
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    return [store_summary(store) for store in await StoreRepository(db).list()]


@router.post("", response_model=StoreSummary, status_code=201)
async def create_store(
    payload: StoreCreateRequest,
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    platform = PlatformType.parse(payload.platform_type)
    if platform is None:
        raise HTTPException(status_code=400, detail=f"Unsupported platform: {payload.platform_type}")

    store = await StoreRepository(db).create(
        payload.title.strip(), platform.value, platform_site_id=payload.platform_site_id or None,
    )
    await activity.log("Store created", "success", {"title": store.title}, store_id=store.id)
    return store_summary(store)


@router.get("/{store_id}/sites", response_model=list[RemoteSite])
async def get_remote_sites(
    store_id: int,
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    client_factory=Depends(get_client_factory),
):
    """Sites the store's token can see, for picking the one to connect."""
    store = await _get_store_or_404(StoreRepository(db), store_id)
    try:
        sites = await list_remote_sites(store, client_factory, activity)
    except StoreNotConnected as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [RemoteSite(**site) for site in sites]


@router.post("/{store_id}/connect", response_model=StoreSummary)
async def connect_store_site(
    store_id: int,
    payload: ConnectSiteRequest,
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    client_factory=Depends(get_client_factory),
):
    store = await _get_store_or_404(StoreRepository(db), store_id)
    try:
        store = await connect_site(store, payload.site_id.strip(), client_factory, activity)
    except StoreNotConnected as e:
        raise HTTPException(status_code=400, detail=str(e))

    if payload.title:
        store.title = payload.title.strip()
    await db.flush()
    return store_summary(store)


@router.delete("/{store_id}", status_code=204)
async def delete_store(
    store_id: int,
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
):
    """Stores that still own orders cannot be deleted."""
    repo = StoreRepository(db)
    store = await _get_store_or_404(repo, store_id)
    if await repo.order_count(store.id):
        raise HTTPException(status_code=409, detail="Store has orders and cannot be deleted")

    await repo.delete(store)
    await activity.log("Store deleted", "info", {"title": store.title}, store_id=store_id)
