"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from storesync.api.webhooks import router as webhooks_router
from storesync.api.oauth import router as oauth_router
from storesync.api.stores import router as stores_router
from storesync.api.orders import router as orders_router
from storesync.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(webhooks_router)
api_router.include_router(oauth_router)
api_router.include_router(stores_router)
api_router.include_router(orders_router)
api_router.include_router(health_router)
