"""
API response/request schemas for store management and the activity log.
"""
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field


class StoreSummary(BaseModel):
    id: int
    title: str
    platform_type: str
    platform_site_id: Optional[str] = None
    webhook_status: str
    connected: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StoreCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    platform_type: str
    platform_site_id: Optional[str] = None


class ConnectSiteRequest(BaseModel):
    site_id: str = Field(min_length=1)
    title: Optional[str] = None


class RemoteSite(BaseModel):
    id: str
    name: str = ""
    short_name: str = ""


class LogEntrySummary(BaseModel):
    id: int
    store_id: Optional[int] = None
    event_type: str
    status: str
    message: str
    context: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None


class LogListResponse(BaseModel):
    entries: list[LogEntrySummary]
    total: int


class SyncResponse(BaseModel):
    order_id: int
    created: bool
