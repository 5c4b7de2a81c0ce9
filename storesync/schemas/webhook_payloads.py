"""
Inbound webhook envelope.
Platforms disagree on key casing, so both spellings are accepted. Fields are
typed loosely: a malformed envelope must still be logged and acknowledged.
"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class WebhookEnvelope(BaseModel):
    """`{triggerType|event_type, siteId|site_id, payload: {...}}`"""
    model_config = ConfigDict(extra="allow")

    trigger_type: Optional[Any] = Field(default=None, alias="triggerType")
    event_type: Optional[Any] = None
    site_id_camel: Optional[Any] = Field(default=None, alias="siteId")
    site_id: Optional[Any] = None
    payload: Optional[Any] = None

    @property
    def resolved_event_type(self) -> str:
        value = self.trigger_type or self.event_type
        return str(value) if value else "unknown"

    @property
    def resolved_site_id(self) -> Optional[str]:
        value = self.site_id_camel or self.site_id
        return str(value) if value not in (None, "") else None


class WebhookAckResponse(BaseModel):
    success: bool = True
