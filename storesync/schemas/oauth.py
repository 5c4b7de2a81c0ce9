"""
OAuth token bundle and client credential schemas.
"""
from typing import Optional
from pydantic import BaseModel


class OAuthCredentials(BaseModel):
    """Token bundle persisted on a Store. Tokens are opaque and stored verbatim."""
    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None


class ClientCredentials(BaseModel):
    """Resolved OAuth app credentials for one platform."""
    client_id: str = ""
    client_secret: str = ""
    source: str = "none"  # environment, stored, none
    read_only: bool = False

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


class OAuthSettingsUpdate(BaseModel):
    client_id: str
    client_secret: str


class OAuthSettingsResponse(BaseModel):
    platform: str
    client_id: str
    has_client_secret: bool
    source: str
    read_only: bool


class AuthorizationUrlResponse(BaseModel):
    url: str
    state: str


class OAuthCallbackResponse(BaseModel):
    store_id: int
    action: str  # token_generated, token_regenerated
