"""
OAuth endpoints - start authorization, handle the platform callback and
manage stored OAuth app credentials.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storesync.api.auth import get_current_operator
from storesync.api.deps import get_activity_logger, get_client_factory, get_state_store
from storesync.config import get_settings
from storesync.database import get_db
from storesync.integrations.platform_base import PlatformType
from storesync.schemas.oauth import (
    AuthorizationUrlResponse,
    ClientCredentials,
    OAuthCallbackResponse,
    OAuthSettingsResponse,
    OAuthSettingsUpdate,
)
from storesync.services.activity_log import ActivityLogger
from storesync.services.oauth import (
    CredentialsReadOnly,
    OAuthCallbackRejected,
    OAuthExchangeFailed,
    OAuthResponseInvalid,
    OAuthStateStore,
    SecurityCheckFailed,
    complete_oauth_callback,
    compose_state,
    resolve_client_credentials,
    save_client_credentials,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/oauth", tags=["oauth"])


def _settings_response(platform: PlatformType, creds: ClientCredentials) -> OAuthSettingsResponse:
    return OAuthSettingsResponse(
        platform=platform.value,
        client_id=creds.client_id,
        has_client_secret=bool(creds.client_secret),
        source=creds.source,
        read_only=creds.read_only,
    )


def _oauth_platform(platform: str, client_factory) -> PlatformType:
    parsed = PlatformType.parse(platform)
    if parsed is None or client_factory(parsed) is None:
        raise HTTPException(status_code=404, detail=f"OAuth is not available for {platform}")
    return parsed


@router.get("/callback", response_model=OAuthCallbackResponse)
async def oauth_callback(
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    activity: ActivityLogger = Depends(get_activity_logger),
    state_store: OAuthStateStore = Depends(get_state_store),
    client_factory=Depends(get_client_factory),
):
    """Platform redirect target after the operator approves access."""
    try:
        return await complete_oauth_callback(
            db, activity, state_store, operator_id, code, state, error,
            client_factory=client_factory,
        )
    except SecurityCheckFailed as e:
        raise HTTPException(status_code=403, detail=str(e))
    except OAuthCallbackRejected as e:
        await db.commit()
        raise HTTPException(status_code=400, detail=str(e))
    except (OAuthExchangeFailed, OAuthResponseInvalid):
        # keep the failed-attempt log entry
        await db.commit()
        raise HTTPException(
            status_code=502,
            detail="Failed to obtain OAuth Bearer access token. Please try again.",
        )


@router.get("/{platform}/authorize", response_model=AuthorizationUrlResponse)
async def authorize(
    platform: str,
    store_id: Optional[int] = Query(default=None),
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    state_store: OAuthStateStore = Depends(get_state_store),
    client_factory=Depends(get_client_factory),
):
    """Authorization URL for connecting a new store or re-authorizing `store_id`."""
    parsed = _oauth_platform(platform, client_factory)
    creds = await resolve_client_credentials(db, parsed)
    if not creds.client_id:
        raise HTTPException(status_code=400, detail=f"{parsed.value} OAuth client id is not configured")

    try:
        nonce = await state_store.issue(operator_id)
    except Exception as e:
        logger.error("Failed to issue OAuth state: %s", str(e))
        raise HTTPException(status_code=503, detail="OAuth is temporarily unavailable")

    state = compose_state(nonce, store_id)
    url = client_factory(parsed).authorization_url(
        creds.client_id, get_settings().oauth_redirect_uri, state,
    )
    return AuthorizationUrlResponse(url=url, state=state)


@router.get("/{platform}/settings", response_model=OAuthSettingsResponse)
async def get_oauth_settings(
    platform: str,
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    client_factory=Depends(get_client_factory),
):
    parsed = _oauth_platform(platform, client_factory)
    return _settings_response(parsed, await resolve_client_credentials(db, parsed))


@router.put("/{platform}/settings", response_model=OAuthSettingsResponse)
async def update_oauth_settings(
    platform: str,
    payload: OAuthSettingsUpdate,
    operator_id: str = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
    client_factory=Depends(get_client_factory),
):
    """Store OAuth app credentials. Refused while the environment defines them."""
    parsed = _oauth_platform(platform, client_factory)
    try:
        creds = await save_client_credentials(db, parsed, payload.client_id, payload.client_secret)
    except CredentialsReadOnly as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _settings_response(parsed, creds)
