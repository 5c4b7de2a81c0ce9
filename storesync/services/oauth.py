"""
OAuth manager - authorization URLs, anti-forgery state, code exchange and
client credential resolution for platform OAuth apps.

Tokens are opaque: they are stored exactly as the platform returned them and
never run through any text sanitizer.
"""
import logging
import secrets
from typing import Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from storesync.config import get_settings
from storesync.integrations.platform_base import PlatformType
from storesync.models.integration_setting import IntegrationSetting
from storesync.schemas.oauth import ClientCredentials, OAuthCallbackResponse, OAuthCredentials
from storesync.services.stores import StoreRepository
from storesync.utils.encryption import decrypt_value, encrypt_value
from storesync.utils.redis import get_redis

logger = logging.getLogger(__name__)

STATE_SEPARATOR = "|"
STATE_KEY_PREFIX = "storesync:oauth_state"


class SecurityCheckFailed(Exception):
    """Anti-forgery state missing, mismatched, reused or expired."""
    pass


class OAuthExchangeFailed(Exception):
    """Token endpoint unreachable or returned a non-2xx response."""
    pass


class OAuthResponseInvalid(Exception):
    """Token endpoint answered 2xx without a usable access_token."""
    pass


class OAuthCallbackRejected(Exception):
    """The platform reported an error or sent no authorization code."""
    pass


class CredentialsReadOnly(Exception):
    """Client credentials come from the environment and cannot be edited."""
    pass


# Authorization request

def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scopes,
    state: str,
    *,
    auth_url: str,
) -> str:
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "scope": " ".join(scopes),
        "state": state,
    }
    return f"{auth_url}?{urlencode(params)}"


def compose_state(nonce: str, store_id: Optional[int] = None) -> str:
    if not store_id:
        return nonce
    return f"{nonce}{STATE_SEPARATOR}{store_id}"


def split_state(state: str) -> tuple[str, Optional[int]]:
    """`<nonce>|<store_id>` -> (nonce, store_id). A non-integer suffix means no store."""
    if STATE_SEPARATOR not in (state or ""):
        return state or "", None
    nonce, suffix = state.rsplit(STATE_SEPARATOR, 1)
    try:
        store_id = int(suffix)
    except ValueError:
        return nonce, None
    return nonce, store_id if store_id > 0 else None


# Token exchange

def _coerce_expires_in(value) -> Optional[int]:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return None


async def exchange_code_for_token(
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    *,
    token_url: str,
    timeout: Optional[float] = None,
) -> OAuthCredentials:
    """
    Exchange an authorization code for a token bundle.

    Raises:
        OAuthExchangeFailed: transport error or non-2xx response.
        OAuthResponseInvalid: body is not JSON or has no access_token.
    """
    form = {
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
        "grant_type": "authorization_code",
        "redirect_uri": redirect_uri,
    }
    client_kwargs = {} if timeout is None else {"timeout": timeout}
    try:
        async with httpx.AsyncClient(**client_kwargs) as client:
            response = await client.post(
                token_url, data=form, headers={"Accept": "application/json"},
            )
    except httpx.HTTPError as e:
        raise OAuthExchangeFailed(f"Token request failed: {e}") from e

    if not 200 <= response.status_code < 300:
        raise OAuthExchangeFailed(
            f"Token endpoint returned HTTP {response.status_code}: {response.text[:500]}"
        )

    try:
        data = response.json()
    except ValueError as e:
        raise OAuthResponseInvalid("Token endpoint returned a non-JSON body") from e

    if not isinstance(data, dict) or not data.get("access_token"):
        raise OAuthResponseInvalid("Token response has no access_token")

    return OAuthCredentials(
        access_token=data["access_token"],
        token_type=data.get("token_type") or "Bearer",
        expires_in=_coerce_expires_in(data.get("expires_in")),
        refresh_token=data.get("refresh_token") or None,
    )


# Anti-forgery state

class OAuthStateStore:
    """Single-use, operator-scoped nonces kept in Redis."""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds or get_settings().oauth_state_ttl_seconds

    def _key(self, operator_id: str, nonce: str) -> str:
        return f"{STATE_KEY_PREFIX}:{operator_id}:{nonce}"

    async def issue(self, operator_id: str) -> str:
        nonce = secrets.token_urlsafe(24)
        redis = await get_redis()
        await redis.set(self._key(operator_id, nonce), "1", ex=self.ttl_seconds)
        return nonce

    async def verify(self, operator_id: str, nonce: str) -> None:
        """Consume the nonce. Raises SecurityCheckFailed unless it was live and ours."""
        if not nonce or STATE_SEPARATOR in nonce:
            raise SecurityCheckFailed("Security check failed.")
        try:
            redis = await get_redis()
            removed = await redis.delete(self._key(operator_id, nonce))
        except Exception as e:
            logger.warning("OAuth state check unavailable: %s", str(e))
            raise SecurityCheckFailed("Security check failed.") from e
        if not removed:
            raise SecurityCheckFailed("Security check failed.")


# Client credentials

def _setting_keys(platform: PlatformType) -> tuple[str, str]:
    return f"{platform.value}_client_id", f"{platform.value}_client_secret"


async def _stored_value(db: AsyncSession, key: str) -> str:
    row = await db.get(IntegrationSetting, key)
    if row is None or not row.value:
        return ""
    return decrypt_value(row.value)


async def resolve_client_credentials(db: AsyncSession, platform) -> ClientCredentials:
    """
    Environment values win over stored rows, field by field. Credentials are
    read-only whenever the environment supplies the client id.
    """
    platform = PlatformType.parse(platform)
    if platform is None:
        return ClientCredentials()

    settings = get_settings()
    env_id = getattr(settings, f"{platform.value}_client_id", "") or ""
    env_secret = getattr(settings, f"{platform.value}_client_secret", "") or ""
    id_key, secret_key = _setting_keys(platform)

    client_id = env_id or await _stored_value(db, id_key)
    client_secret = env_secret or await _stored_value(db, secret_key)

    if env_id or env_secret:
        source = "environment"
    elif client_id or client_secret:
        source = "stored"
    else:
        source = "none"

    return ClientCredentials(
        client_id=client_id,
        client_secret=client_secret,
        source=source,
        read_only=bool(env_id),
    )


async def save_client_credentials(
    db: AsyncSession, platform, client_id: str, client_secret: str,
) -> ClientCredentials:
    platform = PlatformType.parse(platform)
    current = await resolve_client_credentials(db, platform)
    if current.read_only:
        raise CredentialsReadOnly(
            f"{platform.value} client credentials are set by the environment"
        )

    id_key, secret_key = _setting_keys(platform)
    for key, value in ((id_key, client_id.strip()), (secret_key, client_secret.strip())):
        row = await db.get(IntegrationSetting, key)
        stored = encrypt_value(value) if key == secret_key else value
        if row is None:
            db.add(IntegrationSetting(key=key, value=stored))
        else:
            row.value = stored
    await db.flush()
    logger.info("Stored OAuth client credentials updated for %s", platform.value)
    return await resolve_client_credentials(db, platform)


# Callback

async def complete_oauth_callback(
    db: AsyncSession,
    activity,
    state_store: OAuthStateStore,
    operator_id: str,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str] = None,
    client_factory=None,
) -> OAuthCallbackResponse:
    """
    Verify state, exchange the code and attach the token bundle to the store
    named in the state, or to a new store when there is none.
    """
    if client_factory is None:
        from storesync.integrations.registry import get_platform_client as client_factory

    nonce, store_id = split_state(state or "")
    await state_store.verify(operator_id, nonce)

    stores = StoreRepository(db)
    store = await stores.get(store_id) if store_id else None
    platform = PlatformType.parse(store.platform_type) if store else PlatformType.WEBFLOW

    if error:
        await activity.log_oauth(platform.value, False, {"error": error}, store_id=store_id)
        raise OAuthCallbackRejected("OAuth authorization failed.")
    if not code:
        raise OAuthCallbackRejected("OAuth code not provided.")

    client = client_factory(platform, activity=activity)
    if client is None:
        raise OAuthCallbackRejected("Invalid store type.")

    settings = get_settings()
    app = await resolve_client_credentials(db, platform)
    try:
        credentials = await client.exchange_code(
            code, app.client_id, app.client_secret, settings.oauth_redirect_uri,
        )
    except (OAuthExchangeFailed, OAuthResponseInvalid) as e:
        logger.warning("OAuth exchange failed for %s: %s", platform.value, str(e))
        await activity.log_oauth(platform.value, False, {"error": str(e)}, store_id=store_id)
        raise

    if store is not None:
        store.credentials = credentials
        await db.flush()
        await activity.log_oauth(platform.value, True, {"action": "token_regenerated"}, store_id=store.id)
        return OAuthCallbackResponse(store_id=store.id, action="token_regenerated")

    store = await stores.create(f"New {platform.value.capitalize()} Store", platform.value)
    store.credentials = credentials
    await db.flush()
    await activity.log_oauth(platform.value, True, {"action": "token_generated"}, store_id=store.id)
    return OAuthCallbackResponse(store_id=store.id, action="token_generated")
