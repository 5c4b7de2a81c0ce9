"""
Tests for storesync/api/oauth.py - authorize, callback and OAuth app settings.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException

from storesync.api.oauth import (
    authorize,
    get_oauth_settings,
    oauth_callback,
    update_oauth_settings,
)
from storesync.config import Settings
from storesync.integrations.registry import get_platform_client
from storesync.schemas.oauth import OAuthCredentials, OAuthSettingsUpdate
from storesync.services.activity_log import LogRepository
from storesync.services.oauth import OAuthExchangeFailed, OAuthStateStore

OPERATOR = "ops@example.com"


def _settings(**overrides) -> Settings:
    values = {
        "app_secret_key": "test",
        "database_url": "sqlite+aiosqlite:///:memory:",
        "app_base_url": "https://sync.example.com",
    }
    values.update(overrides)
    return Settings(**values)


def _exchange_factory(result=None, error=None):
    client = MagicMock()
    client.exchange_code = AsyncMock(return_value=result, side_effect=error)
    return MagicMock(return_value=client)


# ---------------------------------------------------------------------------
# GET /api/v1/oauth/callback
# ---------------------------------------------------------------------------


class TestCallback:
    async def test_success(self, db, activity, fake_redis):
        state_store = OAuthStateStore(ttl_seconds=600)
        nonce = await state_store.issue(OPERATOR)

        response = await oauth_callback(
            code="abc", state=nonce, error=None, operator_id=OPERATOR, db=db,
            activity=activity, state_store=state_store,
            client_factory=_exchange_factory(OAuthCredentials(access_token="tok")),
        )

        assert response.action == "token_generated"
        assert response.store_id > 0

    async def test_bad_state_403(self, db, activity, fake_redis):
        with pytest.raises(HTTPException) as exc:
            await oauth_callback(
                code="abc", state="forged", error=None, operator_id=OPERATOR, db=db,
                activity=activity, state_store=OAuthStateStore(ttl_seconds=600),
                client_factory=_exchange_factory(),
            )
        assert exc.value.status_code == 403
        assert exc.value.detail == "Security check failed."

    async def test_platform_error_400(self, db, activity, fake_redis):
        state_store = OAuthStateStore(ttl_seconds=600)
        nonce = await state_store.issue(OPERATOR)

        with pytest.raises(HTTPException) as exc:
            await oauth_callback(
                code=None, state=nonce, error="access_denied", operator_id=OPERATOR, db=db,
                activity=activity, state_store=state_store, client_factory=_exchange_factory(),
            )
        assert exc.value.status_code == 400

    async def test_exchange_failure_502_keeps_log(self, db, activity, fake_redis):
        state_store = OAuthStateStore(ttl_seconds=600)
        nonce = await state_store.issue(OPERATOR)

        with pytest.raises(HTTPException) as exc:
            await oauth_callback(
                code="abc", state=nonce, error=None, operator_id=OPERATOR, db=db,
                activity=activity, state_store=state_store,
                client_factory=_exchange_factory(error=OAuthExchangeFailed("HTTP 401")),
            )

        assert exc.value.status_code == 502
        assert exc.value.detail == "Failed to obtain OAuth Bearer access token. Please try again."
        entries = await LogRepository(db).list(event_type="oauth_attempt")
        assert entries[0].message == "OAuth attempt for webflow store: Failed"


# ---------------------------------------------------------------------------
# GET /api/v1/oauth/{platform}/authorize
# ---------------------------------------------------------------------------


class TestAuthorize:
    async def test_returns_url_with_store_in_state(self, db):
        state_store = MagicMock()
        state_store.issue = AsyncMock(return_value="n0nce")

        with patch("storesync.services.oauth.get_settings", return_value=_settings(webflow_client_id="cid")):
            response = await authorize(
                "webflow", store_id=5, operator_id=OPERATOR, db=db,
                state_store=state_store, client_factory=get_platform_client,
            )

        assert response.state == "n0nce|5"
        assert "client_id=cid" in response.url
        assert "state=n0nce%7C5" in response.url
        state_store.issue.assert_awaited_once_with(OPERATOR)

    async def test_new_store_state_is_bare_nonce(self, db):
        state_store = MagicMock()
        state_store.issue = AsyncMock(return_value="n0nce")

        with patch("storesync.services.oauth.get_settings", return_value=_settings(webflow_client_id="cid")):
            response = await authorize(
                "webflow", store_id=None, operator_id=OPERATOR, db=db,
                state_store=state_store, client_factory=get_platform_client,
            )

        assert response.state == "n0nce"

    @pytest.mark.parametrize("platform", ["shopify", "woocommerce", "magento"])
    async def test_platform_without_oauth_404(self, db, platform):
        with pytest.raises(HTTPException) as exc:
            await authorize(
                platform, store_id=None, operator_id=OPERATOR, db=db,
                state_store=MagicMock(), client_factory=get_platform_client,
            )
        assert exc.value.status_code == 404

    async def test_unconfigured_client_400(self, db):
        with patch("storesync.services.oauth.get_settings", return_value=_settings()):
            with pytest.raises(HTTPException) as exc:
                await authorize(
                    "webflow", store_id=None, operator_id=OPERATOR, db=db,
                    state_store=MagicMock(), client_factory=get_platform_client,
                )
        assert exc.value.status_code == 400

    async def test_state_store_down_503(self, db):
        state_store = MagicMock()
        state_store.issue = AsyncMock(side_effect=ConnectionError("redis down"))

        with patch("storesync.services.oauth.get_settings", return_value=_settings(webflow_client_id="cid")):
            with pytest.raises(HTTPException) as exc:
                await authorize(
                    "webflow", store_id=None, operator_id=OPERATOR, db=db,
                    state_store=state_store, client_factory=get_platform_client,
                )
        assert exc.value.status_code == 503


# ---------------------------------------------------------------------------
# /api/v1/oauth/{platform}/settings
# ---------------------------------------------------------------------------


class TestSettings:
    async def test_put_then_get(self, db):
        with patch("storesync.services.oauth.get_settings", return_value=_settings()):
            saved = await update_oauth_settings(
                "webflow", OAuthSettingsUpdate(client_id="cid", client_secret="secret"),
                operator_id=OPERATOR, db=db, client_factory=get_platform_client,
            )
            fetched = await get_oauth_settings(
                "webflow", operator_id=OPERATOR, db=db, client_factory=get_platform_client,
            )

        assert saved.client_id == fetched.client_id == "cid"
        assert fetched.has_client_secret is True
        assert fetched.source == "stored"
        assert fetched.read_only is False

    async def test_put_refused_when_environment_defines_credentials(self, db):
        env = _settings(webflow_client_id="env-id", webflow_client_secret="env-secret")
        with patch("storesync.services.oauth.get_settings", return_value=env):
            with pytest.raises(HTTPException) as exc:
                await update_oauth_settings(
                    "webflow", OAuthSettingsUpdate(client_id="cid", client_secret="secret"),
                    operator_id=OPERATOR, db=db, client_factory=get_platform_client,
                )
        assert exc.value.status_code == 409
