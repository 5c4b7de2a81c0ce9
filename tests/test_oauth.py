"""
Tests for the OAuth manager: state handling, code exchange, client
credential resolution and the callback flow.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from storesync.config import Settings
from storesync.integrations.platform_base import PlatformType
from storesync.models.integration_setting import IntegrationSetting
from storesync.schemas.oauth import OAuthCredentials
from storesync.services.activity_log import LogRepository
from storesync.services.oauth import (
    CredentialsReadOnly,
    OAuthCallbackRejected,
    OAuthExchangeFailed,
    OAuthResponseInvalid,
    OAuthStateStore,
    SecurityCheckFailed,
    build_authorization_url,
    complete_oauth_callback,
    compose_state,
    exchange_code_for_token,
    resolve_client_credentials,
    save_client_credentials,
    split_state,
)
from storesync.services.stores import StoreRepository

TOKEN_URL = "https://api.webflow.com/oauth/access_token"
OPAQUE_TOKEN = "a+b/c==<not>&html\"quoted'"


def _make_mock_response(status_code: int = 200, json_data=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    if json_data is None:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = json_data
    response.text = text
    return response


def _build_mock_client(response=None, side_effect=None) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.post = AsyncMock(return_value=response, side_effect=side_effect)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


def _settings(**overrides) -> Settings:
    values = {
        "app_secret_key": "test",
        "database_url": "sqlite+aiosqlite:///:memory:",
        "app_base_url": "https://sync.example.com",
    }
    values.update(overrides)
    return Settings(**values)


# ===================================================================
# State
# ===================================================================

class TestState:
    def test_compose_without_store(self):
        assert compose_state("abc") == "abc"

    def test_compose_with_store(self):
        assert compose_state("abc", 7) == "abc|7"

    @pytest.mark.parametrize("state,expected", [
        ("abc|7", ("abc", 7)),
        ("abc", ("abc", None)),
        ("abc|x", ("abc", None)),
        ("abc|0", ("abc", None)),
        ("abc|-3", ("abc", None)),
        ("a|b|12", ("a|b", 12)),
        ("", ("", None)),
    ])
    def test_split(self, state, expected):
        assert split_state(state) == expected


class TestAuthorizationUrl:
    def test_contains_required_params(self):
        url = build_authorization_url(
            "cid", "https://sync.example.com/api/v1/oauth/callback",
            ("sites:read", "ecommerce:write"), "n0nce|3",
            auth_url="https://webflow.com/oauth/authorize",
        )
        assert url.startswith("https://webflow.com/oauth/authorize?client_id=cid&response_type=code")
        assert "redirect_uri=https%3A%2F%2Fsync.example.com%2Fapi%2Fv1%2Foauth%2Fcallback" in url
        assert "scope=sites%3Aread+ecommerce%3Awrite" in url
        assert url.endswith("state=n0nce%7C3")


class TestStateStore:
    async def test_issue_then_verify_once(self, fake_redis):
        store = OAuthStateStore(ttl_seconds=600)
        nonce = await store.issue("ops@example.com")

        key = f"storesync:oauth_state:ops@example.com:{nonce}"
        assert key in fake_redis.store
        assert fake_redis.ttls[key] == 600

        await store.verify("ops@example.com", nonce)
        with pytest.raises(SecurityCheckFailed):
            await store.verify("ops@example.com", nonce)

    async def test_nonce_is_operator_scoped(self, fake_redis):
        store = OAuthStateStore(ttl_seconds=600)
        nonce = await store.issue("alice")
        with pytest.raises(SecurityCheckFailed):
            await store.verify("bob", nonce)

    @pytest.mark.parametrize("nonce", ["", "abc|1", "never-issued"])
    async def test_bad_nonces_rejected(self, fake_redis, nonce):
        with pytest.raises(SecurityCheckFailed):
            await OAuthStateStore(ttl_seconds=600).verify("alice", nonce)

    async def test_redis_failure_fails_closed(self):
        broken = AsyncMock()
        broken.delete.side_effect = ConnectionError("redis down")
        with patch("storesync.services.oauth.get_redis", AsyncMock(return_value=broken)):
            with pytest.raises(SecurityCheckFailed):
                await OAuthStateStore(ttl_seconds=600).verify("alice", "nonce")


# ===================================================================
# Code exchange
# ===================================================================

class TestExchangeCode:
    async def test_success_keeps_token_verbatim(self):
        mock_client = _build_mock_client(_make_mock_response(200, {
            "access_token": OPAQUE_TOKEN,
            "token_type": "bearer",
            "expires_in": "3600",
        }))
        with patch("storesync.services.oauth.httpx.AsyncClient", return_value=mock_client):
            creds = await exchange_code_for_token(
                "code-1", "cid", "secret", "https://sync.example.com/cb", token_url=TOKEN_URL,
            )

        assert creds.access_token == OPAQUE_TOKEN
        assert creds.token_type == "bearer"
        assert creds.expires_in == 3600
        assert creds.refresh_token is None

        args, kwargs = mock_client.post.call_args
        assert args[0] == TOKEN_URL
        assert kwargs["data"] == {
            "client_id": "cid",
            "client_secret": "secret",
            "code": "code-1",
            "grant_type": "authorization_code",
            "redirect_uri": "https://sync.example.com/cb",
        }

    async def test_token_type_defaults_to_bearer(self):
        mock_client = _build_mock_client(_make_mock_response(200, {"access_token": "t"}))
        with patch("storesync.services.oauth.httpx.AsyncClient", return_value=mock_client):
            creds = await exchange_code_for_token("c", "cid", "s", "r", token_url=TOKEN_URL)
        assert creds.token_type == "Bearer"

    async def test_non_2xx_raises_exchange_failed(self):
        mock_client = _build_mock_client(_make_mock_response(400, {"error": "invalid_grant"}, "invalid_grant"))
        with patch("storesync.services.oauth.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(OAuthExchangeFailed, match="HTTP 400"):
                await exchange_code_for_token("c", "cid", "s", "r", token_url=TOKEN_URL)

    async def test_transport_error_raises_exchange_failed(self):
        mock_client = _build_mock_client(side_effect=httpx.ConnectError("refused"))
        with patch("storesync.services.oauth.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(OAuthExchangeFailed):
                await exchange_code_for_token("c", "cid", "s", "r", token_url=TOKEN_URL)

    @pytest.mark.parametrize("response", [
        _make_mock_response(200, {"token_type": "bearer"}),
        _make_mock_response(200, {"access_token": ""}),
        _make_mock_response(200, None, "<html>ok</html>"),
        _make_mock_response(200, ["access_token"]),
    ])
    async def test_missing_token_raises_invalid(self, response):
        mock_client = _build_mock_client(response)
        with patch("storesync.services.oauth.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(OAuthResponseInvalid):
                await exchange_code_for_token("c", "cid", "s", "r", token_url=TOKEN_URL)


# ===================================================================
# Client credentials
# ===================================================================

class TestClientCredentials:
    async def test_none_configured(self, db):
        with patch("storesync.services.oauth.get_settings", return_value=_settings()):
            creds = await resolve_client_credentials(db, PlatformType.WEBFLOW)
        assert creds.source == "none"
        assert not creds.configured
        assert creds.read_only is False

    async def test_stored_values_used_and_editable(self, db):
        with patch("storesync.services.oauth.get_settings", return_value=_settings()):
            saved = await save_client_credentials(db, "webflow", " cid ", "secret ")

        assert saved.client_id == "cid"
        assert saved.client_secret == "secret"
        assert saved.source == "stored"
        assert saved.read_only is False

    async def test_environment_wins_and_is_read_only(self, db):
        db.add(IntegrationSetting(key="webflow_client_id", value="stored-id"))
        db.add(IntegrationSetting(key="webflow_client_secret", value="stored-secret"))
        await db.flush()

        env = _settings(webflow_client_id="env-id", webflow_client_secret="env-secret")
        with patch("storesync.services.oauth.get_settings", return_value=env):
            creds = await resolve_client_credentials(db, "webflow")
            assert (creds.client_id, creds.client_secret) == ("env-id", "env-secret")
            assert creds.source == "environment"
            assert creds.read_only is True

            with pytest.raises(CredentialsReadOnly):
                await save_client_credentials(db, "webflow", "x", "y")

    async def test_precedence_is_per_field(self, db):
        db.add(IntegrationSetting(key="webflow_client_id", value="stored-id"))
        await db.flush()

        env = _settings(webflow_client_secret="env-secret")
        with patch("storesync.services.oauth.get_settings", return_value=env):
            creds = await resolve_client_credentials(db, PlatformType.WEBFLOW)

        assert creds.client_id == "stored-id"
        assert creds.client_secret == "env-secret"
        assert creds.read_only is False

    async def test_unknown_platform_returns_empty(self, db):
        creds = await resolve_client_credentials(db, "magento")
        assert creds.source == "none"


# ===================================================================
# Callback
# ===================================================================

def _client_factory(exchange_result=None, exchange_error=None):
    client = MagicMock()
    client.exchange_code = AsyncMock(return_value=exchange_result, side_effect=exchange_error)
    factory = MagicMock(return_value=client)
    return factory, client


class TestCompleteOAuthCallback:
    async def test_new_store_created_without_store_in_state(self, db, activity, fake_redis):
        state_store = OAuthStateStore(ttl_seconds=600)
        nonce = await state_store.issue("ops")
        creds = OAuthCredentials(access_token=OPAQUE_TOKEN)
        factory, client = _client_factory(creds)

        result = await complete_oauth_callback(
            db, activity, state_store, "ops", code="abc", state=nonce, client_factory=factory,
        )

        assert result.action == "token_generated"
        store = await StoreRepository(db).get(result.store_id)
        assert store.title == "New Webflow Store"
        assert store.platform_type == "webflow"
        assert store.access_token == OPAQUE_TOKEN
        assert store.platform_site_id is None
        client.exchange_code.assert_awaited_once()
        assert client.exchange_code.call_args.args[0] == "abc"
        assert client.exchange_code.call_args.args[3] == "https://sync.example.com/api/v1/oauth/callback"

        entries = await LogRepository(db).list(event_type="oauth_attempt")
        assert [e.message for e in entries] == ["OAuth attempt for webflow store: Success"]

    async def test_existing_store_token_regenerated(self, db, activity, fake_redis):
        store = await StoreRepository(db).create("Shirts", "webflow", platform_site_id="site_1")
        store.credentials = OAuthCredentials(access_token="old")
        state_store = OAuthStateStore(ttl_seconds=600)
        nonce = await state_store.issue("ops")
        factory, _ = _client_factory(OAuthCredentials(access_token="new", refresh_token="r"))

        result = await complete_oauth_callback(
            db, activity, state_store, "ops", code="abc",
            state=compose_state(nonce, store.id), client_factory=factory,
        )

        assert result.store_id == store.id
        assert result.action == "token_regenerated"
        assert store.credentials.access_token == "new"
        assert store.credentials.refresh_token == "r"
        assert store.platform_site_id == "site_1"

    async def test_forged_state_rejected_before_exchange(self, db, activity, fake_redis):
        factory, client = _client_factory(OAuthCredentials(access_token="t"))
        with pytest.raises(SecurityCheckFailed):
            await complete_oauth_callback(
                db, activity, OAuthStateStore(ttl_seconds=600), "ops",
                code="abc", state="forged|1", client_factory=factory,
            )
        client.exchange_code.assert_not_called()

    async def test_platform_error_logged_and_rejected(self, db, activity, fake_redis):
        state_store = OAuthStateStore(ttl_seconds=600)
        nonce = await state_store.issue("ops")
        factory, client = _client_factory()

        with pytest.raises(OAuthCallbackRejected):
            await complete_oauth_callback(
                db, activity, state_store, "ops", code=None, state=nonce,
                error="access_denied", client_factory=factory,
            )

        client.exchange_code.assert_not_called()
        entries = await LogRepository(db).list(event_type="oauth_attempt")
        assert entries[0].status == "error"
        assert entries[0].payload["context"]["error"] == "access_denied"

    async def test_missing_code_rejected(self, db, activity, fake_redis):
        state_store = OAuthStateStore(ttl_seconds=600)
        nonce = await state_store.issue("ops")
        factory, _ = _client_factory()
        with pytest.raises(OAuthCallbackRejected, match="code not provided"):
            await complete_oauth_callback(
                db, activity, state_store, "ops", code="", state=nonce, client_factory=factory,
            )

    async def test_exchange_failure_logged_and_reraised(self, db, activity, fake_redis):
        state_store = OAuthStateStore(ttl_seconds=600)
        nonce = await state_store.issue("ops")
        factory, _ = _client_factory(exchange_error=OAuthExchangeFailed("HTTP 401"))

        with pytest.raises(OAuthExchangeFailed):
            await complete_oauth_callback(
                db, activity, state_store, "ops", code="abc", state=nonce, client_factory=factory,
            )

        entries = await LogRepository(db).list(event_type="oauth_attempt")
        assert entries[0].message == "OAuth attempt for webflow store: Failed"
        assert await StoreRepository(db).list() == []
