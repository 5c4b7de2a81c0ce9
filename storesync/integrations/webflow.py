"""
Webflow storefront integration - REST API v2.

Auth: per-site OAuth bearer token (authorization code flow).
Docs: https://developers.webflow.com/data/reference
Every outbound call opens its own httpx.AsyncClient. Failures never raise:
they return a sentinel (False / []) and are recorded in the activity log.
"""
import logging
from typing import Optional, Union

import httpx

from storesync.integrations.platform_base import MISSING_SCOPES, PlatformType

logger = logging.getLogger(__name__)

API_BASE = "https://api.webflow.com"
API_VERSION = "2.0.0"
OAUTH_AUTH_URL = "https://webflow.com/oauth/authorize"
OAUTH_TOKEN_URL = "https://api.webflow.com/oauth/access_token"

SCOPES = ("sites:read", "sites:write", "ecommerce:read", "ecommerce:write")
TRIGGER_TYPES = ("ecomm_new_order", "ecomm_order_changed", "ecomm_inventory_changed")
REFUND_REASONS = ("duplicate", "fraudulent", "requested")

# Order PATCH body keys accepted by the API, keyed by our snake_case names
ORDER_UPDATE_FIELDS = {
    "comment": "comment",
    "shipping_provider": "shippingProvider",
    "shipping_tracking": "shippingTracking",
    "shipping_tracking_url": "shippingTrackingURL",
}


def decode_body(response: httpx.Response) -> Union[dict, list, str]:
    """JSON body when it parses, raw text otherwise."""
    try:
        return response.json()
    except ValueError:
        return response.text


def is_missing_scopes(message: str) -> bool:
    """Heuristic for a 403 caused by a token lacking write scopes."""
    lowered = (message or "").lower()
    if "oauthforbidden" in lowered:
        return True
    if "missing" in lowered and "scopes" in lowered:
        return True
    return "ecommerce:write" in lowered and "missing" in lowered


def _forbidden_message(response: httpx.Response) -> str:
    body = decode_body(response)
    if isinstance(body, dict):
        for key in ("msg", "message", "error"):
            if body.get(key):
                return str(body[key])
    return response.text or ""


class WebflowClient:
    """Webflow REST client. Holds only constants and the webhook callback URL."""

    platform = PlatformType.WEBFLOW
    scopes = SCOPES
    trigger_types = TRIGGER_TYPES

    def __init__(self, callback_url: str, timeout: Optional[float] = None, activity=None):
        self.callback_url = callback_url
        self.timeout = timeout
        self.activity = activity

    def _headers(self, token: str) -> dict:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-API-Version": API_VERSION,
        }

    def _http(self) -> httpx.AsyncClient:
        if self.timeout is None:
            return httpx.AsyncClient()
        return httpx.AsyncClient(timeout=self.timeout)

    async def _record(self, message: str, status: str, context: Optional[dict] = None) -> None:
        if status == "error":
            logger.warning("%s: %s", message, context or {})
        if self.activity is not None:
            await self.activity.log(message, status, context or {})

    # OAuth

    def authorization_url(self, client_id: str, redirect_uri: str, state: str) -> str:
        from storesync.services.oauth import build_authorization_url

        return build_authorization_url(
            client_id, redirect_uri, self.scopes, state, auth_url=OAUTH_AUTH_URL,
        )

    async def exchange_code(
        self, code: str, client_id: str, client_secret: str, redirect_uri: str,
    ):
        from storesync.services.oauth import exchange_code_for_token

        return await exchange_code_for_token(
            code, client_id, client_secret, redirect_uri,
            token_url=OAUTH_TOKEN_URL, timeout=self.timeout,
        )

    # Sites

    async def list_remote_stores(self, token: str) -> list[dict]:
        """Sites visible to the token as [{"id", "name", "short_name"}]."""
        if not token:
            await self._record("Webflow get sites: missing access token", "error")
            return []

        try:
            async with self._http() as client:
                response = await client.get(f"{API_BASE}/v2/sites", headers=self._headers(token))
        except httpx.HTTPError as e:
            await self._record("Webflow get sites request failed", "error", {"error": str(e)})
            return []

        if response.status_code != 200:
            await self._record("Webflow get sites request failed", "error", {
                "response_code": response.status_code,
                "response_body": decode_body(response),
            })
            return []

        data = decode_body(response)
        if not isinstance(data, dict) or not isinstance(data.get("sites"), list):
            return []

        sites = []
        for site in data["sites"]:
            sites.append({
                "id": str(site.get("id", "")),
                "name": site.get("displayName") or site.get("name") or "",
                "short_name": site.get("shortName") or site.get("short_name") or "",
            })
        return sites

    # Webhooks

    async def get_webhooks(self, site_id: str, token: str) -> Union[list, bool]:
        if not token:
            return False

        try:
            async with self._http() as client:
                response = await client.get(
                    f"{API_BASE}/v2/sites/{site_id}/webhooks", headers=self._headers(token),
                )
        except httpx.HTTPError as e:
            await self._record("Webflow get webhooks request failed", "error", {"error": str(e)})
            return False

        if response.status_code != 200:
            await self._record("Webflow get webhooks request failed", "error", {
                "response_code": response.status_code,
            })
            return False

        data = decode_body(response)
        if isinstance(data, dict) and isinstance(data.get("webhooks"), list):
            return data["webhooks"]
        if isinstance(data, list):
            return data
        return False

    def registered_triggers(self, webhooks) -> set[str]:
        """Trigger types already pointing at our callback URL."""
        if not isinstance(webhooks, list):
            return set()
        return {
            hook.get("triggerType") or hook.get("trigger_type")
            for hook in webhooks
            if isinstance(hook, dict) and hook.get("url") == self.callback_url
        }

    async def create_webhooks(self, site_id: str, token: str) -> Union[dict, bool]:
        """
        Register the order/inventory triggers, skipping ones that already
        exist for our callback URL.

        Returns {"webhooks": [...], "site_id": ..., "skipped": [...]} or
        False when at least one trigger was attempted and none succeeded.
        """
        if not token:
            await self._record("Webflow create webhooks: missing access token", "error")
            return False

        existing = self.registered_triggers(await self.get_webhooks(site_id, token))
        skipped = [trigger for trigger in TRIGGER_TYPES if trigger in existing]
        pending = [trigger for trigger in TRIGGER_TYPES if trigger not in existing]

        created = []
        errors = []
        for trigger in pending:
            try:
                async with self._http() as client:
                    response = await client.post(
                        f"{API_BASE}/v2/sites/{site_id}/webhooks",
                        headers=self._headers(token),
                        json={"url": self.callback_url, "triggerType": trigger},
                    )
            except httpx.HTTPError as e:
                errors.append(f"{trigger}: {e}")
                continue

            body = decode_body(response)
            if response.status_code not in (200, 201):
                if isinstance(body, dict):
                    message = body.get("message") or body.get("msg") or body.get("error") or response.text
                else:
                    message = response.text
                errors.append("%s: %s (HTTP %d)" % (trigger, message, response.status_code))
                continue

            body = body if isinstance(body, dict) else {}
            created.append({
                "id": body.get("_id") or body.get("id"),
                "trigger_type": trigger,
                "url": self.callback_url,
            })

        if pending and not created:
            await self._record("Webflow create webhooks failed", "error", {
                "site_id": site_id,
                "errors": errors,
            })
            return False

        if errors:
            await self._record("Webflow create webhooks partially failed", "warning", {
                "site_id": site_id,
                "created": len(created),
                "errors": errors,
            })

        logger.info(
            "Webflow webhooks for site %s: %d created, %d skipped",
            site_id, len(created), len(skipped),
        )
        return {"webhooks": created, "site_id": site_id, "skipped": skipped}

    # Orders

    async def _order_request(
        self, action: str, method: str, path: str, token: str, body: dict,
        site_id: str, order_id: str,
    ):
        if not token:
            await self._record(f"Webflow {action}: missing access token", "error")
            return False

        context = {"site_id": site_id, "order_id": order_id}
        try:
            async with self._http() as client:
                response = await client.request(
                    method, f"{API_BASE}/v2/sites/{site_id}/orders/{order_id}{path}",
                    headers=self._headers(token), json=body,
                )
        except httpx.HTTPError as e:
            await self._record(f"Webflow {action} request failed", "error", {**context, "error": str(e)})
            return False

        if response.status_code not in (200, 201):
            await self._record(f"Webflow {action} request failed", "error", {
                **context,
                "response_code": response.status_code,
                "response_body": decode_body(response),
            })
            if response.status_code == 403:
                message = _forbidden_message(response)
                if is_missing_scopes(message):
                    return {
                        "error": MISSING_SCOPES,
                        "message": message or "Missing required OAuth scopes",
                    }
            return False

        data = decode_body(response)
        await self._record(f"Webflow {action} succeeded", "success", context)
        return data if isinstance(data, dict) else {}

    async def update_order(self, site_id: str, order_id: str, token: str, fields: dict):
        """PATCH comment / shipping fields. Only keys present in `fields` are sent."""
        body = {}
        for key, api_key in ORDER_UPDATE_FIELDS.items():
            if key in fields and fields[key] is not None:
                body[api_key] = fields[key]
            elif api_key in fields and fields[api_key] is not None:
                body[api_key] = fields[api_key]
        return await self._order_request("update order", "PATCH", "", token, body, site_id, order_id)

    async def fulfill_order(self, site_id: str, order_id: str, token: str, send_email: bool = True):
        return await self._order_request(
            "fulfill order", "POST", "/fulfill", token,
            {"sendOrderFulfilledEmail": bool(send_email)}, site_id, order_id,
        )

    async def unfulfill_order(self, site_id: str, order_id: str, token: str):
        return await self._order_request(
            "unfulfill order", "POST", "/unfulfill", token, {}, site_id, order_id,
        )

    async def refund_order(self, site_id: str, order_id: str, token: str, reason: Optional[str] = None):
        body = {"reason": reason} if reason in REFUND_REASONS else {}
        return await self._order_request(
            "refund order", "POST", "/refund", token, body, site_id, order_id,
        )
