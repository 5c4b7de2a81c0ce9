"""
Platform contract - the closed set of supported platforms and the shape every
remote platform client exposes.
"""
from enum import Enum
from typing import Optional, Protocol, Union


class PlatformType(str, Enum):
    WEBFLOW = "webflow"          # hosted storefront with OAuth + webhooks
    SHOPIFY = "shopify"          # generic cart platform, inbound webhooks only
    WOOCOMMERCE = "woocommerce"  # self-hosted shop, pushes orders directly

    @classmethod
    def parse(cls, value) -> Optional["PlatformType"]:
        try:
            return cls(getattr(value, "value", value))
        except ValueError:
            return None


MISSING_SCOPES = "MISSING_SCOPES"

# dict on success, {"error": MISSING_SCOPES, "message": ...} on a scope 403,
# False on any other transport/HTTP failure
OrderResult = Union[dict, bool]


class PlatformClient(Protocol):
    """Remote REST operations for one platform."""

    platform: PlatformType
    scopes: tuple[str, ...]
    trigger_types: tuple[str, ...]

    def authorization_url(self, client_id: str, redirect_uri: str, state: str) -> str:
        ...

    async def exchange_code(
        self, code: str, client_id: str, client_secret: str, redirect_uri: str,
    ):
        """Returns OAuthCredentials; raises OAuthExchangeFailed / OAuthResponseInvalid."""
        ...

    async def list_remote_stores(self, token: str) -> list[dict]:
        ...

    async def get_webhooks(self, site_id: str, token: str) -> Union[list, bool]:
        ...

    def registered_triggers(self, webhooks) -> set[str]:
        ...

    async def create_webhooks(self, site_id: str, token: str) -> Union[dict, bool]:
        ...

    async def update_order(
        self, site_id: str, order_id: str, token: str, fields: dict,
    ) -> OrderResult:
        ...

    async def fulfill_order(
        self, site_id: str, order_id: str, token: str, send_email: bool = True,
    ) -> OrderResult:
        ...

    async def unfulfill_order(self, site_id: str, order_id: str, token: str) -> OrderResult:
        ...

    async def refund_order(
        self, site_id: str, order_id: str, token: str, reason: Optional[str] = None,
    ) -> OrderResult:
        ...
