"""
Platform client registry. Platforms without a remote API have no entry.
"""
from typing import Optional

from storesync.config import get_settings
from storesync.integrations.platform_base import PlatformClient, PlatformType
from storesync.integrations.webflow import WebflowClient

PLATFORM_CLIENTS = {
    PlatformType.WEBFLOW: WebflowClient,
}


def get_platform_client(platform_type, activity=None) -> Optional[PlatformClient]:
    """Remote client for a platform, or None for shopify / woocommerce."""
    factory = PLATFORM_CLIENTS.get(PlatformType.parse(platform_type))
    if factory is None:
        return None

    settings = get_settings()
    return factory(
        callback_url=settings.webhook_callback_url,
        timeout=settings.platform_http_timeout,
        activity=activity,
    )
