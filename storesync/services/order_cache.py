"""
Order listing cache - Redis-backed, keyed on the filter signature.

Any write to orders clears every cached listing and count. Redis being
unavailable is never fatal: reads miss and writes are skipped.
"""
import hashlib
import json
import logging
from typing import Any, Optional

from storesync.config import get_settings
from storesync.utils.redis import get_redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "storesync:orders"


def signature_key(kind: str, signature: dict[str, Any]) -> str:
    """`storesync:orders:<kind>:<md5 of the sorted filter JSON>`"""
    digest = hashlib.md5(
        json.dumps(signature, sort_keys=True, default=str).encode()
    ).hexdigest()
    return f"{KEY_PREFIX}:{kind}:{digest}"


class OrderCache:
    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds or get_settings().order_cache_ttl_seconds

    async def get(self, kind: str, signature: dict[str, Any]) -> Optional[Any]:
        try:
            redis = await get_redis()
            cached = await redis.get(signature_key(kind, signature))
        except Exception as e:
            logger.warning("Order cache read failed: %s", str(e))
            return None

        if cached is None:
            return None
        try:
            return json.loads(cached)
        except (json.JSONDecodeError, TypeError):
            return None

    async def set(self, kind: str, signature: dict[str, Any], value: Any) -> None:
        try:
            redis = await get_redis()
            await redis.set(
                signature_key(kind, signature),
                json.dumps(value, default=str),
                ex=self.ttl_seconds,
            )
        except Exception as e:
            logger.warning("Order cache write failed: %s", str(e))

    async def invalidate(self) -> int:
        """Delete every cached listing and count. Returns the number of keys removed."""
        try:
            redis = await get_redis()
            keys = []
            async for key in redis.scan_iter(match=f"{KEY_PREFIX}:*"):
                keys.append(key.decode() if isinstance(key, bytes) else str(key))
            if keys:
                await redis.delete(*keys)
            return len(keys)
        except Exception as e:
            logger.warning("Order cache invalidation failed: %s", str(e))
            return 0
