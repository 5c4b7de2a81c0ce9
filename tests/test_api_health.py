"""
Tests for storesync/api/health.py - liveness and readiness endpoints.
"""
from datetime import datetime
from unittest.mock import AsyncMock, patch

from storesync.api.health import VERSION, health_check, readiness_check


# ---------------------------------------------------------------------------
# GET /health - basic liveness
# ---------------------------------------------------------------------------


class TestHealthCheck:
    async def test_returns_healthy(self):
        """Liveness check always returns healthy with timestamp and version."""
        result = await health_check()
        assert result["status"] == "healthy"
        assert result["version"] == VERSION == "1.0.0"
        assert "timestamp" in result

    async def test_timestamp_is_utc_iso(self):
        """Timestamp should be parseable ISO format."""
        result = await health_check()
        parsed = datetime.fromisoformat(result["timestamp"])
        assert parsed.tzinfo is not None


# ---------------------------------------------------------------------------
# GET /health/ready - readiness check (DB + Redis)
# ---------------------------------------------------------------------------


class TestReadinessCheck:
    async def test_all_healthy_returns_ready(self):
        """When both DB and Redis are healthy, status is 'ready'."""
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock()

        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(return_value=True)

        with patch("storesync.utils.redis.get_redis", new_callable=AsyncMock, return_value=mock_redis):
            result = await readiness_check(db=mock_db)

        assert result["status"] == "ready"
        assert result["checks"] == {"database": True, "redis": True}

    async def test_db_failure_returns_degraded(self):
        """When DB fails, status is 'degraded'."""
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(side_effect=Exception("connection refused"))

        mock_redis = AsyncMock()
        mock_redis.ping = AsyncMock(return_value=True)

        with patch("storesync.utils.redis.get_redis", new_callable=AsyncMock, return_value=mock_redis):
            result = await readiness_check(db=mock_db)

        assert result["status"] == "degraded"
        assert result["checks"]["database"] is False
        assert result["checks"]["redis"] is True

    async def test_redis_failure_returns_degraded(self):
        """When Redis fails, status is 'degraded'."""
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock()

        with patch(
            "storesync.utils.redis.get_redis",
            new_callable=AsyncMock,
            side_effect=Exception("redis down"),
        ):
            result = await readiness_check(db=mock_db)

        assert result["status"] == "degraded"
        assert result["checks"]["database"] is True
        assert result["checks"]["redis"] is False

    async def test_both_fail_returns_degraded(self):
        """When both DB and Redis fail, status is 'degraded'."""
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(side_effect=Exception("db error"))

        with patch(
            "storesync.utils.redis.get_redis",
            new_callable=AsyncMock,
            side_effect=Exception("redis error"),
        ):
            result = await readiness_check(db=mock_db)

        assert result["status"] == "degraded"
        assert result["checks"] == {"database": False, "redis": False}
