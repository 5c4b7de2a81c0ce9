"""
Delete activity log entries older than the retention window.

Usage:
    python scripts/prune_logs.py
    python scripts/prune_logs.py --days 30
"""
import argparse
import asyncio
import logging

from storesync.config import get_settings
from storesync.database import async_session_factory
from storesync.services.activity_log import LogRepository

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


async def prune(days: int) -> int:
    async with async_session_factory() as session:
        removed = await LogRepository(session).delete_older_than(days)
        await session.commit()
    logger.info("Removed %d log entries older than %d days", removed, days)
    return removed


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Prune old activity log entries")
    parser.add_argument("--days", type=int, default=get_settings().log_retention_days)
    args = parser.parse_args()
    asyncio.run(prune(args.days))
