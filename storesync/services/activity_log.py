"""
Activity log - the operator-facing audit trail (log_entries table).

ActivityLogger is built per request around a LogRepository bound to that
request's session and passed to whatever needs it. Repeats of the same
message/event/store inside a short window are dropped, so webhook retries
and double-clicks do not flood the log.

Operational logging (stdout, JSON) stays on the stdlib `logging` module.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storesync.config import get_settings
from storesync.models.log_entry import LogEntry

logger = logging.getLogger(__name__)

ALLOWED_STATUSES = ("info", "success", "warning", "error")
DEFAULT_EVENT_TYPE = "general"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LogRepository:
    """Persistence for log entries. `clock` is injectable for window tests."""

    def __init__(self, db: AsyncSession, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or _utcnow

    async def create(
        self,
        message: str,
        event_type: str,
        status: str,
        context: Optional[dict] = None,
        store_id: Optional[int] = None,
    ) -> LogEntry:
        entry = LogEntry(
            store_id=store_id,
            event_type=event_type,
            message=message,
            payload={"message": message, "context": context or {}},
            status=status,
            created_at=self.clock(),
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def get(self, entry_id: int) -> Optional[LogEntry]:
        return await self.db.get(LogEntry, entry_id)

    def _filtered(self, query, store_id=None, event_type=None, status=None):
        if store_id is not None:
            query = query.where(LogEntry.store_id == store_id)
        if event_type:
            query = query.where(LogEntry.event_type == event_type)
        if status:
            query = query.where(LogEntry.status == status)
        return query

    async def list(
        self,
        store_id: Optional[int] = None,
        event_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LogEntry]:
        query = self._filtered(select(LogEntry), store_id, event_type, status)
        query = query.order_by(LogEntry.created_at.desc(), LogEntry.id.desc())
        result = await self.db.execute(query.limit(limit).offset(offset))
        return list(result.scalars().all())

    async def count(
        self,
        store_id: Optional[int] = None,
        event_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> int:
        query = self._filtered(select(func.count(LogEntry.id)), store_id, event_type, status)
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def has_recent_duplicate(
        self,
        message: str,
        store_id: Optional[int],
        event_type: str,
        seconds: int = 2,
    ) -> bool:
        """Same message, event type and store (NULL matches NULL) within `seconds`."""
        threshold = self.clock() - timedelta(seconds=seconds)
        query = select(func.count(LogEntry.id)).where(
            LogEntry.message == message,
            LogEntry.event_type == event_type,
            LogEntry.created_at >= threshold,
        )
        if store_id is None:
            query = query.where(LogEntry.store_id.is_(None))
        else:
            query = query.where(LogEntry.store_id == store_id)

        result = await self.db.execute(query)
        return (result.scalar() or 0) > 0

    async def delete_older_than(self, days: int = 90) -> int:
        threshold = self.clock() - timedelta(days=days)
        result = await self.db.execute(
            delete(LogEntry).where(LogEntry.created_at < threshold)
        )
        return result.rowcount or 0


class ActivityLogger:
    """Writes audit entries through a LogRepository."""

    def __init__(self, repository: LogRepository, dedup_window_seconds: Optional[int] = None):
        self.repository = repository
        if dedup_window_seconds is None:
            dedup_window_seconds = get_settings().log_dedup_window_seconds
        self.dedup_window_seconds = dedup_window_seconds

    async def log(
        self,
        message: str,
        status: str = "info",
        context: Optional[dict[str, Any]] = None,
        store_id: Optional[int] = None,
    ) -> Optional[LogEntry]:
        """
        Record one entry. `context["event_type"]` selects the event type and is
        not stored in the context. Returns None when the entry was a repeat.
        """
        context = dict(context or {})
        event_type = context.pop("event_type", None) or DEFAULT_EVENT_TYPE
        if status not in ALLOWED_STATUSES:
            status = "info"

        if await self.repository.has_recent_duplicate(
            message, store_id, event_type, seconds=self.dedup_window_seconds,
        ):
            logger.debug("Duplicate activity entry dropped: %s", message)
            return None

        return await self.repository.create(
            message, event_type, status, context=context, store_id=store_id,
        )

    async def log_oauth(
        self,
        store_type: str,
        success: bool,
        context: Optional[dict] = None,
        store_id: Optional[int] = None,
    ) -> Optional[LogEntry]:
        context = dict(context or {})
        context.update({"event_type": "oauth_attempt", "store_type": store_type})
        message = "OAuth attempt for %s store: %s" % (store_type, "Success" if success else "Failed")
        return await self.log(message, "success" if success else "error", context, store_id)

    async def log_webhook_creation(
        self,
        store_type: str,
        store_identifier: str,
        success: bool,
        context: Optional[dict] = None,
        store_id: Optional[int] = None,
    ) -> Optional[LogEntry]:
        context = dict(context or {})
        context.update({
            "event_type": "webhook_creation",
            "store_type": store_type,
            "store_identifier": store_identifier,
        })
        message = "Webhook creation for %s store %s: %s" % (
            store_type, store_identifier, "Success" if success else "Failed",
        )
        return await self.log(message, "success" if success else "error", context, store_id)

    async def log_webhook_callback(
        self,
        store_type: str,
        event_type: str,
        payload: Optional[dict] = None,
        store_id: Optional[int] = None,
    ) -> Optional[LogEntry]:
        context = {
            "event_type": "webhook_callback",
            "store_type": store_type,
            "webhook_event_type": event_type,
            "payload": payload or {},
        }
        message = "Webhook callback received: %s from %s store" % (event_type, store_type)
        return await self.log(message, "info", context, store_id)


def build_activity_logger(db: AsyncSession) -> ActivityLogger:
    return ActivityLogger(LogRepository(db))
