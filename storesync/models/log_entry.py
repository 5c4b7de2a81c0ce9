"""
Log entry model - append-only audit trail of OAuth, webhook and order activity.
Written through ActivityLogger, which drops repeats inside a short window.
"""
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, Index, Integer
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from storesync.database import Base


class LogEntry(Base):
    __tablename__ = "log_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[Optional[int]] = mapped_column(Integer)
    event_type: Mapped[str] = mapped_column(
        String(100), nullable=False
    )  # general, oauth_attempt, webhook_creation, webhook_callback, ...

    # Denormalized copy of payload["message"] so duplicate checks stay a plain
    # indexed equality on every backend
    message: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[Optional[dict]] = mapped_column(JSONB)  # {"message": ..., "context": {...}}

    status: Mapped[str] = mapped_column(
        String(20), default="info", server_default="info"
    )  # info, success, warning, error
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_log_entries_store_id", "store_id"),
        Index("ix_log_entries_event_type", "event_type"),
        Index("ix_log_entries_status", "status"),
        Index("ix_log_entries_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<LogEntry {self.event_type} status={self.status}>"
