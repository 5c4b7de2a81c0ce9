"""
Store model - one connected external site/shop plus its credentials and webhook state.
"""
import json
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column
from storesync.database import Base
from storesync.schemas.oauth import OAuthCredentials
from storesync.utils.encryption import encrypt_value, decrypt_value


class Store(Base):
    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    platform_type: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # webflow, shopify, woocommerce
    platform_site_id: Mapped[Optional[str]] = mapped_column(String(255))

    # JSON token bundle, Fernet-encrypted when ENCRYPTION_KEY is set.
    # Never read or write this column directly; use the credentials property.
    oauth_credentials_encrypted: Mapped[Optional[str]] = mapped_column(Text)

    webhook_status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default="pending"
    )  # pending, active, failed

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_stores_platform_type", "platform_type"),
        Index("ix_stores_platform_site_id", "platform_site_id"),
    )

    @property
    def credentials(self) -> Optional[OAuthCredentials]:
        if not self.oauth_credentials_encrypted:
            return None
        raw = decrypt_value(self.oauth_credentials_encrypted)
        return OAuthCredentials.model_validate(json.loads(raw))

    @credentials.setter
    def credentials(self, value: Optional[OAuthCredentials]) -> None:
        if value is None:
            self.oauth_credentials_encrypted = None
            return
        self.oauth_credentials_encrypted = encrypt_value(value.model_dump_json())

    @property
    def access_token(self) -> Optional[str]:
        creds = self.credentials
        return creds.access_token if creds else None

    def __repr__(self) -> str:
        return f"<Store {self.id} {self.platform_type} site={self.platform_site_id}>"
