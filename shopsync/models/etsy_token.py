"""Etsy OAuth credential storage model."""

from datetime import datetime, timezone
from typing import Optional, TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopsync.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from shopsync.models.shop import Shop


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class EtsyToken(Base, TimestampMixin):
    """Encrypted Etsy OAuth 2.0 credential, one per shop.

    Both tokens are stored as CredentialVault ciphertext. The row is
    overwritten on every refresh; no history is kept.
    """

    __tablename__ = "etsy_tokens"

    id: Mapped[int] = mapped_column(primary_key=True)
    shop_id: Mapped[int] = mapped_column(
        ForeignKey("shops.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    access_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    token_type: Mapped[str] = mapped_column(String(50), default="Bearer", nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scope: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    shop: Mapped["Shop"] = relationship("Shop", back_populates="credential")
