"""Connected Etsy shop model."""

import enum
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopsync.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from shopsync.models.etsy_token import EtsyToken


class ShopStatus(str, enum.Enum):
    """Shop connection status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    TOKEN_EXPIRED = "token_expired"
    ERROR = "error"


class Shop(Base, TimestampMixin):
    """A tenant's connected Etsy storefront."""

    __tablename__ = "shops"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Etsy identifiers
    etsy_shop_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    etsy_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    shop_name: Mapped[str] = mapped_column(String(255), nullable=False)
    shop_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    icon_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    status: Mapped[ShopStatus] = mapped_column(
        Enum(ShopStatus, values_callable=lambda x: [e.value for e in x]),
        default=ShopStatus.ACTIVE,
        nullable=False,
    )
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Notification preferences
    telegram_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    telegram_chat_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    email_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notification_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    credential: Mapped[Optional["EtsyToken"]] = relationship(
        "EtsyToken", back_populates="shop", uselist=False, cascade="all, delete-orphan"
    )
