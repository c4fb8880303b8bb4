"""Shop session model — OAuth-issued storefront credentials, one row per session id."""

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Boolean, Text

from app.database import Base


class ShopSession(Base):
    __tablename__ = "shop_sessions"

    id = Column(String(255), primary_key=True)  # offline_{shop} | online_{shop}_{user_id}
    shop = Column(String(255), nullable=False, index=True)
    state = Column(String(255), nullable=True)
    is_online = Column(Boolean, nullable=False, default=False)
    scope = Column(Text, nullable=True)
    access_token = Column(Text, nullable=True)
    user_id = Column(String(64), nullable=True)
    expires_at = Column(DateTime, nullable=True)  # online sessions only
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc))

    def __repr__(self) -> str:
        return f"<ShopSession id={self.id!r} shop={self.shop!r} online={self.is_online}>"
