"""Assistant binding model — maps a voice assistant id to the shop that provisioned it."""

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime

from app.database import Base


class AssistantBinding(Base):
    __tablename__ = "assistant_bindings"

    assistant_id = Column(String(255), primary_key=True)
    shop = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc))
