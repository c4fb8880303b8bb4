"""SQLAlchemy ORM models."""

from app.models.shop_session import ShopSession
from app.models.assistant_binding import AssistantBinding

__all__ = [
    "ShopSession",
    "AssistantBinding",
]
