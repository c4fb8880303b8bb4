"""Session storage — persistent OAuth sessions for installed shops.

Mirrors the pluggable session-storage contract used by storefront SDKs:
store, load, delete, delete many, and find by shop. Every call goes straight
to the database; rows written by one gateway instance must be readable by
the next request on any other instance.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.shop_session import ShopSession

logger = logging.getLogger(__name__)


def normalize_shop_domain(shop: str) -> str:
    """Lower-case a shop domain and strip any scheme or path."""
    shop = re.sub(r"^https?://", "", shop.strip().lower())
    return shop.split("/", 1)[0]


def offline_session_id(shop: str) -> str:
    return f"offline_{normalize_shop_domain(shop)}"


def online_session_id(shop: str, user_id: str) -> str:
    return f"online_{normalize_shop_domain(shop)}_{user_id}"


def mask_token(token: Optional[str]) -> str:
    """Render an access token safe for logs (last four characters at most)."""
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "***"
    return f"***{token[-4:]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Columns are stored as naive UTC
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def is_expired(session: ShopSession, now: Optional[datetime] = None) -> bool:
    if session.expires_at is None:
        return False
    return _naive_utc(session.expires_at) <= (now or _utcnow())


# Fields that make up a session's content; updated_at follows these only
_CONTENT_FIELDS = ("shop", "state", "is_online", "scope", "access_token", "user_id", "expires_at")


def _unchanged(db: Session, session: ShopSession) -> bool:
    if session in db:
        return not db.is_modified(session)
    existing = db.get(ShopSession, session.id)
    if existing is None:
        return False
    return all(getattr(existing, f) == getattr(session, f) for f in _CONTENT_FIELDS)


def store_session(db: Session, session: ShopSession) -> bool:
    """Insert or overwrite a session by id.

    Storing identical data again is a no-op: the row and its ``updated_at``
    stay as they were, so which session resolution picks never changes.
    Returns False when the database rejects the write.
    """
    session.shop = normalize_shop_domain(session.shop)
    session.expires_at = _naive_utc(session.expires_at)
    if _unchanged(db, session):
        logger.debug("Session %s unchanged; nothing to store", session.id)
        return True

    session.updated_at = _utcnow()
    try:
        db.merge(session)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to store session %s for %s", session.id, session.shop)
        return False

    logger.debug(
        "Stored session %s (shop=%s online=%s token=%s)",
        session.id, session.shop, session.is_online, mask_token(session.access_token),
    )
    return True


def load_session(db: Session, session_id: str) -> Optional[ShopSession]:
    """Load a live session. Expired rows are deleted and reported as absent."""
    session = db.get(ShopSession, session_id)
    if session is None:
        return None

    if is_expired(session):
        logger.info("Session %s expired at %s; purging", session_id, session.expires_at)
        db.delete(session)
        db.commit()
        return None

    return session


def delete_session(db: Session, session_id: str) -> bool:
    return delete_sessions(db, [session_id])


def delete_sessions(db: Session, session_ids: Iterable[str]) -> bool:
    """Delete sessions by id. Unknown ids are ignored."""
    ids = list(session_ids)
    if not ids:
        return True
    try:
        removed = (
            db.query(ShopSession)
            .filter(ShopSession.id.in_(ids))
            .delete(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to delete %d session(s)", len(ids))
        return False

    logger.debug("Deleted %d of %d requested session(s)", removed, len(ids))
    return True


def find_sessions_by_shop(db: Session, shop: str) -> list[ShopSession]:
    """All live sessions for a shop, most recently stored first."""
    rows = (
        db.query(ShopSession)
        .filter(ShopSession.shop == normalize_shop_domain(shop))
        .order_by(ShopSession.updated_at.desc())
        .all()
    )

    now = _utcnow()
    live = [s for s in rows if not is_expired(s, now)]
    expired = [s for s in rows if is_expired(s, now)]
    if expired:
        logger.info("Purging %d expired session(s) for %s", len(expired), shop)
        for s in expired:
            db.delete(s)
        db.commit()

    return live


def delete_sessions_for_shop(db: Session, shop: str) -> int:
    """Remove every session a shop holds (used on uninstall).

    Returns the number of sessions removed.
    """
    ids = [
        row.id
        for row in db.query(ShopSession.id)
        .filter(ShopSession.shop == normalize_shop_domain(shop))
        .all()
    ]
    if not delete_sessions(db, ids):
        raise SQLAlchemyError(f"Could not delete sessions for {shop}")
    return len(ids)
