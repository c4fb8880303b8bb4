"""Tenant service — assistant bindings and dispatch-time tenant resolution.

A binding (assistant id → shop) and the shop's OAuth session live and die
independently: a merchant can reinstall and get a fresh token without
re-provisioning their assistant. Resolution therefore looks up both and
reports which half is missing.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.errors import MissingCredential, UnknownTenant
from app.models.assistant_binding import AssistantBinding
from app.services.session_storage import find_sessions_by_shop, mask_token, normalize_shop_domain

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantCredential:
    shop: str
    access_token: str

    def __repr__(self) -> str:
        return f"TenantCredential(shop={self.shop!r}, access_token={mask_token(self.access_token)!r})"


def get_binding(db: Session, assistant_id: str) -> Optional[AssistantBinding]:
    return db.get(AssistantBinding, assistant_id)


def bind_assistant(db: Session, assistant_id: str, shop: str) -> AssistantBinding:
    """Point an assistant at a shop, replacing whatever it was bound to before."""
    shop = normalize_shop_domain(shop)
    binding = get_binding(db, assistant_id)
    if binding is None:
        binding = AssistantBinding(assistant_id=assistant_id, shop=shop)
        db.add(binding)
    elif binding.shop != shop:
        logger.info("Rebinding assistant %s from %s to %s", assistant_id, binding.shop, shop)
        binding.shop = shop
    binding.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(binding)
    return binding


def unbind_assistant(db: Session, assistant_id: str) -> bool:
    """Remove an assistant's binding. Returns False if there was none."""
    binding = get_binding(db, assistant_id)
    if binding is None:
        return False
    db.delete(binding)
    db.commit()
    return True


def resolve_by_assistant(db: Session, assistant_id: str) -> TenantCredential:
    """Find the shop behind an assistant and the token to call it with.

    Raises:
        UnknownTenant: no shop ever bound this assistant.
        MissingCredential: the shop is bound but holds no live session with a token.
    """
    binding = get_binding(db, assistant_id)
    if binding is None:
        logger.warning("No binding for assistant %s", assistant_id)
        raise UnknownTenant(f"No shop is linked to assistant {assistant_id}")

    # Offline (shop-level) tokens first, then the most recently stored one
    sessions = sorted(find_sessions_by_shop(db, binding.shop), key=lambda s: s.is_online)
    session = sessions[0] if sessions else None

    if session is None or not session.access_token:
        logger.warning(
            "Assistant %s is bound to %s but no usable session exists (sessions=%d)",
            assistant_id, binding.shop, len(sessions),
        )
        raise MissingCredential(f"No valid access token for shop {binding.shop}")

    return TenantCredential(shop=binding.shop, access_token=session.access_token)
