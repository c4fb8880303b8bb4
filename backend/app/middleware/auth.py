"""Shared-secret authentication for the voice provider's webhooks."""

import hmac
import logging
from typing import Optional

from fastapi import Request

from app.config import settings
from app.errors import Unauthenticated

logger = logging.getLogger(__name__)

SECRET_HEADERS = ("x-vapi-secret", "x-api-key")


def extract_secret(request: Request) -> Optional[str]:
    """Read the shared secret from the provider's header, x-api-key, or a bearer token."""
    for name in SECRET_HEADERS:
        value = request.headers.get(name)
        if value:
            return value

    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def verify_secret(presented: Optional[str], expected: str) -> bool:
    if not presented or not expected:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def require_webhook_secret(request: Request) -> None:
    """FastAPI dependency rejecting requests without the configured secret."""
    presented = extract_secret(request)
    if not verify_secret(presented, settings.VAPI_WEBHOOK_SECRET):
        if not settings.VAPI_WEBHOOK_SECRET:
            logger.error("VAPI_WEBHOOK_SECRET is not configured; rejecting webhook")
        logger.warning(
            "Rejected webhook from %s: secret %s",
            request.client.host if request.client else "unknown",
            "mismatched" if presented else "missing",
        )
        raise Unauthenticated("Unauthorized: invalid or missing API key")
