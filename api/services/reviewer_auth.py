"""
Caller identity for the duplicate review endpoints.

Authentication happens upstream. This only turns request headers into a
Caller; whether that caller may review duplicates is decided per operation
by curation.duplicates.permissions.

- Authorization: Bearer <API_SERVICE_KEY> is the trusted service identity.
- X-User-Id names the signed-in user, and counts only when the auth gateway
  also sends X-Gateway-Key: <API_GATEWAY_KEY>.
- Anything else is anonymous, which every gated operation refuses.
"""

import logging
import secrets

from fastapi import Header, HTTPException

from curation.config import get_settings
from curation.duplicates import Caller

logger = logging.getLogger(__name__)


def _extract_bearer_token(authorization: str) -> str:
    """Extract token from Authorization: Bearer <token> header."""
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authorization header must use Bearer scheme")
    return authorization[7:]  # Remove "Bearer " prefix


def _gateway_verified(gateway_key: str | None) -> bool:
    """True when the request carries the auth gateway's shared secret."""
    configured_key = get_settings().api.gateway_key
    if not configured_key:
        logger.warning("API_GATEWAY_KEY not configured - X-User-Id headers are ignored")
        return False
    if not gateway_key:
        return False
    if not secrets.compare_digest(gateway_key, configured_key):
        logger.warning("X-User-Id sent with an invalid gateway key - treating caller as anonymous")
        return False
    return True


def get_caller(
    authorization: str | None = Header(None, description="Bearer service key"),
    x_user_id: str | None = Header(None, description="Authenticated user id from the auth gateway"),
    x_gateway_key: str | None = Header(None, description="Shared secret proving X-User-Id came from the auth gateway"),
) -> Caller:
    """FastAPI dependency resolving the request's Caller."""
    if authorization:
        token = _extract_bearer_token(authorization)
        configured_key = get_settings().api.service_key
        if not configured_key:
            logger.warning("API_SERVICE_KEY not configured - service access disabled")
            raise HTTPException(status_code=503, detail="Service access not configured")
        if not secrets.compare_digest(token, configured_key):
            raise HTTPException(status_code=403, detail="Invalid service key")
        return Caller.service("api")

    if x_user_id and x_user_id.strip() and _gateway_verified(x_gateway_key):
        return Caller.user(x_user_id.strip())

    return Caller.anonymous()
