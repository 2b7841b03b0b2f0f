"""
Identity collaborator for the Folio API.

Verifies HS256 bearer tokens and extracts the user id from the `sub` claim.
"""
from datetime import timedelta
from typing import Optional
import logging

import jwt
from fastapi import Header, Request

from folio.core.clock import utcnow
from folio.core.config import settings
from folio.core.errors import UnauthenticatedError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def _secret() -> str:
    if not settings.AUTH_SECRET_KEY:
        raise UnauthenticatedError("Authentication is not configured")
    return settings.AUTH_SECRET_KEY


def issue_token(user_id: str, expires_in: Optional[int] = None) -> str:
    """Mint a bearer token for `user_id` (development and tests)."""
    now = utcnow()
    ttl = expires_in if expires_in is not None else settings.AUTH_TOKEN_TTL_SECONDS
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(seconds=ttl),
    }
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def verify_token(token: Optional[str]) -> str:
    """
    Verify a bearer token and extract user_id.

    Args:
        token: JWT (without the "Bearer " prefix)

    Returns:
        user_id: Extracted from the token's 'sub' claim

    Raises:
        UnauthenticatedError: Missing, invalid or expired token
    """
    if not token:
        raise UnauthenticatedError("Missing bearer token")

    try:
        payload = jwt.decode(
            token,
            _secret(),
            algorithms=[ALGORITHM],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise UnauthenticatedError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthenticatedError("Token has no subject")
    return str(user_id)


def get_bearer_token(
    request: Request,
    authorization: Optional[str] = Header(None, description="Bearer token"),
) -> str:
    """Extract the raw bearer token from the Authorization header."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip()
    raise UnauthenticatedError(
        "Missing Authorization (Bearer token) header",
        request_id=getattr(request.state, "request_id", None),
    )


def get_current_user_id(
    request: Request,
    authorization: Optional[str] = Header(None, description="Bearer token"),
) -> str:
    """FastAPI dependency: verified user id for the current request."""
    token = get_bearer_token(request, authorization)
    user_id = verify_token(token)
    request.state.user_id = user_id
    return user_id
