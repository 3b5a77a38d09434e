"""Security utilities for owner session tokens and bearer link tokens."""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from afterme.core.config import settings


# =============================================================================
# Session Token (JWT in cookie)
# =============================================================================

def create_session_token(user_id: UUID, token_version: int) -> str:
    """
    Create signed session JWT for an owner.

    Always signs with current secret (JWT_SECRET).
    """
    payload = {
        "sub": str(user_id),
        "token_version": token_version,
        "iat": datetime.now(timezone.utc),
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_session_token(token: str) -> dict:
    """
    Decode and verify session JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


# =============================================================================
# Bearer link tokens
# =============================================================================

def generate_link_token(nbytes: int) -> str:
    """Unguessable URL-safe token for emailed links (never sequential)."""
    return secrets.token_urlsafe(nbytes)


def token_fingerprint(token: str) -> str:
    """Short, non-reversible fingerprint of a token for logs and audit details."""
    return hashlib.sha256(token.encode()).hexdigest()[:12]


def verify_internal_secret(provided: str | None) -> bool:
    """Constant-time comparison against INTERNAL_SECRET."""
    expected = settings.INTERNAL_SECRET
    if not expected or not provided:
        return False
    return secrets.compare_digest(provided, expected)
