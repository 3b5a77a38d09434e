"""Access token issuer: mint, validate and revoke bearer tokens for granted requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import urlencode
from uuid import UUID

from sqlalchemy.orm import Session

from afterme.core.config import settings
from afterme.core.constants import ACCESS_TOKEN_BYTES, ACCESS_VIEW_PATH
from afterme.core.security import generate_link_token, token_fingerprint
from afterme.db.enums import LegacyAccessStatus, TokenValidationStatus
from afterme.db.models import LegacyAccessRequest, LegacyAccessToken
from afterme.utils.datetime_utils import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenValidation:
    status: TokenValidationStatus
    request_id: UUID | None = None
    owner_id: UUID | None = None
    expires_at: datetime | None = None

    @property
    def is_valid(self) -> bool:
        return self.status is TokenValidationStatus.VALID


def get_token_for_request(db: Session, request_id: UUID) -> LegacyAccessToken | None:
    return db.query(LegacyAccessToken).filter(LegacyAccessToken.request_id == request_id).first()


def issue_token(db: Session, request: LegacyAccessRequest) -> LegacyAccessToken:
    """
    Mint the access token for a granted request.

    Idempotent: a second call returns the existing token (even a revoked one;
    revoked requests never get a fresh token).
    """
    existing = get_token_for_request(db, request.id)
    if existing:
        return existing

    if request.status != LegacyAccessStatus.GRANTED.value or request.access_expires_at is None:
        raise ValueError(f"Request {request.id} has not been granted")

    token = LegacyAccessToken(
        request_id=request.id,
        token=generate_link_token(ACCESS_TOKEN_BYTES),
        expires_at=request.access_expires_at,
        revoked=False,
    )
    db.add(token)
    db.flush()
    logger.info("Access token issued for request %s (%s)", request.id, token_fingerprint(token.token))
    return token


def validate_token(db: Session, value: str | None, now: datetime | None = None) -> TokenValidation:
    """
    Resolve a bearer token.

    Revocation wins over expiry; expiry is absolute (no sliding renewal).
    """
    if not value:
        return TokenValidation(TokenValidationStatus.NOT_FOUND)

    token = db.query(LegacyAccessToken).filter(LegacyAccessToken.token == value).first()
    if token is None:
        return TokenValidation(TokenValidationStatus.NOT_FOUND)

    request = token.request
    base = {
        "request_id": request.id,
        "owner_id": request.owner_id,
        "expires_at": as_utc(token.expires_at),
    }
    if token.revoked:
        return TokenValidation(TokenValidationStatus.REVOKED, **base)

    now = now or utcnow()
    if as_utc(token.expires_at) <= now or request.status == LegacyAccessStatus.EXPIRED.value:
        return TokenValidation(TokenValidationStatus.EXPIRED, **base)
    if request.status != LegacyAccessStatus.GRANTED.value:
        # Request withdrawn by some other path; treat like revocation
        return TokenValidation(TokenValidationStatus.REVOKED, **base)

    return TokenValidation(TokenValidationStatus.VALID, **base)


def revoke(db: Session, request_id: UUID) -> LegacyAccessToken | None:
    """Revoke the request's token immediately. Irreversible; no-op if already revoked."""
    token = get_token_for_request(db, request_id)
    if token is None or token.revoked:
        return token
    token.revoked = True
    token.revoked_at = utcnow()
    db.flush()
    logger.info("Access token revoked for request %s", request_id)
    return token


def touch(db: Session, token_value: str) -> None:
    """Record a successful use of the token."""
    token = db.query(LegacyAccessToken).filter(LegacyAccessToken.token == token_value).first()
    if token:
        token.last_used_at = utcnow()
        db.flush()


def build_access_link(token_value: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}{ACCESS_VIEW_PATH}?{urlencode({'token': token_value})}"
