"""Audit logging service - legacy access compliance trail.

Security guidelines:
- NEVER log bearer tokens (use security.token_fingerprint)
- Hash PII in details (use hash_email for emails)
- Use IDs instead of raw data where possible
- IP: Trust X-Forwarded-For only in production behind LB
"""

from typing import Any
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from afterme.core.config import settings
from afterme.db.enums import AuditEventType
from afterme.db.models import AuditLog


def get_client_ip(request: Request | None) -> str | None:
    """
    Extract client IP from request.

    Only trusts X-Forwarded-For when TRUST_PROXY_HEADERS=True (behind reverse proxy).
    """
    if not request:
        return None

    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For: client, proxy1, proxy2 - take first
            return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return None


def get_user_agent(request: Request | None) -> str | None:
    """Extract user agent from request."""
    if not request:
        return None
    ua = request.headers.get("user-agent", "")
    # Truncate to 500 chars (DB limit)
    return ua[:500] if ua else None


def log_event(
    db: Session,
    event_type: AuditEventType,
    *,
    owner_id: UUID | None = None,
    actor_user_id: UUID | None = None,
    target_type: str | None = None,
    target_id: UUID | None = None,
    details: dict[str, Any] | None = None,
    request: Request | None = None,
) -> AuditLog:
    """
    Record an audit event in the caller's transaction.

    The entry is flushed, not committed, so it lands atomically with the
    state change it describes.
    """
    entry = AuditLog(
        owner_id=owner_id,
        actor_user_id=actor_user_id,
        event_type=event_type.value,
        target_type=target_type,
        target_id=target_id,
        details=details,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    db.add(entry)
    db.flush()
    return entry


def list_events_for_target(db: Session, target_type: str, target_id: UUID) -> list[AuditLog]:
    """Audit trail for one entity, oldest first."""
    return (
        db.query(AuditLog)
        .filter(AuditLog.target_type == target_type, AuditLog.target_id == target_id)
        .order_by(AuditLog.created_at)
        .all()
    )
