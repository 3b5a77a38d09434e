"""Notification dispatcher interface for the legacy access workflow.

The state machine calls these functions inside its own transaction. Each one
writes an outbox job rather than sending anything, so a state change and its
announcement commit together, and delivery failures (retried by the worker)
can never roll back or block the transition.

Payloads carry ids only. Tokens and links are resolved by the job handler at
send time.
"""

from __future__ import annotations

from urllib.parse import urlencode
from uuid import UUID

from sqlalchemy.orm import Session

from afterme.core.config import settings
from afterme.core.constants import STATUS_PATH, TRUSTEE_CONFIRM_PATH
from afterme.db.enums import JobType, LegacyNotificationKind
from afterme.db.models import Job, LegacyAccessRequest, TrusteeConfirmation
from afterme.services import job_service


def _frontend_link(path: str, params: dict) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}{path}?{urlencode(params)}"


def build_confirmation_link(token: str) -> str:
    return _frontend_link(TRUSTEE_CONFIRM_PATH, {"token": token})


def build_status_link(request: LegacyAccessRequest) -> str:
    return _frontend_link(
        STATUS_PATH, {"email": request.requester_email, "request_id": str(request.id)}
    )


def notification_key(kind: LegacyNotificationKind, request_id: UUID, suffix: str | None = None) -> str:
    key = f"legacy:{kind.value}:{request_id}"
    return f"{key}:{suffix}" if suffix else key


def _enqueue(
    db: Session,
    kind: LegacyNotificationKind,
    request: LegacyAccessRequest,
    *,
    suffix: str | None = None,
    extra: dict | None = None,
) -> Job:
    payload = {"kind": kind.value, "request_id": str(request.id)}
    if extra:
        payload.update(extra)
    return job_service.enqueue_job(
        db,
        job_type=JobType.LEGACY_NOTIFICATION,
        payload=payload,
        idempotency_key=notification_key(kind, request.id, suffix),
    )


def notify_trustees_of_request(
    db: Session,
    request: LegacyAccessRequest,
    confirmations: list[TrusteeConfirmation] | None = None,
) -> list[Job]:
    """One confirmation-request email per fanned-out trustee."""
    if confirmations is None:
        confirmations = request.confirmations
    return [
        _enqueue(
            db,
            LegacyNotificationKind.TRUSTEE_CONFIRMATION_REQUESTED,
            request,
            suffix=str(confirmation.trustee_id or confirmation.id),
            extra={"confirmation_id": str(confirmation.id)},
        )
        for confirmation in confirmations
    ]


def notify_requester_grace_period_started(db: Session, request: LegacyAccessRequest) -> Job:
    return _enqueue(db, LegacyNotificationKind.GRACE_PERIOD_STARTED, request)


def notify_owner_of_request(db: Session, request: LegacyAccessRequest) -> Job:
    """Security alert to the owner: someone is about to be given access."""
    return _enqueue(db, LegacyNotificationKind.OWNER_SECURITY_ALERT, request)


def notify_requester_access_granted(db: Session, request: LegacyAccessRequest) -> Job:
    return _enqueue(db, LegacyNotificationKind.ACCESS_GRANTED, request)


def notify_request_rejected(db: Session, request: LegacyAccessRequest) -> list[Job]:
    """Denial notice to the requester, plus a false-alarm alert to the owner."""
    return [
        _enqueue(db, LegacyNotificationKind.REQUEST_REJECTED, request),
        _enqueue(db, LegacyNotificationKind.OWNER_REJECTION_ALERT, request),
    ]


def notify_requester_request_cancelled(db: Session, request: LegacyAccessRequest) -> Job:
    return _enqueue(db, LegacyNotificationKind.REQUEST_CANCELLED, request)


def notify_requester_access_revoked(db: Session, request: LegacyAccessRequest) -> Job:
    return _enqueue(db, LegacyNotificationKind.ACCESS_REVOKED, request)
