"""Grace period scheduler.

The countdown lives entirely in ``grace_period_end``; nothing runs in-process
between quorum and release. An external trigger (cron hitting the internal
endpoint, the CLI, or the worker's sweep interval) calls
``tick_expired_grace_periods``; running it repeatedly or from several
processes at once is safe because every grant is a conditional update.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from afterme.core.config import settings
from afterme.core.exceptions import InvalidTransition, RequestNotFound
from afterme.core.structured_logging import build_log_context
from afterme.db.enums import AuditEventType, LegacyAccessEvent, LegacyAccessStatus
from afterme.db.models import LegacyAccessRequest, UserSettings
from afterme.services import (
    access_token_service,
    audit_service,
    legacy_notification_service,
    legacy_state_machine,
    request_service,
)
from afterme.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    granted: list[UUID] = field(default_factory=list)
    expired: list[UUID] = field(default_factory=list)


def _owner_settings(db: Session, owner_id: UUID) -> UserSettings | None:
    return db.get(UserSettings, owner_id)


def grace_period_days_for(db: Session, owner_id: UUID) -> int:
    prefs = _owner_settings(db, owner_id)
    if prefs and prefs.grace_period_days and prefs.grace_period_days > 0:
        return min(prefs.grace_period_days, settings.LEGACY_MAX_GRACE_PERIOD_DAYS)
    return settings.LEGACY_GRACE_PERIOD_DAYS


def access_duration_days_for(db: Session, owner_id: UUID) -> int:
    prefs = _owner_settings(db, owner_id)
    if prefs and prefs.access_duration_days and prefs.access_duration_days > 0:
        return min(prefs.access_duration_days, settings.LEGACY_MAX_ACCESS_DURATION_DAYS)
    return settings.LEGACY_ACCESS_DURATION_DAYS


def start_grace_period(
    db: Session,
    request: LegacyAccessRequest,
    duration_days: int | None = None,
    now: datetime | None = None,
) -> datetime:
    """
    Move a verified request into its grace period and announce it.

    ``grace_period_end`` is written here and nowhere else. Caller commits.
    """
    now = now or utcnow()
    days = duration_days or grace_period_days_for(db, request.owner_id)
    grace_period_end = now + timedelta(days=days)

    request = legacy_state_machine.apply_event(
        db,
        request,
        LegacyAccessEvent.VERIFICATION_COMPLETED,
        status_message=f"Verification complete. A {days}-day grace period has started.",
        grace_period_start=now,
        grace_period_end=grace_period_end,
    )
    legacy_notification_service.notify_requester_grace_period_started(db, request)
    legacy_notification_service.notify_owner_of_request(db, request)
    audit_service.log_event(
        db,
        AuditEventType.LEGACY_GRACE_PERIOD_STARTED,
        owner_id=request.owner_id,
        target_type="legacy_access_request",
        target_id=request.id,
        details={"grace_period_days": days, "grace_period_end": grace_period_end.isoformat()},
    )
    return grace_period_end


def cancel_grace_period(
    db: Session,
    request_id: UUID,
    owner_id: UUID,
    now: datetime | None = None,
) -> LegacyAccessRequest:
    """
    Owner cancels a request during its grace period. Commits.

    Raises:
        RequestNotFound: no such request for this owner.
        InvalidTransition: request is not in grace_period.
    """
    request = request_service.get_request_for_owner(db, request_id, owner_id)
    if request is None:
        raise RequestNotFound(str(request_id))

    now = now or utcnow()
    request = legacy_state_machine.apply_event(
        db,
        request,
        LegacyAccessEvent.OWNER_CANCELLED,
        status_message="This request was cancelled by the account owner.",
        cancelled_at=now,
    )
    legacy_notification_service.notify_requester_request_cancelled(db, request)
    audit_service.log_event(
        db,
        AuditEventType.LEGACY_REQUEST_CANCELLED,
        owner_id=owner_id,
        actor_user_id=owner_id,
        target_type="legacy_access_request",
        target_id=request.id,
    )
    db.commit()
    db.refresh(request)
    return request


def grant_access(
    db: Session,
    request: LegacyAccessRequest,
    now: datetime | None = None,
) -> LegacyAccessRequest:
    """grace_period -> granted, mint the token, announce. Caller commits."""
    now = now or utcnow()
    days = access_duration_days_for(db, request.owner_id)
    request = legacy_state_machine.apply_event(
        db,
        request,
        LegacyAccessEvent.GRACE_PERIOD_ELAPSED,
        status_message="Access has been granted.",
        access_granted_at=now,
        access_expires_at=now + timedelta(days=days),
    )
    access_token_service.issue_token(db, request)
    legacy_notification_service.notify_requester_access_granted(db, request)
    audit_service.log_event(
        db,
        AuditEventType.LEGACY_ACCESS_GRANTED,
        owner_id=request.owner_id,
        target_type="legacy_access_request",
        target_id=request.id,
        details={"access_expires_at": request.access_expires_at.isoformat()},
    )
    return request


def _due_ids(db: Session, status: LegacyAccessStatus, column, now: datetime) -> list[UUID]:
    rows = (
        db.query(LegacyAccessRequest.id)
        .filter(LegacyAccessRequest.status == status.value, column <= now)
        .order_by(column)
        .all()
    )
    return [row[0] for row in rows]


def tick_expired_grace_periods(db: Session, now: datetime | None = None) -> list[UUID]:
    """
    Grant every request whose grace period has ended and was not cancelled.

    Each request is granted in its own transaction; one that another process
    already moved (granted, cancelled) is skipped. A request that fails to
    grant is rolled back and logged so later ones still go through.
    """
    now = now or utcnow()
    granted: list[UUID] = []
    for request_id in _due_ids(db, LegacyAccessStatus.GRACE_PERIOD, LegacyAccessRequest.grace_period_end, now):
        request = request_service.get_request(db, request_id)
        if request is None or request.status != LegacyAccessStatus.GRACE_PERIOD.value:
            continue
        try:
            grant_access(db, request, now=now)
            db.commit()
            granted.append(request_id)
        except InvalidTransition:
            db.rollback()
            logger.warning(
                "Grace period sweep skipped request already moved",
                extra=build_log_context(legacy_request_id=str(request_id), route="sweep"),
            )
        except Exception:
            db.rollback()
            logger.exception(
                "Grace period sweep failed to grant request",
                extra=build_log_context(legacy_request_id=str(request_id), route="sweep"),
            )
    if granted:
        logger.info("Grace period sweep granted %d request(s)", len(granted))
    return granted


def expire_granted_access(db: Session, now: datetime | None = None) -> list[UUID]:
    """Expire granted requests whose absolute access window has passed."""
    now = now or utcnow()
    expired: list[UUID] = []
    for request_id in _due_ids(db, LegacyAccessStatus.GRANTED, LegacyAccessRequest.access_expires_at, now):
        request = request_service.get_request(db, request_id)
        if request is None or request.status != LegacyAccessStatus.GRANTED.value:
            continue
        try:
            legacy_state_machine.apply_event(
                db,
                request,
                LegacyAccessEvent.ACCESS_EXPIRED,
                status_message="The access period has ended.",
            )
            audit_service.log_event(
                db,
                AuditEventType.LEGACY_ACCESS_EXPIRED,
                owner_id=request.owner_id,
                target_type="legacy_access_request",
                target_id=request_id,
            )
            db.commit()
            expired.append(request_id)
        except InvalidTransition:
            db.rollback()
            logger.warning(
                "Access expiry sweep skipped request already moved",
                extra=build_log_context(legacy_request_id=str(request_id), route="sweep"),
            )
        except Exception:
            db.rollback()
            logger.exception(
                "Access expiry sweep failed to expire request",
                extra=build_log_context(legacy_request_id=str(request_id), route="sweep"),
            )
    return expired


def run_sweep(db: Session, now: datetime | None = None) -> SweepResult:
    now = now or utcnow()
    return SweepResult(
        granted=tick_expired_grace_periods(db, now=now),
        expired=expire_granted_access(db, now=now),
    )
