"""Legacy access state machine.

The single authoritative transition table. Every status write in the
workflow goes through ``apply_event``; nothing else assigns
``LegacyAccessRequest.status``.

    pending --trustee_responded / manual_review_started--> under_review
    pending --manual_rejected--> rejected
    under_review --quorum_confirmed / manual_verified--> verified
    under_review --quorum_impossible / manual_rejected--> rejected
    verified --verification_completed--> grace_period
    grace_period --owner_cancelled--> cancelled
    grace_period --grace_period_elapsed--> granted
    granted --access_expired--> expired
    granted --owner_revoked--> cancelled
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from afterme.core.exceptions import InvalidTransition
from afterme.db.enums import LegacyAccessEvent as E
from afterme.db.enums import LegacyAccessStatus as S
from afterme.db.models import LegacyAccessRequest
from afterme.services import request_service

logger = logging.getLogger(__name__)

TRANSITIONS: dict[tuple[S, E], S] = {
    (S.PENDING, E.TRUSTEE_RESPONDED): S.UNDER_REVIEW,
    (S.PENDING, E.MANUAL_REVIEW_STARTED): S.UNDER_REVIEW,
    (S.PENDING, E.MANUAL_REJECTED): S.REJECTED,
    (S.UNDER_REVIEW, E.QUORUM_CONFIRMED): S.VERIFIED,
    (S.UNDER_REVIEW, E.MANUAL_VERIFIED): S.VERIFIED,
    (S.UNDER_REVIEW, E.QUORUM_IMPOSSIBLE): S.REJECTED,
    (S.UNDER_REVIEW, E.MANUAL_REJECTED): S.REJECTED,
    (S.VERIFIED, E.VERIFICATION_COMPLETED): S.GRACE_PERIOD,
    (S.GRACE_PERIOD, E.OWNER_CANCELLED): S.CANCELLED,
    (S.GRACE_PERIOD, E.GRACE_PERIOD_ELAPSED): S.GRANTED,
    (S.GRANTED, E.ACCESS_EXPIRED): S.EXPIRED,
    (S.GRANTED, E.OWNER_REVOKED): S.CANCELLED,
}


def next_status(current: S, event: E) -> S:
    """Look up the target status, or raise InvalidTransition."""
    target = TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransition(current.value, event.value)
    return target


def can_apply(current: S, event: E) -> bool:
    return (current, event) in TRANSITIONS


def apply_event(
    db: Session,
    request: LegacyAccessRequest,
    event: E,
    *,
    status_message: str,
    **fields,
) -> LegacyAccessRequest:
    """
    Apply ``event`` to ``request`` and persist the new status with ``fields``.

    The write is conditional on the status the caller observed, so a stale
    caller (duplicate sweep, replayed link, concurrent owner action) gets
    InvalidTransition and changes nothing.
    """
    current = request.status_enum
    target = next_status(current, event)
    updated = request_service.transition_status(
        db,
        request.id,
        expected=current,
        new=target,
        event=event.value,
        status_message=status_message,
        **fields,
    )
    logger.info(
        "Legacy request %s: %s -> %s (%s)",
        request.id,
        current.value,
        target.value,
        event.value,
    )
    return updated
