"""Legacy access request store.

Creation enforces the one-active-request-per-(owner, requester email) rule;
status changes go through ``transition_status``, a compare-and-swap update
that only succeeds when the row is still in the expected status.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from afterme.core.exceptions import DuplicateActiveRequest, InvalidTransition
from afterme.db.enums import ACTIVE_STATUSES, LegacyAccessStatus, VerificationMethod
from afterme.db.models import LegacyAccessRequest, User
from afterme.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

_ACTIVE_VALUES = [s.value for s in ACTIVE_STATUSES]


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_owner_by_identifier(db: Session, identifier: str) -> User | None:
    """Resolve the owner a requester named (currently: account email)."""
    return (
        db.query(User)
        .filter(func.lower(User.email) == normalize_email(identifier), User.is_active.is_(True))
        .first()
    )


def get_active_request(
    db: Session, owner_id: UUID, requester_email: str
) -> LegacyAccessRequest | None:
    return (
        db.query(LegacyAccessRequest)
        .filter(
            LegacyAccessRequest.owner_id == owner_id,
            LegacyAccessRequest.requester_email == normalize_email(requester_email),
            LegacyAccessRequest.status.in_(_ACTIVE_VALUES),
        )
        .first()
    )


def create_request(
    db: Session,
    *,
    owner_id: UUID,
    requester_name: str,
    requester_email: str,
    relationship: str,
    verification_method: VerificationMethod,
    death_certificate_url: str | None = None,
    requester_phone: str | None = None,
) -> LegacyAccessRequest:
    """
    Create a pending request (flushed, not committed).

    Raises:
        DuplicateActiveRequest: a non-terminal request exists for the pair,
            including one inserted concurrently (caught by the partial unique index).
    """
    email = normalize_email(requester_email)
    existing = get_active_request(db, owner_id, email)
    if existing:
        raise DuplicateActiveRequest(existing.id)

    now = utcnow()
    request = LegacyAccessRequest(
        owner_id=owner_id,
        requester_name=requester_name.strip(),
        requester_email=email,
        requester_phone=requester_phone or None,
        relationship_label=relationship.strip(),
        verification_method=verification_method.value,
        death_certificate_url=death_certificate_url or None,
        death_certificate_uploaded_at=now if death_certificate_url else None,
        status=LegacyAccessStatus.PENDING.value,
        status_message="Your request has been received.",
        created_at=now,
        updated_at=now,
    )
    try:
        with db.begin_nested():
            db.add(request)
            db.flush()
    except IntegrityError:
        existing = get_active_request(db, owner_id, email)
        if existing is None:
            raise
        raise DuplicateActiveRequest(existing.id)
    return request


def get_request(db: Session, request_id: UUID) -> LegacyAccessRequest | None:
    """Get a legacy access request by ID."""
    return db.query(LegacyAccessRequest).filter(LegacyAccessRequest.id == request_id).first()


def get_request_for_owner(
    db: Session, request_id: UUID, owner_id: UUID
) -> LegacyAccessRequest | None:
    """Get a request only if it targets the given owner."""
    return (
        db.query(LegacyAccessRequest)
        .filter(
            LegacyAccessRequest.id == request_id,
            LegacyAccessRequest.owner_id == owner_id,
        )
        .first()
    )


def lock_request(db: Session, request_id: UUID) -> LegacyAccessRequest | None:
    """
    Load a request with a row lock (SELECT ... FOR UPDATE).

    Serializes concurrent trustee responses on the same request so the
    tally-and-transition step sees every committed response.
    """
    return (
        db.query(LegacyAccessRequest)
        .filter(LegacyAccessRequest.id == request_id)
        .with_for_update()
        .populate_existing()
        .first()
    )


def get_requests_by_email(
    db: Session, email: str, request_id: UUID | None = None
) -> list[LegacyAccessRequest]:
    """All requests submitted by a requester email, newest first."""
    query = db.query(LegacyAccessRequest).filter(
        LegacyAccessRequest.requester_email == normalize_email(email)
    )
    if request_id:
        query = query.filter(LegacyAccessRequest.id == request_id)
    return query.order_by(LegacyAccessRequest.created_at.desc()).all()


def list_requests_for_owner(db: Session, owner_id: UUID) -> list[LegacyAccessRequest]:
    return (
        db.query(LegacyAccessRequest)
        .filter(LegacyAccessRequest.owner_id == owner_id)
        .order_by(LegacyAccessRequest.created_at.desc())
        .all()
    )


def transition_status(
    db: Session,
    request_id: UUID,
    expected: LegacyAccessStatus,
    new: LegacyAccessStatus,
    *,
    event: str,
    **fields,
) -> LegacyAccessRequest:
    """
    Move a request from ``expected`` to ``new`` and write ``fields`` atomically.

    Issues ``UPDATE ... WHERE id = :id AND status = :expected``; if another
    actor moved the request first, no row matches and InvalidTransition is
    raised without any mutation.
    """
    now = utcnow()
    stmt = (
        update(LegacyAccessRequest)
        .where(
            LegacyAccessRequest.id == request_id,
            LegacyAccessRequest.status == expected.value,
        )
        .values(status=new.value, updated_at=now, **fields)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        current = db.scalar(
            select(LegacyAccessRequest.status).where(LegacyAccessRequest.id == request_id)
        )
        logger.warning(
            "Legacy request transition lost: request=%s expected=%s current=%s event=%s",
            request_id,
            expected.value,
            current,
            event,
        )
        raise InvalidTransition(current, event)

    request = db.get(LegacyAccessRequest, request_id, populate_existing=True)
    return request
