"""Legacy access workflow orchestration.

Ties the request store, trustee ledger, state machine, grace period
scheduler, token issuer and notification outbox together for the HTTP
surface. Each public operation is one database transaction: state change,
audit rows and outbox jobs commit together or not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from afterme.core.exceptions import (
    AccessDenied,
    InvalidOrUsedToken,
    NoTrustees,
    RequestNotFound,
)
from afterme.core.security import token_fingerprint
from afterme.core.structured_logging import build_log_context
from afterme.db.enums import (
    AuditEventType,
    ConfirmAction,
    LegacyAccessEvent,
    LegacyAccessStatus,
    TokenValidationStatus,
    TrusteeAction,
    VerificationMethod,
)
from afterme.db.models import LegacyAccessRequest, User, UserSettings
from afterme.services import (
    access_token_service,
    audit_service,
    grace_period_service,
    legacy_notification_service,
    legacy_state_machine,
    request_service,
    trustee_confirmation_service,
)
from afterme.services.legacy_content_service import ContentProvider, get_content_provider
from afterme.services.trustee_confirmation_service import Tally
from afterme.utils.datetime_utils import as_utc, utcnow
from afterme.utils.masking import hash_email, mask_email

logger = logging.getLogger(__name__)

TARGET_TYPE = "legacy_access_request"

# Statuses in which trustee decisions are still accepted
ACCEPTING_RESPONSES = (LegacyAccessStatus.PENDING.value, LegacyAccessStatus.UNDER_REVIEW.value)

HELD_NO_TRUSTEES_MESSAGE = (
    "Your request has been received, but it cannot be verified by trustees yet. "
    "It is awaiting manual review."
)
HELD_MANUAL_REVIEW_MESSAGE = (
    "Your request and death certificate have been received and are awaiting manual review."
)
AWAITING_TRUSTEES_MESSAGE = "Your request has been received. Trustees have been asked to confirm it."


@dataclass
class SubmissionResult:
    # None when the owner is unknown or has not enabled legacy release
    request: LegacyAccessRequest | None
    held: bool = False


@dataclass
class RequestView:
    """A request plus what the requester/owner sees alongside it."""

    request: LegacyAccessRequest
    owner_name: str
    tally: Tally
    access_link: str | None = None


@dataclass
class ConfirmationDetails:
    request_id: UUID
    trustee_name: str
    owner_name: str
    requester_name: str
    requester_email: str
    relationship: str
    verification_method: str
    has_death_certificate: bool
    requested_at: datetime


@dataclass
class ConfirmOutcome:
    request: LegacyAccessRequest
    action: TrusteeAction
    replayed: bool
    tally: Tally


@dataclass
class ContentBundle:
    request_id: UUID
    owner_name: str
    access_expires_at: datetime | None
    content: dict[str, list[dict[str, Any]]] = field(default_factory=dict)


def _owner_name(owner: User | None) -> str:
    if owner is None:
        return ""
    return owner.display_name or owner.email.split("@")[0]


def _release_enabled(db: Session, owner: User) -> bool:
    prefs = db.get(UserSettings, owner.id)
    return prefs is None or prefs.legacy_release_enabled


# =============================================================================
# Submission
# =============================================================================

def submit_request(
    db: Session,
    *,
    owner_identifier: str,
    requester_name: str,
    requester_email: str,
    relationship: str,
    verification_method: VerificationMethod,
    death_certificate_url: str | None = None,
    requester_phone: str | None = None,
    http_request: Request | None = None,
) -> SubmissionResult:
    """
    Accept a requester's claim and start verification.

    Unknown owners and owners who disabled legacy release produce the same
    empty result as each other, so the caller can answer both identically.

    Raises:
        DuplicateActiveRequest: a non-terminal request exists for the pair.
    """
    owner = request_service.find_owner_by_identifier(db, owner_identifier)
    if owner is None or not _release_enabled(db, owner):
        logger.info(
            "Legacy access submission not accepted for %s",
            mask_email(owner_identifier) if "@" in owner_identifier else "identifier",
        )
        return SubmissionResult(request=None)

    request = request_service.create_request(
        db,
        owner_id=owner.id,
        requester_name=requester_name,
        requester_email=requester_email,
        relationship=relationship,
        verification_method=verification_method,
        death_certificate_url=death_certificate_url,
        requester_phone=requester_phone,
    )
    audit_service.log_event(
        db,
        AuditEventType.LEGACY_REQUEST_CREATED,
        owner_id=owner.id,
        target_type=TARGET_TYPE,
        target_id=request.id,
        details={
            "requester_email_hash": hash_email(request.requester_email),
            "verification_method": verification_method.value,
        },
        request=http_request,
    )

    held_reason: str | None = None
    if verification_method.requires_trustees:
        trustees = trustee_confirmation_service.get_verified_trustees(db, owner.id)
        try:
            confirmations = trustee_confirmation_service.fan_out_confirmations(db, request, trustees)
        except NoTrustees:
            held_reason = "no_trustees"
            request.status_message = HELD_NO_TRUSTEES_MESSAGE
        else:
            legacy_notification_service.notify_trustees_of_request(db, request, confirmations)
            request.status_message = AWAITING_TRUSTEES_MESSAGE
    else:
        held_reason = "manual_review"
        request.status_message = HELD_MANUAL_REVIEW_MESSAGE

    if held_reason:
        audit_service.log_event(
            db,
            AuditEventType.LEGACY_REQUEST_HELD,
            owner_id=owner.id,
            target_type=TARGET_TYPE,
            target_id=request.id,
            details={"reason": held_reason},
        )
        logger.warning(
            "Legacy access request held (%s)",
            held_reason,
            extra=build_log_context(owner_id=str(owner.id), legacy_request_id=str(request.id)),
        )

    db.commit()
    db.refresh(request)
    return SubmissionResult(request=request, held=held_reason is not None)


# =============================================================================
# Requester status
# =============================================================================

def _access_link(db: Session, request: LegacyAccessRequest) -> str | None:
    if request.status != LegacyAccessStatus.GRANTED.value:
        return None
    token = access_token_service.get_token_for_request(db, request.id)
    if token is None or token.revoked:
        return None
    return access_token_service.build_access_link(token.token)


def _view(db: Session, request: LegacyAccessRequest, *, include_link: bool) -> RequestView:
    return RequestView(
        request=request,
        owner_name=_owner_name(request.owner),
        tally=trustee_confirmation_service.tally(db, request.id),
        access_link=_access_link(db, request) if include_link else None,
    )


def get_status_for_email(
    db: Session, email: str, request_id: UUID | None = None
) -> list[RequestView]:
    """All of a requester's requests, newest first, with the access link once granted."""
    return [
        _view(db, request, include_link=True)
        for request in request_service.get_requests_by_email(db, email, request_id)
    ]


# =============================================================================
# Trustee confirmation
# =============================================================================

def get_confirmation_details(db: Session, token: str) -> ConfirmationDetails:
    """
    Summary shown to a trustee before deciding.

    Raises:
        InvalidOrUsedToken: unknown token (used=False), or one already
            answered or whose request no longer takes responses (used=True).
    """
    confirmation = trustee_confirmation_service.get_confirmation_by_token(db, token)
    if confirmation is None:
        raise InvalidOrUsedToken()
    if confirmation.action != TrusteeAction.UNCONFIRMED.value:
        raise InvalidOrUsedToken("This confirmation has already been processed", used=True)

    request = confirmation.request
    if request.status not in ACCEPTING_RESPONSES:
        raise InvalidOrUsedToken("This request is no longer awaiting confirmation", used=True)

    return ConfirmationDetails(
        request_id=request.id,
        trustee_name=confirmation.trustee.name if confirmation.trustee else "",
        owner_name=_owner_name(request.owner),
        requester_name=request.requester_name,
        requester_email=request.requester_email,
        relationship=request.relationship_label,
        verification_method=request.verification_method,
        has_death_certificate=bool(request.death_certificate_url),
        requested_at=as_utc(request.created_at),
    )


def respond_to_confirmation(
    db: Session,
    token: str,
    action: ConfirmAction,
    notes: str | None = None,
    http_request: Request | None = None,
) -> ConfirmOutcome:
    """
    Record a trustee decision and re-evaluate the request, atomically.

    The request row is locked before the response is written, so two trustees
    answering at once are tallied one after the other and neither transition
    is lost. Re-submitting the same decision returns the earlier outcome.

    Raises:
        InvalidOrUsedToken: unknown token, token used for the other decision,
            or the request is no longer accepting responses.
    """
    confirmation = trustee_confirmation_service.get_confirmation_by_token(db, token)
    if confirmation is None:
        raise InvalidOrUsedToken()

    request = request_service.lock_request(db, confirmation.request_id)
    # Another response may have been committed while we waited on the lock
    db.refresh(confirmation)
    if confirmation.action == TrusteeAction.UNCONFIRMED.value and request.status not in ACCEPTING_RESPONSES:
        db.rollback()
        raise InvalidOrUsedToken("This request is no longer awaiting confirmation", used=True)

    try:
        result = trustee_confirmation_service.record_response(db, token, action, notes)
    except InvalidOrUsedToken:
        db.rollback()
        raise

    if result.replayed:
        db.commit()
        return ConfirmOutcome(
            request=request,
            action=result.action,
            replayed=True,
            tally=trustee_confirmation_service.tally(db, request.id),
        )

    confirmed = result.action is TrusteeAction.CONFIRMED
    audit_service.log_event(
        db,
        AuditEventType.LEGACY_TRUSTEE_CONFIRMED if confirmed else AuditEventType.LEGACY_TRUSTEE_DENIED,
        owner_id=request.owner_id,
        target_type=TARGET_TYPE,
        target_id=request.id,
        details={
            "trustee_id": str(confirmation.trustee_id) if confirmation.trustee_id else None,
            "token": token_fingerprint(token),
        },
        request=http_request,
    )

    if request.status == LegacyAccessStatus.PENDING.value:
        request = legacy_state_machine.apply_event(
            db,
            request,
            LegacyAccessEvent.TRUSTEE_RESPONDED,
            status_message="Your request is being reviewed by trustees.",
        )

    tally = trustee_confirmation_service.tally(db, request.id)
    if tally.quorum_reached:
        request = legacy_state_machine.apply_event(
            db,
            request,
            LegacyAccessEvent.QUORUM_CONFIRMED,
            status_message="Your request has been verified by trustees.",
            verified_by="trustees",
            verified_at=utcnow(),
        )
        grace_period_service.start_grace_period(db, request)
    elif tally.quorum_impossible:
        request = legacy_state_machine.apply_event(
            db,
            request,
            LegacyAccessEvent.QUORUM_IMPOSSIBLE,
            status_message="Your request could not be verified by the account's trustees.",
        )
        _reject_side_effects(db, request, reason="quorum_impossible")

    db.commit()
    db.refresh(request)
    return ConfirmOutcome(request=request, action=result.action, replayed=False, tally=tally)


def _reject_side_effects(db: Session, request: LegacyAccessRequest, *, reason: str) -> None:
    legacy_notification_service.notify_request_rejected(db, request)
    audit_service.log_event(
        db,
        AuditEventType.LEGACY_REQUEST_REJECTED,
        owner_id=request.owner_id,
        target_type=TARGET_TYPE,
        target_id=request.id,
        details={"reason": reason},
    )


# =============================================================================
# Manual review (operator)
# =============================================================================

def manual_verify(db: Session, request_id: UUID, verified_by: str = "admin") -> LegacyAccessRequest:
    """
    Operator verification for held or death-certificate requests.

    Raises:
        RequestNotFound: unknown request.
        InvalidTransition: request is past verification.
    """
    request = request_service.lock_request(db, request_id)
    if request is None:
        raise RequestNotFound(str(request_id))

    if request.status == LegacyAccessStatus.PENDING.value:
        request = legacy_state_machine.apply_event(
            db,
            request,
            LegacyAccessEvent.MANUAL_REVIEW_STARTED,
            status_message="Your request is under manual review.",
        )
    request = legacy_state_machine.apply_event(
        db,
        request,
        LegacyAccessEvent.MANUAL_VERIFIED,
        status_message="Your request has been verified.",
        verified_by=verified_by,
        verified_at=utcnow(),
    )
    grace_period_service.start_grace_period(db, request)
    db.commit()
    db.refresh(request)
    return request


def manual_reject(db: Session, request_id: UUID, reason: str | None = None) -> LegacyAccessRequest:
    """
    Operator rejection of a pending or under-review request.

    Raises:
        RequestNotFound: unknown request.
        InvalidTransition: request is past verification.
    """
    request = request_service.lock_request(db, request_id)
    if request is None:
        raise RequestNotFound(str(request_id))

    request = legacy_state_machine.apply_event(
        db,
        request,
        LegacyAccessEvent.MANUAL_REJECTED,
        status_message=reason or "Your request could not be verified.",
    )
    _reject_side_effects(db, request, reason="manual")
    db.commit()
    db.refresh(request)
    return request


# =============================================================================
# Owner actions
# =============================================================================

def list_owner_requests(db: Session, owner_id: UUID) -> list[RequestView]:
    return [
        _view(db, request, include_link=False)
        for request in request_service.list_requests_for_owner(db, owner_id)
    ]


def cancel_request(db: Session, request_id: UUID, owner_id: UUID) -> LegacyAccessRequest:
    """Owner cancels during the grace period. See grace_period_service.cancel_grace_period."""
    return grace_period_service.cancel_grace_period(db, request_id, owner_id)


def revoke_access(
    db: Session,
    request_id: UUID,
    owner_id: UUID,
    http_request: Request | None = None,
) -> LegacyAccessRequest:
    """
    Owner withdraws granted access. The token stops validating immediately.

    Raises:
        RequestNotFound: no such request for this owner.
        InvalidTransition: request is not granted.
    """
    request = request_service.get_request_for_owner(db, request_id, owner_id)
    if request is None:
        raise RequestNotFound(str(request_id))

    request = legacy_state_machine.apply_event(
        db,
        request,
        LegacyAccessEvent.OWNER_REVOKED,
        status_message="Access was revoked by the account owner.",
        revoked_at=utcnow(),
    )
    access_token_service.revoke(db, request.id)
    legacy_notification_service.notify_requester_access_revoked(db, request)
    audit_service.log_event(
        db,
        AuditEventType.LEGACY_ACCESS_REVOKED,
        owner_id=owner_id,
        actor_user_id=owner_id,
        target_type=TARGET_TYPE,
        target_id=request.id,
        request=http_request,
    )
    db.commit()
    db.refresh(request)
    return request


# =============================================================================
# Content access
# =============================================================================

def get_content(
    db: Session,
    token: str,
    provider: ContentProvider | None = None,
    http_request: Request | None = None,
) -> ContentBundle:
    """
    Resolve an access token to the owner's released content.

    Raises:
        InvalidOrUsedToken: token does not exist.
        AccessDenied: token revoked or expired.
        ContentUnavailable: vault service failed.
    """
    validation = access_token_service.validate_token(db, token)
    if validation.status is TokenValidationStatus.NOT_FOUND:
        raise InvalidOrUsedToken()
    if not validation.is_valid:
        raise AccessDenied(validation.status.value)

    owner = db.get(User, validation.owner_id)
    content = (provider or get_content_provider()).fetch(validation.owner_id)

    access_token_service.touch(db, token)
    audit_service.log_event(
        db,
        AuditEventType.LEGACY_CONTENT_ACCESSED,
        owner_id=validation.owner_id,
        target_type=TARGET_TYPE,
        target_id=validation.request_id,
        details={"token": token_fingerprint(token)},
        request=http_request,
    )
    db.commit()
    return ContentBundle(
        request_id=validation.request_id,
        owner_name=_owner_name(owner),
        access_expires_at=validation.expires_at,
        content=content,
    )
