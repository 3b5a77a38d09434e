"""Legacy access notification job handlers.

Renders the email for one outbox row at send time. Links and tokens are
looked up here, not stored in the payload, and an announcement that no
longer applies (trustee already answered, access already revoked) is
skipped rather than sent.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from afterme.core.config import settings
from afterme.core.constants import OWNER_DASHBOARD_PATH
from afterme.db.enums import LegacyAccessStatus, LegacyNotificationKind, TrusteeAction
from afterme.db.models import Job, LegacyAccessRequest, TrusteeConfirmation
from afterme.services import (
    access_token_service,
    legacy_email_templates,
    legacy_notification_service,
    request_service,
)
from afterme.services.email_sender import EmailMessage, send_email
from afterme.utils.datetime_utils import as_utc

logger = logging.getLogger(__name__)

K = LegacyNotificationKind

_REQUESTER_NOTICES = (K.REQUEST_REJECTED, K.REQUEST_CANCELLED, K.ACCESS_REVOKED)


def _owner_name(request: LegacyAccessRequest) -> str:
    owner = request.owner
    return owner.display_name or owner.email.split("@")[0]


def _trustee_message(db: Session, request: LegacyAccessRequest, payload: dict) -> EmailMessage | None:
    confirmation_id = payload.get("confirmation_id")
    if not confirmation_id:
        raise ValueError("Missing confirmation_id in job payload")
    confirmation = db.get(TrusteeConfirmation, UUID(confirmation_id))
    if confirmation is None or confirmation.trustee is None:
        return None
    if confirmation.action != TrusteeAction.UNCONFIRMED.value:
        return None
    if request.status not in (LegacyAccessStatus.PENDING.value, LegacyAccessStatus.UNDER_REVIEW.value):
        return None
    return legacy_email_templates.trustee_confirmation_requested(
        to=confirmation.trustee.email,
        trustee_name=confirmation.trustee.name,
        owner_name=_owner_name(request),
        requester_name=request.requester_name,
        requester_email=request.requester_email,
        confirmation_link=legacy_notification_service.build_confirmation_link(confirmation.token),
    )


def build_message(
    db: Session, kind: LegacyNotificationKind, request: LegacyAccessRequest, payload: dict
) -> EmailMessage | None:
    """The email for one notification, or None when it should not be sent."""
    owner_name = _owner_name(request)
    status_link = legacy_notification_service.build_status_link(request)

    if kind is K.TRUSTEE_CONFIRMATION_REQUESTED:
        return _trustee_message(db, request, payload)

    if kind is K.GRACE_PERIOD_STARTED:
        start = as_utc(request.grace_period_start)
        end = as_utc(request.grace_period_end)
        days = (end - start).days if start and end else settings.LEGACY_GRACE_PERIOD_DAYS
        return legacy_email_templates.grace_period_started(
            to=request.requester_email,
            requester_name=request.requester_name,
            owner_name=owner_name,
            grace_period_end=end,
            grace_period_days=days,
            status_link=status_link,
        )

    if kind is K.OWNER_SECURITY_ALERT:
        return legacy_email_templates.owner_security_alert(
            to=request.owner.email,
            owner_name=owner_name,
            requester_name=request.requester_name,
            requester_email=request.requester_email,
            grace_period_end=as_utc(request.grace_period_end),
            dashboard_link=f"{settings.FRONTEND_URL.rstrip('/')}{OWNER_DASHBOARD_PATH}",
        )

    if kind is K.OWNER_REJECTION_ALERT:
        return legacy_email_templates.owner_rejection_alert(
            to=request.owner.email,
            owner_name=owner_name,
            requester_name=request.requester_name,
            requester_email=request.requester_email,
        )

    if kind in _REQUESTER_NOTICES:
        return legacy_email_templates.simple_requester_notice(
            kind,
            to=request.requester_email,
            requester_name=request.requester_name,
            owner_name=owner_name,
            status_message=request.status_message,
            status_link=status_link,
        )

    if kind is K.ACCESS_GRANTED:
        token = access_token_service.get_token_for_request(db, request.id)
        if token is None or token.revoked:
            return None
        return legacy_email_templates.access_granted(
            to=request.requester_email,
            requester_name=request.requester_name,
            owner_name=owner_name,
            access_link=access_token_service.build_access_link(token.token),
            access_expires_at=as_utc(token.expires_at),
        )

    raise ValueError(f"Unhandled legacy notification kind: {kind.value}")


async def process_legacy_notification(db: Session, job: Job) -> None:
    """Process a legacy_notification job - render and send one email."""
    payload = job.payload or {}
    kind = LegacyNotificationKind(payload.get("kind"))
    request_id = payload.get("request_id")
    if not request_id:
        raise ValueError("Missing request_id in job payload")

    request = request_service.get_request(db, UUID(request_id))
    if request is None:
        raise ValueError(f"Legacy access request {request_id} not found")

    message = build_message(db, kind, request, payload)
    if message is None:
        logger.info("Legacy notification %s for request %s no longer applies", kind.value, request_id)
        return

    await send_email(message, idempotency_key=job.idempotency_key)
