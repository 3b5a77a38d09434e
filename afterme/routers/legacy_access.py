"""Router for the legacy access workflow.

Public (unauthenticated, rate limited) endpoints serve requesters and
trustees through emailed links; owner endpoints use the session cookie.
"""

import logging
from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from afterme.core.constants import GENERIC_SUBMISSION_MESSAGE
from afterme.core.deps import get_db, get_owner_session, require_csrf_header
from afterme.core.exceptions import (
    AccessDenied,
    DuplicateActiveRequest,
    InvalidOrUsedToken,
    InvalidTransition,
    RequestNotFound,
)
from afterme.core.rate_limit import SUBMIT_LIMIT, TOKEN_LIMIT, limiter
from afterme.core.structured_logging import build_log_context
from afterme.schemas.auth import OwnerSession
from afterme.schemas.legacy_access import (
    ConfirmBody,
    ConfirmDetailsRead,
    ConfirmResponse,
    LegacyAccessSubmit,
    LegacyAccessSubmitResponse,
    LegacyContentResponse,
    LegacyRequestStatusRead,
    LegacyStatusResponse,
    OwnerActionResponse,
    OwnerRequestListResponse,
    OwnerRequestRead,
    OwnerSummary,
    TallyRead,
)
from afterme.services import legacy_access_service, request_service
from afterme.services.legacy_access_service import RequestView
from afterme.services.legacy_content_service import ContentUnavailable
from afterme.utils.datetime_utils import as_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/legacy-access", tags=["legacy-access"])


def _token_error(e: InvalidOrUsedToken) -> HTTPException:
    return HTTPException(status_code=410 if e.used else 404, detail=str(e))


def _status_read(view: RequestView) -> LegacyRequestStatusRead:
    req = view.request
    return LegacyRequestStatusRead(
        id=req.id,
        owner_name=view.owner_name,
        requester_name=req.requester_name,
        relationship=req.relationship_label,
        verification_method=req.verification_method,
        status=req.status,
        status_message=req.status_message,
        created_at=as_utc(req.created_at),
        grace_period_end=as_utc(req.grace_period_end),
        access_expires_at=as_utc(req.access_expires_at),
        tally=TallyRead(**view.tally.as_dict()),
        access_link=view.access_link,
    )


def _owner_read(view: RequestView) -> OwnerRequestRead:
    req = view.request
    return OwnerRequestRead(
        id=req.id,
        requester_name=req.requester_name,
        requester_email=req.requester_email,
        requester_phone=req.requester_phone,
        relationship=req.relationship_label,
        verification_method=req.verification_method,
        status=req.status,
        status_message=req.status_message,
        created_at=as_utc(req.created_at),
        grace_period_end=as_utc(req.grace_period_end),
        access_granted_at=as_utc(req.access_granted_at),
        access_expires_at=as_utc(req.access_expires_at),
        cancelled_at=as_utc(req.cancelled_at),
        revoked_at=as_utc(req.revoked_at),
        tally=TallyRead(**view.tally.as_dict()),
    )


# ============================================================================
# Requester endpoints
# ============================================================================


@router.post("", response_model=LegacyAccessSubmitResponse, status_code=201)
@limiter.limit(SUBMIT_LIMIT)
def submit_legacy_access_request(
    request: Request,
    response: Response,
    body: LegacyAccessSubmit,
    db: Session = Depends(get_db),
):
    """
    Submit a request for access to an account's legacy content.

    Unknown accounts and accounts that have not enabled legacy release get
    the same 202 acknowledgement, without a request id.
    """
    try:
        result = legacy_access_service.submit_request(
            db,
            owner_identifier=body.owner_identifier,
            requester_name=body.requester_name,
            requester_email=str(body.requester_email),
            relationship=body.relationship,
            verification_method=body.verification_method,
            death_certificate_url=body.death_certificate_url,
            requester_phone=body.requester_phone,
            http_request=request,
        )
    except DuplicateActiveRequest as e:
        return JSONResponse(
            status_code=409,
            content={"detail": str(e), "request_id": str(e.existing_request_id)},
        )

    if result.request is None:
        response.status_code = 202
        return LegacyAccessSubmitResponse(message=GENERIC_SUBMISSION_MESSAGE)

    if result.held:
        response.status_code = 202
    return LegacyAccessSubmitResponse(
        message=result.request.status_message or GENERIC_SUBMISSION_MESSAGE,
        request_id=result.request.id,
        status=result.request.status,
    )


@router.get("/status", response_model=LegacyStatusResponse)
@limiter.limit(TOKEN_LIMIT)
def get_legacy_access_status(
    request: Request,
    email: str = Query(..., min_length=3, max_length=255),
    request_id: UUID | None = None,
    db: Session = Depends(get_db),
):
    """All requests made from an email address, newest first."""
    views = legacy_access_service.get_status_for_email(db, email, request_id)
    return LegacyStatusResponse(requests=[_status_read(v) for v in views])


# ============================================================================
# Trustee endpoints
# ============================================================================


@router.get("/confirm-details", response_model=ConfirmDetailsRead)
@limiter.limit(TOKEN_LIMIT)
def get_confirmation_details(
    request: Request,
    token: str = Query(..., min_length=1, max_length=128),
    db: Session = Depends(get_db),
):
    """Request summary for a trustee's unanswered confirmation link."""
    try:
        details = legacy_access_service.get_confirmation_details(db, token)
    except InvalidOrUsedToken as e:
        raise _token_error(e)
    return ConfirmDetailsRead(**asdict(details))


@router.post("/confirm", response_model=ConfirmResponse)
@limiter.limit(TOKEN_LIMIT)
def confirm_legacy_access_request(
    request: Request,
    body: ConfirmBody,
    db: Session = Depends(get_db),
):
    """
    Record a trustee's confirm/deny decision.

    Submitting the same decision again returns the recorded outcome.
    """
    try:
        outcome = legacy_access_service.respond_to_confirmation(
            db, body.token, body.action, notes=body.notes, http_request=request
        )
    except InvalidOrUsedToken as e:
        raise _token_error(e)

    return ConfirmResponse(
        request_id=outcome.request.id,
        action=outcome.action.value,
        replayed=outcome.replayed,
        status=outcome.request.status,
        status_message=outcome.request.status_message,
        tally=TallyRead(**outcome.tally.as_dict()),
    )


# ============================================================================
# Content
# ============================================================================


@router.get("/content", response_model=LegacyContentResponse)
@limiter.limit(TOKEN_LIMIT)
def get_legacy_content(
    request: Request,
    token: str = Query(..., min_length=1, max_length=128),
    db: Session = Depends(get_db),
):
    """Released content for a valid access token. 403 once revoked or expired."""
    try:
        bundle = legacy_access_service.get_content(db, token, http_request=request)
    except InvalidOrUsedToken as e:
        raise _token_error(e)
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=f"Access {e.reason}")
    except ContentUnavailable:
        raise HTTPException(status_code=502, detail="Content is temporarily unavailable")

    return LegacyContentResponse(
        request_id=bundle.request_id,
        owner=OwnerSummary(name=bundle.owner_name),
        access_expires_at=as_utc(bundle.access_expires_at),
        content=bundle.content,
    )


# ============================================================================
# Owner endpoints
# ============================================================================


@router.get("/owner/requests", response_model=OwnerRequestListResponse)
def list_owner_requests(
    session: OwnerSession = Depends(get_owner_session),
    db: Session = Depends(get_db),
):
    """Requests made against the signed-in owner's account."""
    views = legacy_access_service.list_owner_requests(db, session.user_id)
    return OwnerRequestListResponse(items=[_owner_read(v) for v in views])


def _unchanged(db: Session, request_id: UUID, owner_id: UUID, e: InvalidTransition) -> OwnerActionResponse:
    db.rollback()
    logger.warning(
        "Owner action ignored: %s",
        e,
        extra=build_log_context(owner_id=str(owner_id), legacy_request_id=str(request_id)),
    )
    req = request_service.get_request_for_owner(db, request_id, owner_id)
    return OwnerActionResponse(
        id=req.id, status=req.status, status_message=req.status_message, changed=False
    )


@router.post(
    "/{request_id}/cancel",
    response_model=OwnerActionResponse,
    dependencies=[Depends(require_csrf_header)],
)
def cancel_legacy_access_request(
    request_id: UUID,
    session: OwnerSession = Depends(get_owner_session),
    db: Session = Depends(get_db),
):
    """Cancel a request during its grace period. No-op in any other status."""
    try:
        req = legacy_access_service.cancel_request(db, request_id, session.user_id)
    except RequestNotFound:
        raise HTTPException(status_code=404, detail="Request not found")
    except InvalidTransition as e:
        return _unchanged(db, request_id, session.user_id, e)
    return OwnerActionResponse(
        id=req.id, status=req.status, status_message=req.status_message, changed=True
    )


@router.post(
    "/{request_id}/revoke",
    response_model=OwnerActionResponse,
    dependencies=[Depends(require_csrf_header)],
)
def revoke_legacy_access(
    request: Request,
    request_id: UUID,
    session: OwnerSession = Depends(get_owner_session),
    db: Session = Depends(get_db),
):
    """Withdraw granted access. The access link stops working immediately."""
    try:
        req = legacy_access_service.revoke_access(
            db, request_id, session.user_id, http_request=request
        )
    except RequestNotFound:
        raise HTTPException(status_code=404, detail="Request not found")
    except InvalidTransition as e:
        return _unchanged(db, request_id, session.user_id, e)
    return OwnerActionResponse(
        id=req.id, status=req.status, status_message=req.status_message, changed=True
    )
