"""
Internal endpoints for scheduled operations and manual review.

Protected by X-Internal-Secret header.
Call from external cron (the grace period sweep) or operator tooling.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from afterme.core.deps import get_db, require_internal_secret
from afterme.core.exceptions import InvalidTransition, RequestNotFound
from afterme.schemas.legacy_access import ManualRejectBody, ManualReviewResponse, SweepResponse
from afterme.services import grace_period_service, legacy_access_service, request_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(require_internal_secret)],
)


@router.post("/scheduled/legacy-access-sweep", response_model=SweepResponse)
def legacy_access_sweep(db: Session = Depends(get_db)):
    """
    Grant requests whose grace period has ended and expire finished access.

    Safe to call repeatedly or concurrently; already-moved requests are skipped.
    """
    result = grace_period_service.run_sweep(db)
    logger.info(
        "Legacy access sweep: granted=%d expired=%d", len(result.granted), len(result.expired)
    )
    return SweepResponse(granted=result.granted, expired=result.expired)


def _review(action, db: Session, request_id: UUID, *args) -> ManualReviewResponse:
    try:
        req = action(db, request_id, *args)
    except RequestNotFound:
        raise HTTPException(status_code=404, detail="Request not found")
    except InvalidTransition as e:
        db.rollback()
        logger.warning("Manual review ignored for %s: %s", request_id, e)
        req = request_service.get_request(db, request_id)
        return ManualReviewResponse(
            id=req.id, status=req.status, status_message=req.status_message, changed=False
        )
    return ManualReviewResponse(id=req.id, status=req.status, status_message=req.status_message)


@router.post("/legacy-access/{request_id}/verify", response_model=ManualReviewResponse)
def manual_verify_request(request_id: UUID, db: Session = Depends(get_db)):
    """Operator verification; starts the grace period."""
    return _review(legacy_access_service.manual_verify, db, request_id)


@router.post("/legacy-access/{request_id}/reject", response_model=ManualReviewResponse)
def manual_reject_request(
    request_id: UUID,
    body: ManualRejectBody | None = None,
    db: Session = Depends(get_db),
):
    """Operator rejection of a pending or under-review request."""
    return _review(
        legacy_access_service.manual_reject, db, request_id, body.reason if body else None
    )
