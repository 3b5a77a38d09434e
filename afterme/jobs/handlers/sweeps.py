"""Grace period / access expiry sweep job handler."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from afterme.db.models import Job
from afterme.services import grace_period_service

logger = logging.getLogger(__name__)


async def process_legacy_access_sweep(db: Session, job: Job) -> None:
    """Run one sweep. The sweep commits per request, so a retry redoes only what is left."""
    result = grace_period_service.run_sweep(db)
    logger.info(
        "Legacy access sweep job %s: granted=%d expired=%d",
        job.id,
        len(result.granted),
        len(result.expired),
    )
