"""
Background worker for the legacy access outbox.

Usage:
    python -m afterme.worker

Polls for due jobs (notification emails, sweeps) and processes them. When
WORKER_SWEEP_INTERVAL_SECONDS is set, also schedules the grace period /
access expiry sweep on that interval. Run as a separate process.
"""

import asyncio
import logging
import time

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from afterme.core.config import settings
from afterme.core.structured_logging import build_log_context
from afterme.db.enums import JobType
from afterme.db.models import Job
from afterme.db.session import SessionLocal
from afterme.jobs.registry import resolve_job_handler
from afterme.services import job_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


async def process_job(db: Session, job: Job) -> None:
    """Process a single job based on its type."""
    logger.info(
        "Processing job %s (type=%s, attempt=%s)",
        job.id,
        job.job_type,
        job.attempts,
        extra=build_log_context(job_id=str(job.id)),
    )
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


async def run_batch(db: Session, limit: int | None = None) -> int:
    """Claim and process one batch of due jobs. Returns the number claimed."""
    jobs = job_service.claim_pending_jobs(db, limit=limit or settings.WORKER_BATCH_SIZE)
    for job in jobs:
        try:
            await process_job(db, job)
        except Exception as e:
            db.rollback()
            job_service.mark_job_failed(db, job, f"{type(e).__name__}: {e}")
            logger.error(
                "Job %s failed: %s",
                job.id,
                type(e).__name__,
                extra=build_log_context(job_id=str(job.id)),
            )
        else:
            job_service.mark_job_completed(db, job)
            logger.info("Job %s completed successfully", job.id)
    return len(jobs)


def schedule_sweep(db: Session, interval_seconds: int, now: float | None = None) -> Job | None:
    """
    Enqueue the sweep job for the current interval.

    Keyed on the interval bucket, so several workers schedule it once.
    """
    bucket = int((now if now is not None else time.time()) // interval_seconds)
    key = f"legacy_access_sweep:{bucket}"
    try:
        return job_service.schedule_job(
            db, JobType.LEGACY_ACCESS_SWEEP, payload={}, idempotency_key=key
        )
    except IntegrityError:
        # Another worker scheduled this bucket first
        db.rollback()
        return None


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    poll_interval = settings.WORKER_POLL_INTERVAL_SECONDS
    sweep_interval = settings.WORKER_SWEEP_INTERVAL_SECONDS
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s, sweep interval: %ss)",
        poll_interval,
        settings.WORKER_BATCH_SIZE,
        sweep_interval or "off",
    )
    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not set - emails will be logged but not sent")

    while True:
        with SessionLocal() as db:
            try:
                if sweep_interval > 0:
                    schedule_sweep(db, sweep_interval)
                processed = await run_batch(db)
                if processed:
                    logger.info("Processed %d job(s)", processed)
            except Exception:
                logger.exception("Error in worker loop")

        await asyncio.sleep(poll_interval)


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")


if __name__ == "__main__":
    main()
