"""Job service - background job scheduling, outbox writes and worker claims."""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from afterme.db.enums import JobStatus, JobType
from afterme.db.models import Job
from afterme.utils.datetime_utils import utcnow

# Backoff between attempts of a failed job: 1m, 2m, 4m, ... capped at 1h
RETRY_BASE_SECONDS = 60
RETRY_MAX_SECONDS = 3600


def get_job_by_idempotency_key(db: Session, idempotency_key: str) -> Job | None:
    return db.query(Job).filter(Job.idempotency_key == idempotency_key).first()


def enqueue_job(
    db: Session,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
) -> Job:
    """
    Add a job to the caller's transaction without committing.

    This is the outbox write: the job becomes visible to the worker only if
    the surrounding transaction commits. If a job with the same
    idempotency_key already exists it is returned unchanged.
    """
    if idempotency_key:
        existing = get_job_by_idempotency_key(db, idempotency_key)
        if existing:
            return existing

    job = Job(
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or utcnow(),
        status=JobStatus.PENDING.value,
        idempotency_key=idempotency_key,
    )
    db.add(job)
    db.flush()
    return job


def schedule_job(
    db: Session,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
) -> Job:
    """
    Schedule a new standalone background job and commit it.

    If run_at is None, the job runs immediately.
    """
    job = enqueue_job(
        db, job_type=job_type, payload=payload, run_at=run_at, idempotency_key=idempotency_key
    )
    db.commit()
    db.refresh(job)
    return job


def get_pending_jobs(db: Session, limit: int = 10) -> list[Job]:
    """
    Get pending jobs that are due to run.

    Returns jobs where status='pending' and run_at <= now, ordered by run_at.
    """
    now = utcnow()
    return (
        db.query(Job)
        .filter(
            Job.status == JobStatus.PENDING.value,
            Job.run_at <= now,
        )
        .order_by(Job.run_at)
        .limit(limit)
        .all()
    )


def claim_pending_jobs(
    db: Session,
    limit: int = 10,
) -> list[Job]:
    """
    Claim due jobs for this worker and mark them running.

    On PostgreSQL rows are locked with SKIP LOCKED so concurrent workers never
    claim the same job.
    """
    now = utcnow()
    query = db.query(Job).filter(
        Job.status == JobStatus.PENDING.value,
        Job.run_at <= now,
    )
    query = query.order_by(Job.run_at).limit(limit)
    if db.get_bind().dialect.name == "postgresql":
        query = query.with_for_update(skip_locked=True)

    jobs = query.all()
    for job in jobs:
        job.status = JobStatus.RUNNING.value
        job.attempts += 1
    db.commit()
    return jobs


def list_jobs_for_request(db: Session, legacy_request_id: UUID) -> list[Job]:
    """Outbox rows that reference a legacy access request."""
    return (
        db.query(Job)
        .filter(
            Job.job_type == JobType.LEGACY_NOTIFICATION.value,
            Job.idempotency_key.like(f"legacy:%:{legacy_request_id}%"),
        )
        .order_by(Job.created_at)
        .all()
    )


def mark_job_completed(db: Session, job: Job) -> Job:
    """Mark a job as completed."""
    job.status = JobStatus.COMPLETED.value
    job.completed_at = utcnow()
    job.last_error = None
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str) -> Job:
    """
    Mark a job as failed.

    If attempts < max_attempts, reset to pending and push run_at back with
    exponential backoff.
    """
    job.last_error = error[:2000]
    if job.attempts < job.max_attempts:
        delay = min(RETRY_MAX_SECONDS, RETRY_BASE_SECONDS * (2 ** max(job.attempts - 1, 0)))
        job.status = JobStatus.PENDING.value
        job.run_at = utcnow() + timedelta(seconds=delay)
    else:
        job.status = JobStatus.FAILED.value
    db.commit()
    db.refresh(job)
    return job
