"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from afterme.db.enums import JobType
from afterme.jobs.handlers import notifications, sweeps

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.LEGACY_NOTIFICATION.value: notifications.process_legacy_notification,
    JobType.LEGACY_ACCESS_SWEEP.value: sweeps.process_legacy_access_sweep,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
