"""Job-related enums."""

from enum import Enum


class JobType(str, Enum):
    """Types of background jobs."""

    LEGACY_NOTIFICATION = "legacy_notification"  # Outbox row for one announcement
    LEGACY_ACCESS_SWEEP = "legacy_access_sweep"  # Grace-period / expiry sweep


class JobStatus(str, Enum):
    """Status of background jobs."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


DEFAULT_JOB_STATUS = JobStatus.PENDING
