"""Enum definitions for application constants."""

from afterme.db.enums.audit import AuditEventType
from afterme.db.enums.jobs import DEFAULT_JOB_STATUS, JobStatus, JobType
from afterme.db.enums.legacy_access import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    ConfirmAction,
    LegacyAccessEvent,
    LegacyAccessStatus,
    LegacyNotificationKind,
    QuorumRule,
    TokenValidationStatus,
    TrusteeAction,
    VerificationMethod,
)

__all__ = [
    "ACTIVE_STATUSES",
    "AuditEventType",
    "ConfirmAction",
    "DEFAULT_JOB_STATUS",
    "JobStatus",
    "JobType",
    "LegacyAccessEvent",
    "LegacyAccessStatus",
    "LegacyNotificationKind",
    "QuorumRule",
    "TERMINAL_STATUSES",
    "TokenValidationStatus",
    "TrusteeAction",
    "VerificationMethod",
]
