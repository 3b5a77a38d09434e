"""SQLAlchemy ORM models."""

from afterme.db.models.audit import AuditLog
from afterme.db.models.auth import Trustee, User, UserSettings
from afterme.db.models.jobs import Job
from afterme.db.models.legacy_access import (
    LegacyAccessRequest,
    LegacyAccessToken,
    TrusteeConfirmation,
)

__all__ = [
    "AuditLog",
    "Job",
    "LegacyAccessRequest",
    "LegacyAccessToken",
    "Trustee",
    "TrusteeConfirmation",
    "User",
    "UserSettings",
]
