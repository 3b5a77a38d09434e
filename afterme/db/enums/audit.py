"""Audit enums."""

from enum import Enum


class AuditEventType(str, Enum):
    """
    Legacy access audit events.

    Groups:
    - LEGACY_REQUEST_*: request lifecycle
    - LEGACY_TRUSTEE_*: trustee decisions
    - LEGACY_ACCESS_*: grant, use and withdrawal of access
    """

    LEGACY_REQUEST_CREATED = "legacy_request_created"
    LEGACY_REQUEST_HELD = "legacy_request_held"
    LEGACY_REQUEST_REJECTED = "legacy_request_rejected"
    LEGACY_REQUEST_CANCELLED = "legacy_request_cancelled"
    LEGACY_GRACE_PERIOD_STARTED = "legacy_grace_period_started"

    LEGACY_TRUSTEE_CONFIRMED = "legacy_trustee_confirmed"
    LEGACY_TRUSTEE_DENIED = "legacy_trustee_denied"

    LEGACY_ACCESS_GRANTED = "legacy_access_granted"
    LEGACY_ACCESS_REVOKED = "legacy_access_revoked"
    LEGACY_ACCESS_EXPIRED = "legacy_access_expired"
    LEGACY_CONTENT_ACCESSED = "legacy_content_accessed"
