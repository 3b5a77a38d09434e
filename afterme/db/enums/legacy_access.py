"""Legacy access workflow enums."""

from enum import Enum


class LegacyAccessStatus(str, Enum):
    """Lifecycle status of a legacy access request."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    VERIFIED = "verified"
    REJECTED = "rejected"
    GRACE_PERIOD = "grace_period"
    GRANTED = "granted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {
        LegacyAccessStatus.REJECTED,
        LegacyAccessStatus.CANCELLED,
        LegacyAccessStatus.EXPIRED,
    }
)

# At most one request per (owner, requester email) may be in one of these.
ACTIVE_STATUSES = frozenset(set(LegacyAccessStatus) - TERMINAL_STATUSES)


class LegacyAccessEvent(str, Enum):
    """Events that drive the legacy access state machine."""

    TRUSTEE_RESPONDED = "trustee_responded"  # First trustee response
    QUORUM_CONFIRMED = "quorum_confirmed"
    QUORUM_IMPOSSIBLE = "quorum_impossible"
    MANUAL_REVIEW_STARTED = "manual_review_started"
    MANUAL_VERIFIED = "manual_verified"
    MANUAL_REJECTED = "manual_rejected"
    VERIFICATION_COMPLETED = "verification_completed"  # verified -> grace_period
    OWNER_CANCELLED = "owner_cancelled"
    GRACE_PERIOD_ELAPSED = "grace_period_elapsed"
    ACCESS_EXPIRED = "access_expired"
    OWNER_REVOKED = "owner_revoked"


class VerificationMethod(str, Enum):
    """How a requester's claim is verified."""

    TRUSTEE_CONFIRMATION = "trustee_confirmation"
    DEATH_CERTIFICATE = "death_certificate"
    COMBINED = "combined"

    @property
    def requires_trustees(self) -> bool:
        return self in (VerificationMethod.TRUSTEE_CONFIRMATION, VerificationMethod.COMBINED)

    @property
    def requires_death_certificate(self) -> bool:
        return self in (VerificationMethod.DEATH_CERTIFICATE, VerificationMethod.COMBINED)


class TrusteeAction(str, Enum):
    """Recorded decision on a trustee confirmation row."""

    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    DENIED = "denied"


class ConfirmAction(str, Enum):
    """Action submitted by a trustee through the confirmation link."""

    CONFIRM = "confirm"
    DENY = "deny"

    def to_trustee_action(self) -> TrusteeAction:
        return TrusteeAction.CONFIRMED if self is ConfirmAction.CONFIRM else TrusteeAction.DENIED


class QuorumRule(str, Enum):
    """How many confirmations out of N trustees advance a request."""

    MAJORITY = "majority"  # floor(n/2) + 1
    HALF = "half"  # ceil(n/2), at least 1


class TokenValidationStatus(str, Enum):
    """Outcome of validating an access token."""

    VALID = "valid"
    EXPIRED = "expired"
    REVOKED = "revoked"
    NOT_FOUND = "not_found"


class LegacyNotificationKind(str, Enum):
    """Announcements emitted by state transitions."""

    TRUSTEE_CONFIRMATION_REQUESTED = "trustee_confirmation_requested"
    GRACE_PERIOD_STARTED = "grace_period_started"
    OWNER_SECURITY_ALERT = "owner_security_alert"
    REQUEST_REJECTED = "request_rejected"
    OWNER_REJECTION_ALERT = "owner_rejection_alert"
    REQUEST_CANCELLED = "request_cancelled"
    ACCESS_GRANTED = "access_granted"
    ACCESS_REVOKED = "access_revoked"
