"""Domain errors for the legacy access workflow.

Routers translate these into HTTP responses; services raise them and never
return error sentinels.
"""

from uuid import UUID


class LegacyAccessError(Exception):
    """Base class for legacy access workflow errors."""


class RequestNotFound(LegacyAccessError):
    """No legacy access request matches the given id (or owner scope)."""


class DuplicateActiveRequest(LegacyAccessError):
    """A non-terminal request already exists for (owner, requester email)."""

    def __init__(self, existing_request_id: UUID):
        super().__init__("An active request already exists for this account")
        self.existing_request_id = existing_request_id


class InvalidOrUsedToken(LegacyAccessError):
    """Token does not resolve, or was already used for a different outcome."""

    def __init__(self, message: str = "Invalid or expired link", *, used: bool = False):
        super().__init__(message)
        self.used = used


class InvalidTransition(LegacyAccessError):
    """Requested status change is not allowed from the current status.

    Raised by the transition table and by compare-and-swap misses. Callers
    treat it as a no-op.
    """

    def __init__(self, current: str | None, event: str):
        super().__init__(f"Cannot apply '{event}' to request in status '{current}'")
        self.current = current
        self.event = event


class NoTrustees(LegacyAccessError):
    """Owner has no verified, active trustees to confirm a request."""


class NotificationDeliveryFailed(LegacyAccessError):
    """Outbound notification could not be delivered. Dispatcher-internal."""


class AccessDenied(LegacyAccessError):
    """Access token resolved but is revoked or expired."""

    def __init__(self, reason: str):
        super().__init__(f"Access {reason}")
        self.reason = reason
