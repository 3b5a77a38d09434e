"""Application constants."""

# Owner-facing session cookie
COOKIE_NAME = "afterme_session"

# Byte length of generated bearer tokens (before urlsafe base64 encoding)
CONFIRMATION_TOKEN_BYTES = 32
ACCESS_TOKEN_BYTES = 48

# Paths on the frontend that receive token-bearing links
TRUSTEE_CONFIRM_PATH = "/legacy-access/trustee-confirm"
ACCESS_VIEW_PATH = "/legacy-access/view"
STATUS_PATH = "/legacy-access/status"

# Shown to requesters when the owner identifier does not resolve, or release is off
GENERIC_SUBMISSION_MESSAGE = "If this account exists, a request has been submitted."
OWNER_DASHBOARD_PATH = "/settings/legacy-access"
