"""Email content for legacy access notifications.

Every user-supplied value is HTML-escaped before interpolation.
"""

from __future__ import annotations

from datetime import datetime
from html import escape

from afterme.db.enums import LegacyNotificationKind as K
from afterme.services.email_sender import EmailMessage

BRAND = "AfterMe"


def _layout(heading: str, paragraphs: list[str], link: tuple[str, str] | None = None) -> str:
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    button = ""
    if link:
        label, url = link
        button = f'<p><a href="{escape(url, quote=True)}">{escape(label)}</a></p>'
    return (
        "<!DOCTYPE html><html><body>"
        f"<h2>{escape(heading)}</h2>{body}{button}"
        f"<p>- {BRAND} Team</p></body></html>"
    )


def _fmt(value: datetime | None) -> str:
    return value.strftime("%B %d, %Y at %H:%M UTC") if value else ""


def trustee_confirmation_requested(
    *, to: str, trustee_name: str, owner_name: str, requester_name: str,
    requester_email: str, confirmation_link: str,
) -> EmailMessage:
    subject = f"[Action Required] Legacy Access Request for {owner_name}"
    html = _layout(
        f"Hello {trustee_name},",
        [
            f"Someone has requested legacy access to <strong>{escape(owner_name)}'s</strong> {BRAND} account.",
            f"Requester: {escape(requester_name)} ({escape(requester_email)})",
            f"As a designated Trustee, your confirmation is required. Please only confirm if you know that {escape(owner_name)} has passed away or is incapacitated.",
        ],
        ("Review the request", confirmation_link),
    )
    text = (
        f"Hello {trustee_name},\n\nSomeone has requested legacy access to {owner_name}'s {BRAND} account.\n\n"
        f"Requester: {requester_name} ({requester_email})\n\n"
        f"Please visit this link to confirm or deny the request:\n{confirmation_link}\n\n"
        f"Only confirm if you know that {owner_name} has passed away or is incapacitated.\n\n- {BRAND} Team"
    )
    return EmailMessage(to=to, subject=subject, html=html, text=text)


def grace_period_started(
    *, to: str, requester_name: str, owner_name: str, grace_period_end: datetime | None,
    grace_period_days: int, status_link: str,
) -> EmailMessage:
    subject = f"Legacy Access Approved - {grace_period_days}-Day Grace Period Started"
    ends = _fmt(grace_period_end)
    html = _layout(
        f"Hello {requester_name},",
        [
            f"The trustees have verified your legacy access request for <strong>{escape(owner_name)}'s</strong> account.",
            f"A {grace_period_days}-day grace period has started and will end on {escape(ends)}.",
            "After the grace period ends, you will receive another email with access to the legacy content.",
        ],
        ("View status", status_link),
    )
    text = (
        f"Hello {requester_name},\n\nThe trustees have verified your legacy access request for {owner_name}'s account.\n\n"
        f"A {grace_period_days}-day grace period has started and will end on {ends}.\n\n"
        f"View status: {status_link}\n\n- {BRAND} Team"
    )
    return EmailMessage(to=to, subject=subject, html=html, text=text)


def owner_security_alert(
    *, to: str, owner_name: str, requester_name: str, requester_email: str,
    grace_period_end: datetime | None, dashboard_link: str,
) -> EmailMessage:
    subject = "[Alert] Someone Requested Legacy Access to Your Account"
    ends = _fmt(grace_period_end)
    html = _layout(
        f"Hello {owner_name},",
        [
            f"{escape(requester_name)} ({escape(requester_email)}) has been verified by your trustees for legacy access to your account.",
            f"Access will be released on {escape(ends)} unless you cancel the request.",
            "If you did not expect this, sign in and cancel the request now.",
        ],
        ("Review and cancel", dashboard_link),
    )
    text = (
        f"Hello {owner_name},\n\n{requester_name} ({requester_email}) has been verified by your trustees for legacy access.\n\n"
        f"Access will be released on {ends} unless you cancel: {dashboard_link}\n\n- {BRAND} Team"
    )
    return EmailMessage(to=to, subject=subject, html=html, text=text)


def owner_rejection_alert(
    *, to: str, owner_name: str, requester_name: str, requester_email: str,
) -> EmailMessage:
    subject = "[Alert] Someone Requested Legacy Access to Your Account"
    html = _layout(
        f"Hello {owner_name},",
        [
            "Someone attempted to access your legacy content, but the request was <strong>denied</strong>.",
            f"Requester: {escape(requester_name)} ({escape(requester_email)})",
            "No action is needed. If this looks suspicious, review your trustees.",
        ],
    )
    text = (
        f"Hello {owner_name},\n\nSomeone attempted to access your legacy content, but the request was denied.\n\n"
        f"Requester: {requester_name} ({requester_email})\n\n- {BRAND} Team"
    )
    return EmailMessage(to=to, subject=subject, html=html, text=text)


def simple_requester_notice(
    kind: K, *, to: str, requester_name: str, owner_name: str, status_message: str | None,
    status_link: str,
) -> EmailMessage:
    """Rejected / cancelled / revoked notices share one shape."""
    subjects = {
        K.REQUEST_REJECTED: "Your Legacy Access Request Was Not Approved",
        K.REQUEST_CANCELLED: "Your Legacy Access Request Was Cancelled",
        K.ACCESS_REVOKED: "Legacy Access Has Been Withdrawn",
    }
    subject = subjects[kind]
    html = _layout(
        f"Hello {requester_name},",
        [
            f"Update on your legacy access request for <strong>{escape(owner_name)}'s</strong> account.",
            escape(status_message or subject),
        ],
        ("View status", status_link),
    )
    text = (
        f"Hello {requester_name},\n\nUpdate on your legacy access request for {owner_name}'s account.\n\n"
        f"{status_message or subject}\n\nView status: {status_link}\n\n- {BRAND} Team"
    )
    return EmailMessage(to=to, subject=subject, html=html, text=text)


def access_granted(
    *, to: str, requester_name: str, owner_name: str, access_link: str,
    access_expires_at: datetime | None,
) -> EmailMessage:
    subject = f"Legacy Access Granted - {owner_name}'s Legacy"
    expires = _fmt(access_expires_at)
    html = _layout(
        f"Hello {requester_name},",
        [
            f"The grace period has ended and you now have access to <strong>{escape(owner_name)}'s</strong> legacy content.",
            f"This link is personal to you and remains valid until {escape(expires)}.",
        ],
        ("View legacy content", access_link),
    )
    text = (
        f"Hello {requester_name},\n\nYou now have access to {owner_name}'s legacy content.\n\n"
        f"Access link (valid until {expires}):\n{access_link}\n\n- {BRAND} Team"
    )
    return EmailMessage(to=to, subject=subject, html=html, text=text)
