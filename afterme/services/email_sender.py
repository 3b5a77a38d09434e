"""Transactional email delivery via the Resend API."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from afterme.core.config import settings
from afterme.core.exceptions import NotificationDeliveryFailed
from afterme.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries
from afterme.utils.masking import mask_email

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str | None = None


async def send_email(
    message: EmailMessage,
    *,
    idempotency_key: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str | None:
    """
    Send one email and return the provider message id.

    Without RESEND_API_KEY the send is logged as a dry run and treated as
    delivered, so local and test environments never block on email.

    Raises:
        NotificationDeliveryFailed: transport error or non-2xx after retries.
    """
    if not settings.RESEND_API_KEY:
        logger.info(
            "[DRY RUN] Email send skipped: to=%s subject=%r",
            mask_email(message.to),
            message.subject,
        )
        return None

    payload: dict[str, object] = {
        "from": settings.EMAIL_FROM,
        "to": [message.to],
        "subject": message.subject,
        "html": message.html,
    }
    if message.text:
        payload["text"] = message.text

    headers = {
        "Authorization": f"Bearer {settings.RESEND_API_KEY}",
        "Content-Type": "application/json",
    }
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key

    try:
        async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS, transport=transport) as client:

            async def request_fn() -> httpx.Response:
                return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

            response = await request_with_retries(
                request_fn,
                max_attempts=RESEND_MAX_ATTEMPTS,
                base_delay=RESEND_RETRY_BASE_DELAY,
                max_delay=RESEND_RETRY_MAX_DELAY,
                retry_statuses=DEFAULT_RETRY_STATUSES,
            )
    except httpx.RequestError as e:
        raise NotificationDeliveryFailed(f"Connection error: {e.__class__.__name__}") from e

    if not 200 <= response.status_code < 300:
        raise NotificationDeliveryFailed(f"Resend returned {response.status_code}")

    message_id = response.json().get("id")
    logger.info("Email sent to %s message_id=%s", mask_email(message.to), message_id)
    return message_id
