"""Content bundle source for granted legacy access.

The vault itself lives in another system. ``get_content_provider`` returns an
HTTP provider when VAULT_CONTENT_URL is configured and an empty one otherwise.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol
from uuid import UUID

import httpx

from afterme.core.config import settings

logger = logging.getLogger(__name__)

CONTENT_SECTIONS = ("voice_messages", "memories", "stories", "legacy_instructions")


class ContentUnavailable(Exception):
    """Vault system could not be reached or returned an error."""


class ContentProvider(Protocol):
    def fetch(self, owner_id: UUID) -> dict[str, list[dict[str, Any]]]: ...


def empty_sections() -> dict[str, list[dict[str, Any]]]:
    return {section: [] for section in CONTENT_SECTIONS}


class EmptyContentProvider:
    """Used when no vault service is configured."""

    def fetch(self, owner_id: UUID) -> dict[str, list[dict[str, Any]]]:
        return empty_sections()


class HttpContentProvider:
    """Reads an owner's released sections from the vault service."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def fetch(self, owner_id: UUID) -> dict[str, list[dict[str, Any]]]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        url = f"{self.base_url}/owners/{owner_id}/legacy-content"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Vault content request failed: %s", e.__class__.__name__)
            raise ContentUnavailable("Vault service unreachable") from e

        if response.status_code >= 400:
            logger.warning("Vault content request returned %s", response.status_code)
            raise ContentUnavailable(f"Vault service returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            logger.warning("Vault content response was not JSON")
            raise ContentUnavailable("Vault service returned an unreadable body") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            logger.warning("Vault content response was %s, not an object", type(data).__name__)
            raise ContentUnavailable("Vault service returned an unexpected body")
        sections = empty_sections()
        for section in CONTENT_SECTIONS:
            value = data.get(section)
            if isinstance(value, list):
                sections[section] = value
        return sections


def get_content_provider() -> ContentProvider:
    if settings.VAULT_CONTENT_URL:
        return HttpContentProvider(
            settings.VAULT_CONTENT_URL,
            api_key=settings.VAULT_CONTENT_API_KEY,
            timeout=settings.VAULT_CONTENT_TIMEOUT_SECONDS,
        )
    return EmptyContentProvider()
