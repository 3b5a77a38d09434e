"""Pydantic schemas for the legacy access HTTP surface."""

from datetime import datetime
from typing import Any
from urllib.parse import urlparse
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from afterme.db.enums import ConfirmAction, VerificationMethod


class _CamelBody(BaseModel):
    """Request bodies accept camelCase (frontend) or snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Submission
# ============================================================================


class LegacyAccessSubmit(_CamelBody):
    requester_name: str = Field(min_length=1, max_length=255)
    requester_email: EmailStr
    requester_phone: str | None = Field(default=None, max_length=50)
    owner_identifier: str = Field(min_length=1, max_length=255)
    relationship: str = Field(min_length=1, max_length=100)
    verification_method: VerificationMethod = VerificationMethod.TRUSTEE_CONFIRMATION
    death_certificate_url: str | None = None

    @field_validator("requester_name", "owner_identifier", "relationship")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("death_certificate_url")
    @classmethod
    def validate_certificate_url(cls, value: str | None) -> str | None:
        if not value:
            return None
        if value.startswith("data:"):
            return value
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("must be an http(s) or data: URL")
        return value

    @model_validator(mode="after")
    def require_certificate_for_method(self):
        if self.verification_method.requires_death_certificate and not self.death_certificate_url:
            raise ValueError(
                f"death_certificate_url is required for verification method "
                f"'{self.verification_method.value}'"
            )
        return self


class LegacyAccessSubmitResponse(BaseModel):
    message: str
    request_id: UUID | None = None
    status: str | None = None


# ============================================================================
# Status
# ============================================================================


class TallyRead(BaseModel):
    confirmed: int
    denied: int
    total: int
    required: int


class LegacyRequestStatusRead(BaseModel):
    id: UUID
    owner_name: str
    requester_name: str
    relationship: str
    verification_method: str
    status: str
    status_message: str | None
    created_at: datetime
    grace_period_end: datetime | None = None
    access_expires_at: datetime | None = None
    tally: TallyRead
    access_link: str | None = None


class LegacyStatusResponse(BaseModel):
    requests: list[LegacyRequestStatusRead]


# ============================================================================
# Trustee confirmation
# ============================================================================


class ConfirmDetailsRead(BaseModel):
    request_id: UUID
    trustee_name: str
    owner_name: str
    requester_name: str
    requester_email: str
    relationship: str
    verification_method: str
    has_death_certificate: bool
    requested_at: datetime


class ConfirmBody(_CamelBody):
    token: str = Field(min_length=1, max_length=128)
    action: ConfirmAction
    notes: str | None = Field(default=None, max_length=2000)


class ConfirmResponse(BaseModel):
    request_id: UUID
    action: str
    replayed: bool
    status: str
    status_message: str | None
    tally: TallyRead


# ============================================================================
# Content
# ============================================================================


class OwnerSummary(BaseModel):
    name: str


class LegacyContentResponse(BaseModel):
    request_id: UUID
    owner: OwnerSummary
    access_expires_at: datetime | None
    content: dict[str, list[dict[str, Any]]]


# ============================================================================
# Owner dashboard and actions
# ============================================================================


class OwnerRequestRead(BaseModel):
    id: UUID
    requester_name: str
    requester_email: str
    requester_phone: str | None = None
    relationship: str
    verification_method: str
    status: str
    status_message: str | None
    created_at: datetime
    grace_period_end: datetime | None = None
    access_granted_at: datetime | None = None
    access_expires_at: datetime | None = None
    cancelled_at: datetime | None = None
    revoked_at: datetime | None = None
    tally: TallyRead


class OwnerRequestListResponse(BaseModel):
    items: list[OwnerRequestRead]


class OwnerActionResponse(BaseModel):
    id: UUID
    status: str
    status_message: str | None
    changed: bool


# ============================================================================
# Internal
# ============================================================================


class ManualRejectBody(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class ManualReviewResponse(BaseModel):
    id: UUID
    status: str
    status_message: str | None
    changed: bool = True


class SweepResponse(BaseModel):
    granted: list[UUID]
    expired: list[UUID]
