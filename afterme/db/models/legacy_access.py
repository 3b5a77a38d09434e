"""Legacy access workflow models: requests, trustee confirmations, access tokens."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from afterme.db.base import Base
from afterme.db.enums import ACTIVE_STATUSES, LegacyAccessStatus, TrusteeAction
from afterme.utils.datetime_utils import utcnow

if TYPE_CHECKING:
    from afterme.db.models.auth import Trustee, User

_ACTIVE_STATUS_SQL = ", ".join(f"'{s.value}'" for s in sorted(ACTIVE_STATUSES, key=lambda s: s.value))
_ACTIVE_WHERE = text(f"status IN ({_ACTIVE_STATUS_SQL})")


class LegacyAccessRequest(Base):
    """
    A requester's claim to access an owner's legacy content.

    Status is mutated only by the legacy access state machine, using
    conditional updates keyed on the expected current status. Rows are never
    deleted (audit).
    """

    __tablename__ = "legacy_access_requests"
    __table_args__ = (
        Index("idx_legacy_requests_requester_email", "requester_email", "created_at"),
        Index("idx_legacy_requests_status_grace_end", "status", "grace_period_end"),
        Index("idx_legacy_requests_status_access_expires", "status", "access_expires_at"),
        # One non-terminal request per (owner, requester email)
        Index(
            "uq_legacy_requests_active_pair",
            "owner_id",
            "requester_email",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )

    # Submitted identity - untrusted until verified
    requester_name: Mapped[str] = mapped_column(String(255), nullable=False)
    requester_email: Mapped[str] = mapped_column(String(255), nullable=False)  # lowercased
    requester_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    relationship_label: Mapped[str] = mapped_column("relationship", String(100), nullable=False)

    verification_method: Mapped[str] = mapped_column(String(30), nullable=False)
    death_certificate_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    death_certificate_uploaded_at: Mapped[datetime | None] = mapped_column(nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LegacyAccessStatus.PENDING.value
    )
    status_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Quorum snapshot taken at fan-out; later trustee changes do not apply
    total_trustees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    required_confirmations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    verified_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)

    grace_period_start: Mapped[datetime | None] = mapped_column(nullable=True)
    grace_period_end: Mapped[datetime | None] = mapped_column(nullable=True)

    access_granted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    access_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    owner: Mapped[User] = relationship()
    confirmations: Mapped[list[TrusteeConfirmation]] = relationship(
        back_populates="request", order_by="TrusteeConfirmation.created_at"
    )
    access_token: Mapped[LegacyAccessToken | None] = relationship(
        back_populates="request", uselist=False
    )

    @property
    def status_enum(self) -> LegacyAccessStatus:
        return LegacyAccessStatus(self.status)


class TrusteeConfirmation(Base):
    """One trustee's single-use decision on a request."""

    __tablename__ = "trustee_confirmations"
    __table_args__ = (
        Index("uq_trustee_confirmations_token", "token", unique=True),
        Index("uq_trustee_confirmations_request_trustee", "request_id", "trustee_id", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("legacy_access_requests.id", ondelete="RESTRICT"), nullable=False
    )
    trustee_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("trustees.id", ondelete="SET NULL"), nullable=True
    )
    token: Mapped[str] = mapped_column(String(128), nullable=False)
    action: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TrusteeAction.UNCONFIRMED.value
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    request: Mapped[LegacyAccessRequest] = relationship(back_populates="confirmations")
    trustee: Mapped[Trustee | None] = relationship()


class LegacyAccessToken(Base):
    """Bearer credential for a granted request (1:1)."""

    __tablename__ = "legacy_access_tokens"
    __table_args__ = (
        Index("uq_legacy_access_tokens_request", "request_id", unique=True),
        Index("uq_legacy_access_tokens_token", "token", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("legacy_access_requests.id", ondelete="RESTRICT"), nullable=False
    )
    token: Mapped[str] = mapped_column(String(128), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_used_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    request: Mapped[LegacyAccessRequest] = relationship(back_populates="access_token")
