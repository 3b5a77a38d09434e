"""Audit log model."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from afterme.db.base import Base, JSONType
from afterme.utils.datetime_utils import utcnow


class AuditLog(Base):
    """
    Legacy access audit log.

    Security:
    - Never stores bearer tokens (only fingerprints)
    - PII in details is hashed (email) or ID-only
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_owner_created", "owner_id", "created_at"),
        Index("idx_audit_target", "target_type", "target_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,  # System, trustee and requester events have no user actor
    )

    event_type: Mapped[str] = mapped_column(String(50), nullable=False)  # AuditEventType

    target_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    target_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)  # IPv6 max length
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
