"""Owner accounts, settings and trustees.

These tables belong to the account/trustee management side of the product;
the legacy access workflow only reads them.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from afterme.db.base import Base
from afterme.utils.datetime_utils import utcnow


class User(Base):
    """An AfterMe account holder (the Owner of a vault)."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Bumped to revoke all outstanding sessions
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    settings: Mapped[UserSettings | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    trustees: Mapped[list[Trustee]] = relationship(back_populates="user")


# Case-insensitive unique email
Index("uq_users_email_lower", func.lower(User.email), unique=True)


class UserSettings(Base):
    """Per-owner legacy release preferences."""

    __tablename__ = "user_settings"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    legacy_release_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Overrides for the global defaults; null means use settings
    grace_period_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    access_duration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    user: Mapped[User] = relationship(back_populates="settings")


class Trustee(Base):
    """Owner-designated person who may confirm or deny a legacy access request."""

    __tablename__ = "trustees"
    __table_args__ = (Index("idx_trustees_user_active", "user_id", "is_active"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    relationship_label: Mapped[str | None] = mapped_column("relationship", String(100), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    user: Mapped[User] = relationship(back_populates="trustees")
