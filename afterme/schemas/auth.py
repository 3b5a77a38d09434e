"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id
    token_version: int


class OwnerSession(BaseModel):
    """Authenticated owner context for owner-side legacy access endpoints."""
    user_id: UUID
    email: str
    display_name: str
