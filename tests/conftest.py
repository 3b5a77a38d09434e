"""
Test configuration and fixtures.

Provides:
- Database session with savepoint (rollback after each test)
- Owner / trustee factories
- JWT session cookie for owner endpoints
- HTTPX AsyncClient with proper headers
"""
import os
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Callable, Generator

# Must be set before the app modules read settings
os.environ["TESTING"] = "1"
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("INTERNAL_SECRET", "test-internal-secret")
os.environ["RESEND_API_KEY"] = ""
os.environ["VAULT_CONTENT_URL"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from afterme.core.constants import COOKIE_NAME
from afterme.core.deps import get_db
from afterme.core.security import create_session_token
from afterme.db.base import Base
from afterme.db.enums import ConfirmAction, VerificationMethod
from afterme.db.models import LegacyAccessRequest, Trustee, TrusteeConfirmation, User, UserSettings
from afterme.db.session import SessionLocal, engine
from afterme.main import app
from afterme.services import legacy_access_service


# =============================================================================
# Database Fixtures (Savepoint pattern)
# =============================================================================

@pytest.fixture(scope="session")
def db_engine():
    """Create the schema once per test session."""
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(db_engine) -> Generator[Session, None, None]:
    """
    Creates a database session with savepoint for test isolation.

    App code may call commit() and rollback(); both act on a savepoint
    inside an outer transaction that is rolled back after the test.
    """
    connection = db_engine.connect()
    transaction = connection.begin()
    session = SessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


# =============================================================================
# Domain Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def owner(db: Session) -> User:
    """An owner who has enabled legacy release."""
    user = User(
        id=uuid.uuid4(),
        email=f"owner-{uuid.uuid4().hex[:8]}@test.com",
        display_name="Olivia Owner",
    )
    db.add(user)
    db.flush()
    db.add(UserSettings(user_id=user.id, legacy_release_enabled=True))
    db.commit()
    return user


@pytest.fixture(scope="function")
def add_trustees(db: Session) -> Callable[[User, int], list[Trustee]]:
    """Factory: give an owner N verified, active trustees."""

    def _add(user: User, count: int) -> list[Trustee]:
        trustees = []
        for i in range(count):
            trustee = Trustee(
                id=uuid.uuid4(),
                user_id=user.id,
                name=f"Trustee {i + 1}",
                email=f"trustee{i + 1}-{uuid.uuid4().hex[:6]}@test.com",
                relationship_label="friend",
                priority=i,
                is_active=True,
                is_verified=True,
            )
            db.add(trustee)
            trustees.append(trustee)
        db.commit()
        return trustees

    return _add


@pytest.fixture(scope="function")
def submit(db: Session) -> Callable[..., LegacyAccessRequest]:
    """Factory: submit a trustee-confirmation request against an owner."""

    def _submit(
        user: User,
        requester_email: str = "requester@example.com",
        method: VerificationMethod = VerificationMethod.TRUSTEE_CONFIRMATION,
        death_certificate_url: str | None = None,
    ) -> LegacyAccessRequest:
        result = legacy_access_service.submit_request(
            db,
            owner_identifier=user.email,
            requester_name="Rae Requester",
            requester_email=requester_email,
            relationship="sibling",
            verification_method=method,
            death_certificate_url=death_certificate_url,
        )
        assert result.request is not None
        return result.request

    return _submit


@pytest.fixture(scope="function")
def tokens_for(db: Session) -> Callable[[LegacyAccessRequest], list[str]]:
    """Factory: confirmation tokens of a request in trustee priority order."""

    def _tokens(request: LegacyAccessRequest) -> list[str]:
        rows = (
        db.query(TrusteeConfirmation)
            .join(Trustee, Trustee.id == TrusteeConfirmation.trustee_id)
            .filter(TrusteeConfirmation.request_id == request.id)
            .order_by(Trustee.priority)
            .all()
        )
        return [row.token for row in rows]

    return _tokens


@pytest.fixture(scope="function")
def respond(db: Session):
    """Factory: answer a confirmation token through the workflow service."""

    def _respond(token: str, action: ConfirmAction):
        return legacy_access_service.respond_to_confirmation(db, token, action)

    return _respond


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class OwnerAuth:
    """Test authentication context."""
    user: User
    token: str
    cookie_name: str = COOKIE_NAME


@pytest.fixture(scope="function")
def owner_auth(owner: User) -> OwnerAuth:
    """Create JWT session token for the test owner."""
    token = create_session_token(user_id=owner.id, token_version=owner.token_version)
    return OwnerAuth(user=owner, token=token)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """
    Create unauthenticated AsyncClient for testing public endpoints.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    owner_auth: OwnerAuth,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create owner-authenticated AsyncClient with JWT cookie and CSRF header.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={owner_auth.cookie_name: owner_auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    ) as c:
        yield c

    app.dependency_overrides.clear()
