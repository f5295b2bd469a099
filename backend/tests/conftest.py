"""
Test configuration and fixtures.
Environment is set before any scholardesk import so Settings and the rate
limiter pick up test values.
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DB_BOOTSTRAP"] = "false"
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("SENTRY_DSN", None)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from scholardesk.auth import create_token_for_user, get_password_hash
from scholardesk.db import Base, get_db
from scholardesk.deps import Actor
from scholardesk.models import AssignmentStatus, User, UserRole
from scholardesk.services import lifecycle_service
from scholardesk.websocket.manager import manager

# Test database URL (in-memory SQLite)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# Create test engine
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, name=user.name, role=user.role)


def _make_user(db, name, email, role, password="secret123", **kwargs):
    user = User(
        name=name,
        email=email,
        password_hash=get_password_hash(password),
        role=role,
        is_active=kwargs.pop("is_active", True),
        is_banned=kwargs.pop("is_banned", False),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database session override."""
    from fastapi.testclient import TestClient
    from scholardesk.main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_user(db_session):
    return _make_user(db_session, "Admin Test", "admin@test.com", UserRole.ADMIN, password="admin123")


@pytest.fixture
def client_user(db_session):
    return _make_user(db_session, "Client Test", "client@test.com", UserRole.CLIENT, password="client123")


@pytest.fixture
def dev_a(db_session):
    return _make_user(db_session, "Dev A", "dev.a@test.com", UserRole.DEVELOPER)


@pytest.fixture
def dev_b(db_session):
    return _make_user(db_session, "Dev B", "dev.b@test.com", UserRole.DEVELOPER)


@pytest.fixture
def dev_c(db_session):
    return _make_user(db_session, "Dev C", "dev.c@test.com", UserRole.WORKER)


@pytest.fixture
def banned_worker(db_session):
    return _make_user(db_session, "Banned Worker", "banned@test.com", UserRole.WORKER, is_banned=True)


@pytest.fixture
def admin(admin_user):
    return actor_for(admin_user)


@pytest.fixture
def customer(client_user):
    return actor_for(client_user)


@pytest.fixture
def pushed(monkeypatch):
    """Capture websocket pushes instead of sending them."""
    sent = []

    def fake_push(user_id, message):
        sent.append((user_id, message))
        return False

    monkeypatch.setattr(manager, "push", fake_push)
    return sent


@pytest.fixture
def make_assignment(db_session, admin, customer, pushed):
    """
    Build an assignment and drive it through the lifecycle up to `status`.
    Workers (User rows) are put on the team in order; the first one leads.
    """
    def _make(status=AssignmentStatus.PENDING, workers=(), title="Essay on thermodynamics"):
        assignment = lifecycle_service.create_assignment(db_session, customer, title, subject="Physics")
        if status == AssignmentStatus.PENDING:
            return assignment
        lifecycle_service.send_quote(db_session, admin, assignment.id, 120)
        if status == AssignmentStatus.QUOTED:
            return assignment
        lifecycle_service.accept_quote(db_session, customer, assignment.id)
        if status == AssignmentStatus.ACCEPTED:
            return assignment
        lifecycle_service.assign_workers(db_session, admin, assignment.id, [w.id for w in workers])
        if status == AssignmentStatus.WORKING:
            return assignment
        lifecycle_service.move_to_review(db_session, admin, assignment.id)
        if status == AssignmentStatus.REVIEW:
            return assignment
        raise ValueError(f"make_assignment does not build {status}")

    return _make


def auth_headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_token_for_user(user)}"}


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers_for(admin_user)


@pytest.fixture
def client_headers(client_user):
    return auth_headers_for(client_user)


@pytest.fixture
def as_actor():
    return actor_for


@pytest.fixture
def headers_for():
    return auth_headers_for
