"""Shared fixtures: in-memory SQLite, TestClient, users with bearer tokens."""
import os

# Must be set before travelnest is imported: settings and engine are module singletons
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret-for-travelnest-suite-0123456789"
os.environ.pop("JWT_AUDIENCE", None)
os.environ.pop("BREVO_API_KEY", None)

import uuid
import pytest
from fastapi.testclient import TestClient
from travelnest.main import app
from travelnest.db.session import Base, engine, SessionLocal
from travelnest.core.security import create_access_token
from travelnest.core.rate_limit import reset_rate_limits
from travelnest.models.profile import Profile
from travelnest.models.trip import Trip
from travelnest.schemas.user import CurrentUser
from travelnest.services import membership_store
from travelnest.services.invitation_email import EmailResult


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    reset_rate_limits()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


class UserHandle:
    """A profile plus what a request needs to act as it."""

    def __init__(self, profile: Profile, headers: dict, email_confirmed: bool):
        self.profile = profile
        self.id = profile.id
        self.email = profile.email
        self.headers = headers
        self.current = CurrentUser(
            id=profile.id,
            email=profile.email,
            email_confirmed=email_confirmed,
            full_name=profile.full_name,
        )


def bearer_headers(user_id, email, name=None, email_confirmed=True) -> dict:
    token = create_access_token({
        "sub": str(user_id),
        "email": email,
        "email_confirmed": email_confirmed,
        "name": name,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(db):
    def _make_user(email=None, full_name=None, email_confirmed=True) -> UserHandle:
        user_id = uuid.uuid4()
        email = (email or f"user-{user_id.hex[:8]}@example.com").lower()
        full_name = full_name or email.split("@")[0].title()
        profile = Profile(id=user_id, email=email, full_name=full_name)
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return UserHandle(profile, bearer_headers(user_id, email, full_name, email_confirmed), email_confirmed)
    return _make_user


@pytest.fixture
def make_trip(db):
    def _make_trip(owner: UserHandle, title="Lisbon long weekend", privacy="private") -> Trip:
        trip = Trip(owner_id=owner.id, title=title, privacy=privacy)
        db.add(trip)
        db.flush()
        membership_store.ensure_owner(db, trip.id, owner.id)
        db.commit()
        db.refresh(trip)
        return trip
    return _make_trip


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture invitation emails instead of calling Brevo."""
    sent = []

    def fake_send_invitation_email(**kwargs):
        sent.append(kwargs)
        return EmailResult(success=True)

    monkeypatch.setattr(
        "travelnest.services.invitation_workflow.send_invitation_email",
        fake_send_invitation_email,
    )
    return sent


def token_from_link(link: str) -> str:
    return link.rsplit("/invite/", 1)[1].split("?", 1)[0]
