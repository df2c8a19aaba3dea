import os

# Configure the app for tests before anything imports its settings
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"
os.environ["RATE_LIMIT_ENABLED"] = "0"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.core.database import Base, SessionLocal, engine
from app.core.security import Caller, UserRole, create_user_token, get_password_hash
from app.models import TimeSlot, User

DEFAULT_PASSWORD = "Password123"


@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(test_db):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(test_db):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client


@pytest.fixture
def make_user(db):
    """Insert a user directly and return it."""
    counter = {"n": 0}

    def _make_user(role=UserRole.STUDENT, name=None, email=None):
        counter["n"] += 1
        user = User(
            name=name or f"{role.value.title()} {counter['n']}",
            email=email or f"{role.value}{counter['n']}@example.com",
            password_hash=get_password_hash(DEFAULT_PASSWORD),
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_slot(db):
    def _make_slot(owner, max_bookings=1, title="Office hours"):
        slot = TimeSlot(
            owner_id=owner.id,
            title=title,
            date="2026-11-02",
            start_time="10:00",
            end_time="10:30",
            max_bookings=max_bookings,
        )
        db.add(slot)
        db.commit()
        db.refresh(slot)
        return slot

    return _make_slot


def caller_for(user):
    return Caller(user_id=user.id, role=user.role)


def auth_headers(user):
    token = create_user_token(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {token.access_token}"}
