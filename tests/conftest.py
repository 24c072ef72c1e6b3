import os
import uuid

# must be set before the application modules read their configuration
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_taskmanager.db")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("RATE_LIMIT_MAX", "100000")
os.environ.setdefault("AUTH_RATE_LIMIT_MAX", "100000")

import pytest
from fastapi.testclient import TestClient

from taskmanager.database import Base, SessionLocal, engine
from taskmanager.main import app

PASSWORD = "Secret123"


# Recreate all tables for each test
@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def register_user(client):
    """Register a fresh user and return (token, user json)."""

    def _register(name="Test User", email=None, password=PASSWORD):
        email = email or f"user_{uuid.uuid4().hex[:8]}@example.com"
        r = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
        assert r.status_code == 201, r.text
        data = r.json()["data"]
        return data["token"], data["user"]

    return _register


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
