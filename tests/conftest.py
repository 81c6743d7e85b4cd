"""
Pytest configuration and fixtures.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskboard.config import settings
from taskboard.db import Base, get_session
from taskboard.main import app


@pytest.fixture
def session_factory():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def client(session_factory):
    def override_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_token(sub: str, email: str | None = None, **claims) -> str:
    payload = {"sub": sub, **claims}
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def auth_headers(sub: str, email: str | None = None) -> dict:
    return {"Authorization": f"Bearer {make_token(sub, email)}"}


@pytest.fixture
def alice():
    return auth_headers("auth|alice", "alice@example.com")


@pytest.fixture
def bob():
    return auth_headers("auth|bob", "bob@example.com")
