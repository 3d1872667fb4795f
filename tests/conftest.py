"""
Shared fixtures: an app client whose DB session is a mock, a valid
encryption key and a factory for detached ``User`` rows.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from api.dependencies import db_session
from config.settings import config
from database.models import User
from main import app

TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4


@pytest.fixture
def fake_session():
    session = MagicMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def client(fake_session):
    async def _override_session():
        yield fake_session

    app.dependency_overrides[db_session] = _override_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def encryption_key(monkeypatch):
    monkeypatch.setattr(config, "encryption_key", TEST_ENCRYPTION_KEY)
    return TEST_ENCRYPTION_KEY


@pytest.fixture
def no_encryption_key(monkeypatch):
    monkeypatch.setattr(config, "encryption_key", "")


@pytest.fixture
def make_user():
    """Factory for detached ``User`` rows carrying the column defaults."""

    def _make(**overrides) -> User:
        values = {
            "id": "user-1",
            "email": "owner@example.com",
            "display_name": "Owner",
            "role": "user",
            "plan": "free",
            "website_limit": 1,
            "keyword_limit": 100,
        }
        values.update(overrides)
        return User(**values)

    return _make
