from __future__ import annotations

import base64
import os

# Set test environment BEFORE importing fieldseal modules.
# fieldseal.db creates the engine at module level from get_settings(), and
# Settings refuses to load without a valid ENCRYPTION_KEY.
os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("ENCRYPTION_KEY", base64.b64encode(os.urandom(32)).decode())

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from fieldseal.db import get_session
from fieldseal.main import app as fastapi_app
from fieldseal.services.cipher import EncryptionKey


# ── Key fixtures ──────────────────────────────────────────────────────


@pytest.fixture(name="key")
def key_fixture() -> EncryptionKey:
    """Fresh random field encryption key."""
    return EncryptionKey(os.urandom(32))


@pytest.fixture(name="other_key")
def other_key_fixture() -> EncryptionKey:
    """A second, unrelated key for wrong-key tests."""
    return EncryptionKey(os.urandom(32))


# ── Database fixtures ─────────────────────────────────────────────────


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine.

    Uses StaticPool so every connection shares the same in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


# ── HTTP client fixtures ──────────────────────────────────────────────


@pytest.fixture(name="client")
def client_fixture(session):
    """FastAPI TestClient with overridden DB session."""

    def _get_session_override():
        yield session

    fastapi_app.dependency_overrides[get_session] = _get_session_override
    with TestClient(fastapi_app) as client:
        yield client
    fastapi_app.dependency_overrides.clear()
