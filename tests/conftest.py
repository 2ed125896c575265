"""
Test configuration and fixtures for the Waitlist API.

Every test gets its own SQLite database built from the ORM metadata, and the
`get_db` dependency is pointed at it for route tests.
"""

import os
from typing import Generator
from unittest.mock import patch

from dotenv import load_dotenv

load_dotenv()

test_db_url = os.getenv("TEST_DATABASE_URL")
if test_db_url:
    if "postgresql://" in test_db_url and "asyncpg" not in test_db_url:
        test_db_url = test_db_url.replace("postgresql://", "postgresql+asyncpg://")
    os.environ["DATABASE_URL"] = test_db_url
else:
    # Routes run against the per-test database below; this URL is never connected to.
    os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.features.waitlist.models import Registrant, Story  # noqa: F401
from app.features.waitlist.models.registrant import RegistrantSource
from app.features.waitlist.services.identity_store import RegistrantCandidate, RegistrantStore
from app.platform.db.base import Base
from app.platform.db.session import get_db


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    with TestClient(test_app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """A fresh, empty database per test."""
    db_path = tmp_path / "waitlist.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session) -> RegistrantStore:
    return RegistrantStore(db_session)


@pytest.fixture
def make_registrant(store):
    """Insert a registrant directly, bypassing the resolver."""

    async def _make(email: str, referral_code: str, **fields) -> Registrant:
        fields.setdefault("source", RegistrantSource.MANUAL)
        candidate = RegistrantCandidate(email=email, referral_code=referral_code, **fields)
        return await store.create(candidate)

    return _make


@pytest.fixture
def mock_notify():
    """Welcome emails are scheduled as background tasks; keep them off the network."""
    with patch("app.features.waitlist.routes.waitlist.notify_signup") as waitlist_notify, patch(
        "app.features.waitlist.routes.oauth.notify_signup"
    ) as oauth_notify:
        yield waitlist_notify, oauth_notify


@pytest_asyncio.fixture
async def async_client(test_app, session_factory, mock_notify):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    test_app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as ac:
        yield ac
    test_app.dependency_overrides.pop(get_db, None)
