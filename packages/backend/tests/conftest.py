"""Test fixtures — a fresh in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Environment variables are set before anything from quarry is imported,
   because settings are read once at import time.
2. Each test gets its own SQLite engine. StaticPool keeps the single
   in-memory connection alive, so every session sees the same database.
3. The app's get_db dependency is overridden to hand out that session,
   and the app is driven in-process through httpx's ASGITransport.

bcrypt rounds are lowered to the minimum so hashing doesn't dominate
test time.
"""

import os

os.environ["QUARRY_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["QUARRY_BCRYPT_ROUNDS"] = "4"
os.environ["QUARRY_REDIS_URL"] = ""

import uuid  # noqa: E402

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from quarry.db.engine import build_engine, get_db  # noqa: E402
from quarry.db.models import Base  # noqa: E402
from quarry.main import app  # noqa: E402

TEST_DB_URL = "sqlite+aiosqlite://"

PASSWORD = "Str0ng!Pass"


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


@pytest_asyncio.fixture()
async def db_session():
    """Per-test session on a brand-new schema."""
    engine = build_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(bind=engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest_asyncio.fixture()
async def client(db_session):
    """HTTP client against the app, sharing the test session.

    Learn: No auth override here. Tests register and log in for real, so
    the full token pipeline (hashing, JWT, session rows) is exercised.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def register(client):
    """Register an account and return the auth response body.

    The client's cookie jar is cleared afterwards so later requests only
    authenticate the way the test asks them to.
    """
    async def _register(email=None, password=PASSWORD, name="Test User"):
        r = await client.post(
            "/api/v1/auth/register",
            json={"email": email or unique_email(), "password": password, "name": name},
        )
        assert r.status_code == 201, r.text
        client.cookies.clear()
        return r.json()

    return _register


@pytest_asyncio.fixture()
async def admin(register):
    """The first account registered, which is therefore an admin."""
    body = await register(email=unique_email("admin"), name="Admin")
    assert body["user"]["role"] == "admin"
    return body


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
