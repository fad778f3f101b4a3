"""Shared test fixtures for the Otto API test suite.

Uses an in-memory SQLite database for fast, isolated model/CRUD tests.
SQLAlchemy adapts UUID column types to SQLite-compatible equivalents.
Each test gets a fresh database and a fresh app built by `create_app`
with test settings, a session factory bound to that database and a mock
CodeBuild client.
"""

import hashlib
import hmac
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timezone, timedelta
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from otto_api.builds.client import BuildStartResponse
from otto_api.core.config import Settings
from otto_api.db.models import Base, GitHubInstallation, User
from otto_api.main import create_app


# ---------------------------------------------------------------------------
# Test constants
# ---------------------------------------------------------------------------

TEST_JWT_SECRET = "test-secret-for-unit-tests"
TEST_WEBHOOK_SECRET = "test-webhook-secret-123"

STUB_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
STUB_INSTALLATION_ROW_ID = uuid.UUID("00000000-0000-0000-0000-000000000010")
STUB_GITHUB_INSTALLATION_ID = 12345


def _make_jwt(
    sub: str | uuid.UUID = STUB_USER_ID,
    *,
    secret: str = TEST_JWT_SECRET,
    audience: str = "authenticated",
    email: str = "dev@otto.local",
    expired: bool = False,
) -> str:
    """Mint a HS256 JWT matching Supabase's format."""
    now = datetime.now(timezone.utc)
    exp = now - timedelta(hours=1) if expired else now + timedelta(hours=1)
    payload = {
        "sub": str(sub),
        "aud": audience,
        "email": email,
        "exp": exp,
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def _sign(body: bytes, secret: str = TEST_WEBHOOK_SECRET) -> str:
    """X-Hub-Signature-256 value for a webhook body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def make_test_settings(**overrides) -> Settings:
    values = dict(
        supabase_jwt_secret=TEST_JWT_SECRET,
        database_url="sqlite+aiosqlite:///:memory:",
        github_webhook_secret=TEST_WEBHOOK_SECRET,
        frontend_url="http://frontend.test",
        sentry_dsn="",
        debug=False,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def jwt_token() -> str:
    """A valid JWT for the stub user."""
    return _make_jwt()


@pytest.fixture
async def async_engine():
    """Create a fresh async SQLite engine for each test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a test DB session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return make_test_settings()


@pytest.fixture
def build_client() -> AsyncMock:
    """Stand-in for CodeBuildTriggerClient; records start_build calls."""
    client = AsyncMock()

    async def _start(build_project_name: str, branch: str) -> BuildStartResponse:
        return BuildStartResponse(
            build_id=f"{build_project_name}:build-1",
            project_name=build_project_name,
            source_version=f"refs/heads/{branch}",
        )

    client.start_build.side_effect = _start
    return client


@pytest.fixture
def app(settings, session_factory, build_client):
    """Create a FastAPI app wired to the test database and mock CodeBuild.

    The SlowAPI rate limiter uses an in-memory storage that persists across
    requests within the same process. To isolate tests from each other, we
    reset the storage buckets on the module-level limiter before each test.
    """
    from otto_api.core.limiter import limiter

    limiter.reset()

    return create_app(
        settings=settings,
        session_factory=session_factory,
        build_client=build_client,
    )


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client wired to the test app (no auth)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Seed data helpers matching the stub auth user
# ---------------------------------------------------------------------------


@pytest.fixture
async def seeded_db(db_session) -> AsyncSession:
    """Seed the database with a user and one GitHub installation."""
    user = User(id=STUB_USER_ID, email="dev@otto.local")
    db_session.add(user)
    await db_session.flush()

    installation = GitHubInstallation(
        id=STUB_INSTALLATION_ROW_ID,
        github_installation_id=STUB_GITHUB_INSTALLATION_ID,
        account_login="acme",
        account_id=900,
        account_type="Organization",
        user_id=user.id,
    )
    db_session.add(installation)
    await db_session.commit()
    return db_session


@pytest.fixture
async def seeded_client(app, seeded_db, jwt_token) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a pre-seeded database and valid auth header."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": f"Bearer {jwt_token}"},
    ) as ac:
        yield ac


@pytest.fixture
async def unauthed_client(app, seeded_db) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with seeded DB but no auth header."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
