"""Test fixtures — in-memory identity store, one fresh schema per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI without a server DB:

1. Each test gets its own in-memory SQLite engine (aiosqlite) with a
   StaticPool, so every session in the test shares one connection and
   therefore one database.
2. The schema is created from the ORM metadata, the same tables the
   Alembic migration builds on PostgreSQL.
3. The app's get_db dependency is overridden to hand out the test session.

Signing secrets are set before anything from flortune is imported,
because Settings validates them at import time.
"""

import os

os.environ["FLORTUNE_SESSION_SECRET"] = "test-session-secret-0123456789abcdef"
os.environ["FLORTUNE_DOWNSTREAM_JWT_SECRET"] = "test-downstream-secret-fedcba9876543210"
os.environ["FLORTUNE_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["FLORTUNE_ADMIN_SETUP_SECRET"] = "let-me-in"
os.environ["FLORTUNE_GOOGLE_CLIENT_ID"] = ""
os.environ["FLORTUNE_GOOGLE_CLIENT_SECRET"] = ""
os.environ["FLORTUNE_LOG_JSON"] = "false"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from flortune.auth.downstream import DownstreamTokenMinter  # noqa: E402
from flortune.auth.identity import Identity  # noqa: E402
from flortune.auth.jwt import SessionTokenIssuer  # noqa: E402
from flortune.auth.password import hash_password  # noqa: E402
from flortune.auth.store import IdentityStore  # noqa: E402
from flortune.config import settings  # noqa: E402
from flortune.db.engine import get_db  # noqa: E402
from flortune.db.models import Administrator, Base, Profile  # noqa: E402
from flortune.main import app  # noqa: E402

# Low bcrypt cost keeps fixture setup fast.
TEST_BCRYPT_ROUNDS = 4
DEFAULT_PASSWORD = "correct-horse-battery"


@pytest_asyncio.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture()
def store(db_session):
    return IdentityStore(db_session)


@pytest.fixture()
def issuer():
    return SessionTokenIssuer(settings.session_secret)


@pytest.fixture()
def minter():
    return DownstreamTokenMinter(settings.downstream_jwt_secret)


@pytest.fixture()
def make_profile(db_session):
    """Factory: insert a Profile row directly (bypasses cross-store checks)."""

    async def _make(
        email="ana@example.com",
        password=DEFAULT_PASSWORD,
        display_name="Ana",
        role="user",
        plan_id=settings.default_plan_id,
        **fields,
    ):
        profile = Profile(
            email=email,
            password_hash=hash_password(password, rounds=TEST_BCRYPT_ROUNDS)
            if password is not None
            else None,
            display_name=display_name,
            role=role,
            plan_id=plan_id,
            **fields,
        )
        db_session.add(profile)
        await db_session.commit()
        return profile

    return _make


@pytest.fixture()
def make_admin(db_session):
    """Factory: insert an Administrator row directly."""

    async def _make(email="root@example.com", password=DEFAULT_PASSWORD, display_name="Root"):
        admin = Administrator(
            email=email,
            password_hash=hash_password(password, rounds=TEST_BCRYPT_ROUNDS),
            display_name=display_name,
        )
        db_session.add(admin)
        await db_session.commit()
        return admin

    return _make


@pytest.fixture()
def bearer(issuer):
    """Build an Authorization header for a Profile or Administrator row."""

    def _bearer(row):
        if isinstance(row, Administrator):
            identity = Identity.from_administrator(row)
        else:
            identity = Identity.from_profile(row)
        return {"Authorization": f"Bearer {issuer.issue(identity)}"}

    return _bearer


@pytest_asyncio.fixture()
async def client(db_session):
    """HTTP client with the app's get_db overridden for testing.

    Learn: Auth is NOT overridden. Tests go through the real token
    pipeline, using the `bearer` fixture or a real login for a token.
    """

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
