"""Pytest configuration and fixtures for backend tests.

Tests run against a throwaway SQLite database (aiosqlite) and the
in-process key-value store, so neither PostgreSQL nor Redis is required.
"""

import os
import tempfile
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Set test environment variables before importing gatekeeper modules
_TEST_DIR = Path(tempfile.mkdtemp(prefix="gatekeeper-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{(_TEST_DIR / 'test.sqlite3').as_posix()}"
os.environ["JWT_SECRET_KEY"] = "test-access-secret-" + "a" * 32
os.environ["JWT_REFRESH_SECRET_KEY"] = "test-refresh-secret-" + "b" * 32
os.environ["REDIS_URL"] = ""
os.environ["DEBUG"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
# High general limit so ordinary tests never see 429
os.environ["RATE_LIMIT_MAX_REQUESTS"] = "10000"
os.environ["LOGIN_RATE_LIMIT_MAX_ATTEMPTS"] = "5"


# --- Store / singleton reset ---


def _reset_store_state() -> None:
    """Forget shared stores and service singletons.

    Fresh in-process stores are created lazily on next use, so no blacklist
    entry or rate-limit counter leaks from one test into another.
    """
    from gatekeeper.core import kv_store
    from gatekeeper.services.blacklist import TokenBlacklist
    from gatekeeper.services.rate_limit import FixedWindowRateLimiter

    kv_store._stores.clear()
    TokenBlacklist.reset_instance()
    FixedWindowRateLimiter.reset_instance()


@pytest.fixture(autouse=True)
def reset_stores(request):
    """Reset key-value stores before and after each test.

    Tests marked with pytest.mark.skip_store_reset will skip this.
    """
    if request.node.get_closest_marker("skip_store_reset"):
        yield
        return

    _reset_store_state()
    yield
    _reset_store_state()


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create all tables and the default roles; drop everything afterwards."""
    import gatekeeper.models  # noqa: F401
    from gatekeeper.core.database import Base, async_session_maker, engine
    from gatekeeper.services.permissions import PermissionResolver

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_maker() as session:
        await PermissionResolver(session).ensure_default_roles()

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    from gatekeeper.core.database import async_session_maker

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def async_client(db_engine) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client bound to the application."""
    from gatekeeper.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# --- Test Factories ---


@pytest.fixture
def user_factory(db_session):
    """Factory for creating users holding the given roles."""
    from gatekeeper.services.auth import AuthService
    from tests.helpers import TEST_PASSWORD

    async def _create_user(
        email: str = "student@example.com",
        password: str = TEST_PASSWORD,
        roles: list[str] | None = None,
        is_active: bool = True,
        is_deleted: bool = False,
    ):
        user = await AuthService(db_session).create_user(
            email, password, first_name="Test", last_name="User", role_names=roles
        )
        if not is_active or is_deleted:
            user.is_active = is_active
            user.is_deleted = is_deleted
            await db_session.commit()
        return user

    return _create_user


@pytest.fixture
def login(async_client):
    """Log in through the API and return the token response body."""
    from tests.helpers import TEST_PASSWORD

    async def _login(
        email: str = "student@example.com",
        password: str = TEST_PASSWORD,
        device_type: str = "web",
        device_id: str | None = None,
    ) -> dict:
        payload = {"email": email, "password": password, "deviceType": device_type}
        if device_id:
            payload["deviceId"] = device_id
        response = await async_client.post("/auth/login", json=payload)
        assert response.status_code == 200, response.text
        return response.json()

    return _login
