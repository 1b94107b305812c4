"""Shared test fixtures for devspaces tests."""

from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from devspaces.app.api.dependencies import (
    get_container_runtime,
    get_identity_provider,
)
from devspaces.app.config import get_settings
from devspaces.app.main import app
from devspaces.core.interfaces import (
    ContainerRuntime,
    ContainerStatus,
    IdentityProfile,
    IdentityProvider,
)
from devspaces.core.models import User
from devspaces.infra import close_db, get_session_factory, init_db
from devspaces.services.session_service import SessionService

COOKIE_NAME = "devspaces.sid"
BASE_URL = "https://testserver"


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch: pytest.MonkeyPatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DEVSPACES_AUTH__SESSION__COOKIE_NAME", COOKIE_NAME)
    monkeypatch.setenv("DEVSPACES_AUTH__OAUTH__CLIENT_ID", "test-client")
    monkeypatch.setenv("DEVSPACES_AUTH__OAUTH__CLIENT_SECRET", "test-secret")
    monkeypatch.setenv("DEVSPACES_AUTH__OAUTH__TARGET_ORGANIZATION", "acme")
    monkeypatch.setenv("DEVSPACES_LOGGING__JSON_FORMAT", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine]:
    """File-backed SQLite database (WAL) with all tables created."""
    engine = await init_db(f"sqlite+aiosqlite:///{tmp_path / 'devspaces.db'}")
    yield engine
    await close_db()


@pytest_asyncio.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    async with get_session_factory()() as session:
        yield session


@pytest.fixture
def session_factory(engine: AsyncEngine) -> Callable[[], AsyncSession]:
    """Factory for independent sessions (one per concurrent actor)."""
    return get_session_factory()


async def _add_user(db: AsyncSession, user_id: str, username: str) -> User:
    user = User(
        id=user_id,
        username=username,
        display_name=username.title(),
        email=f"{username}@example.com",
        access_token=f"gho_{username}",
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "1001", "alice")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "1002", "bob")


@pytest.fixture
def fake_runtime() -> AsyncMock:
    """ContainerRuntime mock that succeeds on every call."""
    runtime = AsyncMock(spec=ContainerRuntime)
    runtime.create = AsyncMock(return_value="container-1")
    runtime.start = AsyncMock(return_value=None)
    runtime.stop = AsyncMock(return_value=None)
    runtime.destroy = AsyncMock(return_value=None)
    runtime.status = AsyncMock(return_value=ContainerStatus(exists=True, running=False))
    return runtime


@pytest.fixture
def fake_identity() -> AsyncMock:
    """IdentityProvider mock for a member of the acme organization."""
    identity = AsyncMock(spec=IdentityProvider)
    identity.authorization_url = lambda state, scopes: (
        f"https://github.test/login/oauth/authorize?state={state}"
        f"&scope={'+'.join(scopes)}"
    )
    identity.exchange_code = AsyncMock(return_value="gho_token")
    identity.fetch_profile = AsyncMock(
        return_value=IdentityProfile(
            id="1001",
            username="alice",
            display_name="Alice",
            email="alice@example.com",
            avatar="https://avatars.test/alice",
        )
    )
    identity.list_organizations = AsyncMock(return_value=["acme", "other"])
    return identity


@pytest.fixture
def make_client(
    engine: AsyncEngine, fake_runtime: AsyncMock, fake_identity: AsyncMock
) -> Callable[..., AbstractAsyncContextManager[AsyncClient]]:
    """Build HTTP clients against the app, optionally logged in as a user.

    The ASGI transport does not run the lifespan; the engine fixture
    initializes the database instead.
    """
    app.dependency_overrides[get_container_runtime] = lambda: fake_runtime
    app.dependency_overrides[get_identity_provider] = lambda: fake_identity

    @asynccontextmanager
    async def _make(user: User | None = None) -> AsyncGenerator[AsyncClient]:
        cookies = {}
        if user is not None:
            async with get_session_factory()() as db:
                session = await SessionService.create(db, user.id)
            cookies[COOKIE_NAME] = session.id
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url=BASE_URL,
            cookies=cookies,
        ) as client:
            yield client

    yield _make
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(make_client) -> AsyncGenerator[AsyncClient]:
    """Anonymous client."""
    async with make_client() as ac:
        yield ac


@pytest_asyncio.fixture
async def auth_client(make_client, test_user: User) -> AsyncGenerator[AsyncClient]:
    """Client logged in as test_user."""
    async with make_client(test_user) as ac:
        yield ac
