"""Pytest configuration and fixtures."""
import os
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

TEST_DB_PATH = Path("test_app.db")
if TEST_DB_PATH.exists():
    TEST_DB_PATH.unlink()

TEST_DATABASE_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

from app.main import app  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.models.user import User, Role  # noqa: E402
from app.core.security import ROLE_PERMISSIONS  # noqa: E402
from app.middleware.audit import audit_writer  # noqa: E402
from app.services.auth_service import AuthService  # noqa: E402
from app.services.entity_lookup import entity_lookups  # noqa: E402
from app.utils.security import create_access_token  # noqa: E402


# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def shared_session_factory(session: AsyncSession):
    """Session factory that hands out the test session instead of opening new ones."""

    @asynccontextmanager
    async def factory():
        yield session

    return factory


@pytest_asyncio.fixture(scope="function")
async def db_session():
    """Create a test database session."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession):
    """Async client over ASGI; background audit writes finish before each call returns."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    original_factories = (audit_writer.session_factory, entity_lookups.session_factory)
    audit_writer.session_factory = shared_session_factory(db_session)
    entity_lookups.session_factory = shared_session_factory(db_session)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    audit_writer.session_factory, entity_lookups.session_factory = original_factories
    app.dependency_overrides.clear()


async def _create_role(db_session: AsyncSession, name: str) -> Role:
    role = Role(
        id=uuid.uuid4(),
        name=name,
        permissions=[perm.value for perm in ROLE_PERMISSIONS[name]],
        description=f"{name} role",
    )
    db_session.add(role)
    await db_session.commit()
    await db_session.refresh(role)
    return role


async def _create_user(db_session: AsyncSession, email: str, full_name: str, role: Role) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email,
        password_hash=AuthService.hash_password("testpassword"),
        full_name=full_name,
        is_active=True,
    )
    db_session.add(user)
    user.roles.append(role)
    await db_session.commit()
    await db_session.refresh(user)
    await db_session.refresh(user, ["roles"])
    return user


@pytest_asyncio.fixture
async def test_admin_role(db_session: AsyncSession):
    return await _create_role(db_session, "admin")


@pytest_asyncio.fixture
async def test_agent_role(db_session: AsyncSession):
    return await _create_role(db_session, "agent")


@pytest_asyncio.fixture
async def test_viewer_role(db_session: AsyncSession):
    return await _create_role(db_session, "viewer")


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession, test_admin_role: Role):
    """Administrator."""
    return await _create_user(db_session, "test@example.com", "Test User", test_admin_role)


@pytest_asyncio.fixture
async def agent_user(db_session: AsyncSession, test_agent_role: Role):
    return await _create_user(db_session, "agent@example.com", "Agent Smith", test_agent_role)


@pytest_asyncio.fixture
async def viewer_user(db_session: AsyncSession, test_viewer_role: Role):
    return await _create_user(db_session, "viewer@example.com", "Vera Viewer", test_viewer_role)


def headers_for(user: User) -> dict:
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(test_user):
    """Get authentication headers for the administrator."""
    return headers_for(test_user)


@pytest.fixture
def agent_headers(agent_user):
    return headers_for(agent_user)


@pytest.fixture
def viewer_headers(viewer_user):
    return headers_for(viewer_user)
