"""Engine, session factory and the request-scoped session dependency."""
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.core.security import ROLE_PERMISSIONS

Base = declarative_base()


def build_engine(database_url: str = settings.DATABASE_URL) -> AsyncEngine:
    """Async engine for ``database_url``; SQLite shares one connection across the app."""
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=settings.DATABASE_ECHO,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(
        database_url,
        echo=settings.DATABASE_ECHO,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False, autoflush=False)


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Dependency for getting database session."""
    async with AsyncSessionLocal() as session:
        yield session


async def init_db() -> None:
    """Create missing tables and the default roles."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    from app.services.bootstrap_service import ensure_roles

    async with AsyncSessionLocal() as session:
        await ensure_roles(session, role_names=ROLE_PERMISSIONS.keys())


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
