"""Database utilities and setup."""
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from assessment_api.config import DATABASE_URL

_ASYNC_DRIVERS = {
    "postgresql+psycopg2://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def to_async_url(url: str) -> str:
    """Map a sync database URL onto its asyncio driver."""
    for sync_prefix, async_prefix in _ASYNC_DRIVERS.items():
        if url.startswith(sync_prefix):
            return async_prefix + url[len(sync_prefix):]
    if "+asyncpg://" in url or "+aiosqlite://" in url:
        return url
    raise ValueError(f"No async driver mapping for database URL: {url}")


def create_session_factory(url: str, **engine_kwargs: Any) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to a fresh engine."""
    engine = create_async_engine(url, **engine_kwargs)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Create engine
engine = create_async_engine(to_async_url(DATABASE_URL))

# Create session factory
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Base class for models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency to get the session factory used by stores and managers."""
    return AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with AsyncSessionLocal() as db:
        try:
            yield db
        except Exception:
            await db.rollback()
            raise


async def init_db() -> None:
    """Initialize database (create all tables)."""
    # Register all models on the metadata before creating tables
    import assessment_api.models.db  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
