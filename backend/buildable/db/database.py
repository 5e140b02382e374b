"""Database connection and session management."""

from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from ..core.config import get_settings


def normalize_database_url(url: str) -> str:
    """Rewrite plain postgres URLs to the asyncpg driver."""
    # Handle Heroku-style postgres:// URLs (need to be postgresql://)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://") and "+asyncpg" not in url:
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def create_engine(url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    """Create an async engine for a database URL."""
    url = normalize_database_url(url)

    # For SQLite, we need check_same_thread=False
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    return create_async_engine(url, echo=echo, connect_args=connect_args, **kwargs)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


_settings = get_settings()
DATABASE_URL = normalize_database_url(_settings.database_url)

engine = create_engine(DATABASE_URL, echo=_settings.database_echo)

async_session = create_session_factory(engine)

# Base class for SQLAlchemy models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Usage in FastAPI:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create all tables that do not exist yet."""
    # Import models so they register on Base.metadata
    from . import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(bind: Optional[AsyncEngine] = None) -> None:
    """
    Close database connections.

    Call this on application shutdown.
    """
    await (bind or engine).dispose()
