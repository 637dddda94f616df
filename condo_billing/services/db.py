"""Database engine and session management."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from condo_billing.models import Base
from condo_billing.services.config import Settings, get_settings


def create_engine_for(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL.

    SQLite uses StaticPool so an in-memory database survives across sessions
    in dev/test.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory used by request-scoped callers."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_all(engine: AsyncEngine) -> None:
    """Create every table registered on Base (dev/test; production uses Alembic)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session(settings: Settings | None = None) -> AsyncGenerator[AsyncSession, None]:
    """Yield one session bound to a fresh engine, disposing both afterwards.

    Example:
        ```python
        async for session in get_async_session():
            result = await UnifiedPaymentService(session).reconcile("101")
        ```
    """
    settings = settings or get_settings()
    engine = create_engine_for(settings.database_url, echo=settings.database_echo)
    session_factory = create_sessionmaker(engine)
    try:
        async with session_factory() as session:
            yield session
    finally:
        await engine.dispose()


__all__ = ["create_engine_for", "create_sessionmaker", "create_all", "get_async_session"]
