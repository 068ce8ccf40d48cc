from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from resilience.config import get_settings


def make_session_factory(url: str, *, echo: bool = False) -> async_sessionmaker[AsyncSession]:
    """
    Create an AsyncEngine for `url` and return a session factory bound to it.

    The factory is what the transaction helpers expect as their `client`.
    """
    engine: AsyncEngine = create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,   # connection health checks
    )
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@lru_cache()
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Process-wide session factory built from Settings.DATABASE_URL."""
    settings = get_settings()
    if not settings.DATABASE_URL:
        raise RuntimeError("DATABASE_URL is not configured")
    return make_session_factory(settings.DATABASE_URL, echo=settings.SQLALCHEMY_ECHO)


# Dependency to get DB session
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency. Yields a session and ensures it's closed after the request.

    Usage:
        async def endpoint(db: AsyncSession = Depends(get_async_session)):
            await db.execute(...)
    """
    async with get_session_factory()() as session:
        yield session
