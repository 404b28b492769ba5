from typing import AsyncGenerator, Tuple
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from common.config import settings


def create_session_factory() -> Tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Builds an engine and a session factory bound to it.

    Sessions keep loaded objects usable after commit, which the lead
    repository relies on when it converts rows to schemas.
    """
    engine = create_async_engine(
        settings.database_url,
        pool_size=settings.DATABASE_POOL_SIZE,
        pool_pre_ping=True,
        echo=settings.DATABASE_ECHO,
    )
    return engine, async_sessionmaker(bind=engine, expire_on_commit=False)


# Shared by the API services
engine, AsyncSessionLocal = create_session_factory()


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI to provide database sessions.

    Yields:
        AsyncSession: Database session; rolled back if the request fails
                      before committing, closed afterwards.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
