"""Async engine and sessions for walk requests, matches and reports."""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from walkbuddy.config import settings

# asyncpg in production, aiosqlite in tests
engine = create_async_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

# Shared by request handlers, the expiry sweeper and the safety analysis runner.
# expire_on_commit=False: matcher results are read after the pairing commit.
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db():
    """One session per HTTP request; commits on success, rolls back on any error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
