"""Database engine, session factory and declarative base"""
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from educhain.config import get_settings

settings = get_settings()


def engine_options(database_url: str) -> Dict[str, Any]:
    """Engine keyword arguments appropriate for the database backend.

    SQLite (used for local runs and tests) has no connection pool sizing.
    """
    options: Dict[str, Any] = {"echo": settings.debug}
    if not database_url.startswith("sqlite"):
        options["pool_size"] = settings.database_pool_size
        options["pool_pre_ping"] = True
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all EduChain records"""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session.

    Settlement services commit explicitly at the points where on-chain
    confirmation must be made durable; anything left pending is committed here.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Create all tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Dispose of the engine's connections"""
    await engine.dispose()
