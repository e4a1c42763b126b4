"""
Database configuration.

Async engine and session factory shared by the record store.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tvl.config.settings import settings


def create_engine(database_url: str | None = None, echo: bool | None = None):
    """Create async engine for the configured database."""
    return create_async_engine(
        database_url or settings.database_url,
        echo=settings.database_echo if echo is None else echo,
        pool_pre_ping=True,
    )


def create_session_maker(engine=None) -> async_sessionmaker[AsyncSession]:
    """Create session maker bound to the engine."""
    if engine is None:
        engine = create_engine()
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async_engine = create_engine()
async_session_maker = create_session_maker(async_engine)
