"""
Database engine and session factory.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool


def create_engine(
    database_url: str, echo: bool = False, use_null_pool: bool = False
) -> AsyncEngine:
    """
    Create async engine.

    Args:
        database_url: SQLAlchemy async URL
        echo: Log SQL statements
        use_null_pool: Disable pooling (background workers)

    Returns:
        Async engine
    """
    kwargs: dict = {"echo": echo}
    if use_null_pool:
        kwargs["poolclass"] = NullPool
    elif database_url.startswith("postgresql"):
        kwargs.update(pool_size=10, max_overflow=20, pool_pre_ping=True)
    return create_async_engine(database_url, **kwargs)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create session factory bound to engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
