"""Database connection helpers."""

from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base


Base = declarative_base()


def create_session_factory(
    database_url: str, *, echo: bool = False
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an async engine and session factory.

    For file-backed SQLite the parent directory is created so the keeper
    can start from an empty checkout.

    Args:
        database_url: SQLAlchemy async database URL
        echo: Log emitted SQL

    Returns:
        Tuple of (engine, session factory)

    Example:
        ```python
        engine, sessions = create_session_factory("sqlite+aiosqlite:///data/keeper.db")
        await create_tables(engine)
        async with sessions() as session:
            ...
        ```
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(database_url, echo=echo)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


async def create_tables(engine: AsyncEngine) -> None:
    """Create all keeper tables if they don't exist.

    Model modules must be imported first so their tables are registered
    on ``Base.metadata``.
    """
    # Registers pending_operations and unbonding_records
    import stayer_keeper.delegation.db  # noqa: F401
    import stayer_keeper.unbonding.db  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = [
    "Base",
    "create_session_factory",
    "create_tables",
]
