from typing import Any, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from watchquest.config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.echo_sql
)

# Session factory
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_session() -> AsyncSession:
    """Dependency for getting database sessions."""
    async with async_session() as session:
        yield session


async def init_db():
    """Initialize the database, creating all tables."""
    # Import models to register them
    from watchquest.models import challenge, title, watch  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def insert_ignoring_conflicts(
    session: AsyncSession,
    model: type[Base],
    rows: Sequence[dict[str, Any]],
    index_elements: Sequence[str]
) -> int:
    """
    Insert rows, silently skipping any that collide with a unique constraint.
    Returns the number of rows actually inserted.
    """
    if not rows:
        return 0

    if session.get_bind().dialect.name == "postgresql":
        insert = postgresql.insert
    else:
        insert = sqlite.insert

    stmt = insert(model).values(list(rows)).on_conflict_do_nothing(
        index_elements=list(index_elements)
    )
    result = await session.execute(stmt)
    return result.rowcount or 0
