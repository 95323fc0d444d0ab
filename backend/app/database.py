"""
Database configuration and session management.
Uses SQLAlchemy async engine (asyncpg in production, aiosqlite for local runs and tests).
"""
import logging
from typing import Any, Dict

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.config import settings
from app.models.base import Base

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> Dict[str, Any]:
    """Pool options; SQLite manages its own pool."""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"timeout": 30}}
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 10,
    }


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=False,  # Disable SQLAlchemy query logging
    **_engine_options(settings.database_url),
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncSession:
    """
    Dependency for FastAPI routes to get database session.
    Usage: db: AsyncSession = Depends(get_db)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def insert_on_conflict_do_nothing(db: AsyncSession, table, values: Dict[str, Any], index_elements):
    """
    Build an INSERT that silently skips rows colliding on index_elements.

    Both PostgreSQL and SQLite support ON CONFLICT DO NOTHING; the statement
    has to be built from the dialect-specific insert construct.
    """
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        stmt = postgresql.insert(table)
    elif dialect_name == "sqlite":
        stmt = sqlite.insert(table)
    else:
        raise NotImplementedError(f"Upsert not supported for dialect: {dialect_name}")
    return stmt.values(**values).on_conflict_do_nothing(index_elements=index_elements)


async def init_db():
    """
    Initialize database: create tables.
    Called on application startup.
    Usage records are created lazily on first verified request.
    """
    from app.models.usage_record import UsageRecord  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")
