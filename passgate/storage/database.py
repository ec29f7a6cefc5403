"""Async database engine for the durable credential store."""

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

from passgate.config.settings import get_settings


@lru_cache
def get_engine() -> AsyncEngine:
    """Return a cached async database engine (singleton per process)."""
    settings = get_settings()
    return create_async_engine(settings.database_url, echo=settings.debug)


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create the credential table if it does not exist yet."""
    import passgate.models.database  # noqa: F401 - registers tables on SQLModel.metadata

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
