from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from sample_library.models import Base
from sample_library.settings import Settings


def build_engine(config: Settings) -> AsyncEngine:
    """Create the async engine for the configured database URL."""
    return create_async_engine(
        config.database_url,
        echo=False,
        pool_pre_ping=True,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create any missing tables for the ORM models."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
