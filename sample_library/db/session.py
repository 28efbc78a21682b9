from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Return the session factory created by the application lifespan."""
    return request.app.state.session_factory


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with get_session_factory(request)() as session:
        yield session
