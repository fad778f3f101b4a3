"""Async database engine and session factory.

`create_session_factory` is called once from `create_app()`; the factory is
kept on ``app.state.session_factory``. Route handlers get a request-scoped
session through `get_db`. Background units of work (the push dispatcher's
per-project tasks) open their own short-lived sessions from the factory so
that no session is ever shared between concurrent tasks.
"""

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from otto_api.core.config import Settings


def create_session_factory(settings: Settings) -> async_sessionmaker[AsyncSession]:
    engine_kwargs: dict = {"echo": False}
    if settings.database_url.startswith("postgresql"):
        engine_kwargs.update(
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=5,
            pool_timeout=15,
        )

    engine = create_async_engine(settings.database_url, **engine_kwargs)
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that provides a request-scoped DB session.

    Yields a session that auto-commits on success and rolls back on error.
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
