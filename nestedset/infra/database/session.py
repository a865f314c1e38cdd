"""Async engine and session factory construction."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.engine import make_url

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

    from nestedset.core.settings.database import DatabaseSettings

logger = logging.getLogger(__name__)


def create_engine_from_settings(db_settings: DatabaseSettings | None = None) -> AsyncEngine:
    """Create an async engine from DatabaseSettings.

    Args:
        db_settings: Settings instance; loaded via get_db_settings() if omitted.

    Returns:
        Configured AsyncEngine.
    """
    if db_settings is None:
        from nestedset.core.settings import get_db_settings

        db_settings = get_db_settings()

    engine = create_async_engine(
        db_settings.url,
        echo=db_settings.echo,
        pool_pre_ping=db_settings.pool_pre_ping,
    )
    logger.info(
        "Database engine created",
        extra={"url": make_url(db_settings.url).render_as_string(hide_password=True)},
    )
    return engine


def create_session_factory(
    engine: AsyncEngine,
    db_settings: DatabaseSettings | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Create the session factory TreeWriter uses for its own transactions.

    Args:
        engine: Async engine to bind sessions to.
        db_settings: Settings instance; loaded via get_db_settings() if omitted.

    Returns:
        async_sessionmaker producing AsyncSession objects.
    """
    if db_settings is None:
        from nestedset.core.settings import get_db_settings

        db_settings = get_db_settings()

    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=db_settings.expire_on_commit,
        autoflush=False,
    )


@asynccontextmanager
async def get_async_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Open a session that is always closed afterwards.

    Example:
        async with get_async_session(factory) as session:
            tree = await reader.fetch_tree(session, root_id=1)
    """
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
