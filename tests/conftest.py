"""Pytest configuration and shared fixtures.

Organization:
    - Database Fixtures: file-backed SQLite engine, session factory, session
    - Tree Fixtures: model variants, reader/writer, the reference tree

The database lives in ``tmp_path`` rather than ``:memory:`` so sessions the
writer opens on its own see the same data as the test session.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from nestedset.core.database import Base
from nestedset.core.database.hierarchy import TreeReader, TreeWriter
from tests.utils import Category, Page, build_scenario

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

# Keep developer conf/ files out of the test run
os.environ.setdefault("NESTEDSET_CONFIG_DIR", "/nonexistent")
os.environ.setdefault("DB_CONFIG_DIR", "/nonexistent")
os.environ.setdefault("LOGGING_CONFIG_DIR", "/nonexistent")


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine]:
    """Create a file-backed async SQLite engine with all tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'nestedset.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory handed to TreeWriter for writer-owned transactions."""
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Caller-owned session passed explicitly to reader and writer calls."""
    async with session_factory() as session:
        yield session


# ============================================================================
# Tree Fixtures
# ============================================================================


@pytest.fixture(params=[Category, Page], ids=["tracked", "derived"])
def model(request) -> type[Any]:
    """Run a test once per level/parent storage variant."""
    return request.param


@pytest.fixture
def writer(model, session_factory) -> TreeWriter:
    return TreeWriter(model, session_factory)


@pytest.fixture
def reader(model) -> TreeReader:
    return TreeReader(model)


@pytest.fixture
async def scenario(writer, session, model) -> dict[str, Any]:
    """The reference tree, committed, for the current model variant."""
    return await build_scenario(writer, session, model)
