"""Tests for unit-of-work handling: writer-owned and caller-owned sessions."""

from __future__ import annotations

import logging

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from nestedset.core.database.exceptions import (
    NestedSetError,
    RootOperationError,
    TransactionFailureError,
)
from nestedset.core.database.hierarchy import RangeShifter, TreeReader, TreeWriter, validate_tree
from nestedset.core.database.transactions import unit_of_work
from tests.utils import Category, bounds, build_scenario, names, snapshot


async def failing_shift(*args, **kwargs):
    raise SQLAlchemyError("disk on fire")


@pytest.mark.asyncio
async def test_writer_owned_session_commits(session_factory):
    """Without session= every call is its own committed transaction."""
    writer = TreeWriter(Category, session_factory)

    root = await writer.create_root(Category(name="R"))
    child = await writer.insert_as_last_child_of(Category(name="A"), root)

    assert bounds(root) == (1, 4)
    assert bounds(child) == (2, 3)
    async with session_factory() as fresh:
        assert await snapshot(fresh, Category, root.root_id) == {"R": (1, 4), "A": (2, 3)}


@pytest.mark.asyncio
async def test_writer_owned_nodes_move_across_calls(session_factory):
    writer = TreeWriter(Category, session_factory)
    root = await writer.create_root(Category(name="R"))
    a = await writer.add_child(root, Category(name="A"))
    b = await writer.add_child(root, Category(name="B"))

    await writer.move_as_first_child_of(b, a)

    async with session_factory() as fresh:
        assert await snapshot(fresh, Category, root.root_id) == {
            "R": (1, 6),
            "A": (2, 5),
            "B": (3, 4),
        }


@pytest.mark.asyncio
async def test_store_failure_rolls_back_everything(session, session_factory, caplog, monkeypatch):
    """A failure in the middle of a move leaves no partial shift behind."""
    writer = TreeWriter(Category, session_factory)
    nodes = await build_scenario(writer, session, Category)
    root_id = nodes["R"].root_id
    before = await snapshot(session, Category, root_id)
    await session.close()
    monkeypatch.setattr(RangeShifter, "shift_range", failing_shift)
    caplog.set_level(logging.ERROR, logger="nestedset.core.database.transactions")

    with pytest.raises(TransactionFailureError) as exc_info:
        await writer.move_as_next_sibling_of(nodes["A"], nodes["B"])

    assert isinstance(exc_info.value.__cause__, SQLAlchemyError)
    assert exc_info.value.operation == "move_as_next_sibling_of"
    async with session_factory() as fresh:
        assert await snapshot(fresh, Category, root_id) == before
    assert any(r.operation == "move_as_next_sibling_of" for r in caplog.records)


@pytest.mark.asyncio
async def test_caller_session_sees_raw_error(session, session_factory, monkeypatch):
    writer = TreeWriter(Category, session_factory)
    nodes = await build_scenario(writer, session, Category)
    monkeypatch.setattr(RangeShifter, "shift_range", failing_shift)

    with pytest.raises(SQLAlchemyError) as exc_info:
        await writer.move_as_next_sibling_of(nodes["A"], nodes["B"], session=session)

    assert not isinstance(exc_info.value, TransactionFailureError)
    await session.rollback()


@pytest.mark.asyncio
async def test_rejection_in_writer_owned_session_is_not_wrapped(session_factory):
    writer = TreeWriter(Category, session_factory)
    root = await writer.create_root(Category(name="R"))

    with pytest.raises(RootOperationError):
        await writer.insert_as_prev_sibling_of(Category(name="N"), root)

    async with session_factory() as fresh:
        rows = (await fresh.execute(select(Category.name))).scalars().all()
    assert rows == ["R"]


@pytest.mark.asyncio
async def test_caller_composes_several_edits(session, session_factory):
    """Edits in one caller session commit or roll back together."""
    writer = TreeWriter(Category, session_factory)
    root = await writer.create_root(Category(name="R"), session=session)
    await session.commit()
    root_id = root.root_id

    await writer.add_child(root, Category(name="A"), session=session)
    await writer.add_child(root, Category(name="B"), session=session)
    await session.rollback()

    async with session_factory() as fresh:
        assert await snapshot(fresh, Category, root_id) == {"R": (1, 2)}


@pytest.mark.asyncio
async def test_unit_of_work_needs_factory_or_session():
    with pytest.raises(NestedSetError, match="no session factory"):
        async with unit_of_work(None, operation="delete"):
            pass


@pytest.mark.asyncio
async def test_unit_of_work_yields_caller_session(session):
    async with unit_of_work(None, session, operation="noop") as active:
        assert active is session


@pytest.mark.asyncio
async def test_positions_are_read_after_the_tree_lock(session, session_factory, monkeypatch):
    """An edit committed while the lock is being taken is not overwritten."""
    writer = TreeWriter(Category, session_factory)
    competitor = TreeWriter(Category, session_factory)
    nodes = await build_scenario(writer, session, Category)
    root_id = nodes["R"].root_id
    await session.close()
    take_lock = TreeWriter._lock
    competed = []

    async def lock_after_competing_edit(self, s, *root_ids):
        if self is writer and not competed:
            competed.append(True)
            await competitor.insert_as_first_child_of(Category(name="X"), nodes["A"])
        await take_lock(self, s, *root_ids)

    monkeypatch.setattr(TreeWriter, "_lock", lock_after_competing_edit)

    new = await writer.insert_as_first_child_of(Category(name="N"), nodes["B"])

    assert competed == [True]
    assert bounds(new) == (9, 10)
    assert new.parent_id == nodes["B"].id
    async with session_factory() as fresh:
        assert await snapshot(fresh, Category, root_id) == {
            "R": (1, 14),
            "A": (2, 7),
            "X": (3, 4),
            "C": (5, 6),
            "B": (8, 13),
            "N": (9, 10),
            "D": (11, 12),
        }
        assert await validate_tree(fresh, Category, root_id) == []


@pytest.mark.asyncio
async def test_writer_owned_session_expiring_on_commit(async_engine, caplog):
    """Instances expired by the commit are not touched again for logging."""
    factory = async_sessionmaker(async_engine)
    writer = TreeWriter(Category, factory)
    reader = TreeReader(Category)
    caplog.set_level(logging.INFO, logger="nestedset.core.database.hierarchy.writer")

    await writer.create_root(Category(name="R"))

    async with factory() as fresh:
        [root] = await reader.fetch_roots(fresh)
        await writer.insert_as_last_child_of(Category(name="A"), root)
        tree = await reader.fetch_tree(fresh, root_id=root.root_id)
        assert names(tree) == ["R", "A"]
        assert bounds(tree[0]) == (1, 4)

        await writer.delete(tree[1])

        assert await snapshot(fresh, Category, root.root_id) == {"R": (1, 2)}
    messages = [r.getMessage() for r in caplog.records]
    assert messages == ["Tree root created", "Node inserted", "Subtree deleted"]
