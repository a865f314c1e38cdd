"""Tests for RangeShifter bulk bound updates."""

from __future__ import annotations

import pytest

from nestedset.core.database.hierarchy import RangeShifter, TreeWriter
from tests.utils import Category, build_scenario, snapshot


@pytest.fixture
async def tree(session, session_factory):
    writer = TreeWriter(Category, session_factory)
    return await build_scenario(writer, session, Category)


@pytest.mark.asyncio
async def test_shift_values_moves_bounds_independently(session, tree):
    """Ancestors of the gap only get their right bound moved."""
    root_id = tree["R"].root_id

    await RangeShifter(Category).shift_values(session, 6, 2, root_id)

    assert await snapshot(session, Category, root_id) == {
        "R": (1, 12),
        "A": (2, 5),
        "C": (3, 4),
        "B": (8, 11),
        "D": (9, 10),
    }


@pytest.mark.asyncio
async def test_shift_values_negative_closes_gap(session, tree):
    root_id = tree["R"].root_id
    shifter = RangeShifter(Category)

    await shifter.shift_values(session, 6, 2, root_id)
    await shifter.shift_values(session, 8, -2, root_id)

    assert await snapshot(session, Category, root_id) == {
        "R": (1, 10),
        "A": (2, 5),
        "C": (3, 4),
        "B": (6, 9),
        "D": (7, 8),
    }


@pytest.mark.asyncio
async def test_shift_range_moves_only_the_block(session, tree):
    root_id = tree["R"].root_id

    await RangeShifter(Category).shift_range(session, 2, 5, 20, root_id)

    assert await snapshot(session, Category, root_id) == {
        "R": (1, 10),
        "A": (22, 25),
        "C": (23, 24),
        "B": (6, 9),
        "D": (7, 8),
    }


@pytest.mark.asyncio
async def test_shift_is_scoped_to_one_tree(session, session_factory):
    writer = TreeWriter(Category, session_factory)
    first = await build_scenario(writer, session, Category, prefix="x")
    second = await build_scenario(writer, session, Category, prefix="y")

    await RangeShifter(Category).shift_values(session, 1, 100, first["R"].root_id)

    untouched = await snapshot(session, Category, second["R"].root_id)
    assert untouched["yR"] == (1, 10)
    assert untouched["yD"] == (7, 8)
    moved = await snapshot(session, Category, first["R"].root_id)
    assert moved["xR"] == (101, 110)


@pytest.mark.asyncio
async def test_zero_delta_is_skipped(session, tree, caplog):
    root_id = tree["R"].root_id
    caplog.set_level("DEBUG", logger="nestedset.core.database.hierarchy.shifter")

    await RangeShifter(Category).shift_values(session, 1, 0, root_id)
    await RangeShifter(Category).shift_range(session, 1, 10, 0, root_id)

    assert [r for r in caplog.records if r.name.startswith("nestedset")] == []
    assert (await snapshot(session, Category, root_id))["R"] == (1, 10)


@pytest.mark.asyncio
async def test_shift_logs_at_debug(session, tree, caplog):
    caplog.set_level("DEBUG", logger="nestedset.core.database.hierarchy.shifter")

    await RangeShifter(Category).shift_values(session, 6, 2, tree["R"].root_id)

    assert any("shift_values first=6 delta=2" in r.getMessage() for r in caplog.records)
