"""Test models and tree helpers.

Usage:
    from tests.utils import Category, build_scenario, bounds

    nodes = await build_scenario(writer, session, Category)
    assert bounds(nodes["B"]) == (6, 9)

The reference tree built by ``build_scenario`` is::

    R(1,10)
    ├── A(2,5)
    │   └── C(3,4)
    └── B(6,9)
        └── D(7,8)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import String, select
from sqlalchemy.orm import Mapped, mapped_column

from nestedset.core.database import Base, IntegerPKMixin
from nestedset.core.database.hierarchy import (
    NestedSetMixin,
    TrackedLevelMixin,
    TrackedParentMixin,
)
from nestedset.core.settings import NestedSetSettings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from nestedset.core.database.hierarchy import TreeWriter


# ============================================================================
# Test Models - one per level/parent storage variant
# ============================================================================


class Category(Base, IntegerPKMixin, NestedSetMixin, TrackedLevelMixin, TrackedParentMixin):
    """Forest with stored level and parent id."""

    __tablename__ = "categories"
    __nested_set__ = NestedSetSettings(has_many_roots=True)

    name: Mapped[str] = mapped_column(String(100))
    hidden: Mapped[bool] = mapped_column(default=False)


class Page(Base, IntegerPKMixin, NestedSetMixin):
    """Forest with level and parent id derived from intervals."""

    __tablename__ = "pages"
    __nested_set__ = NestedSetSettings(has_many_roots=True)

    name: Mapped[str] = mapped_column(String(100))
    hidden: Mapped[bool] = mapped_column(default=False)


class Section(Base, IntegerPKMixin, NestedSetMixin, TrackedLevelMixin):
    """Single tree with renamed columns."""

    __tablename__ = "sections"
    __nested_set__ = NestedSetSettings(
        has_many_roots=False,
        default_root_id=1,
        lft_column="tree_left",
        rgt_column="tree_right",
        level_column="depth",
        root_column="tree_id",
    )

    name: Mapped[str] = mapped_column(String(100))


# ============================================================================
# Tree helpers
# ============================================================================


def bounds(node: Any) -> tuple[int, int]:
    return node.lft, node.rgt


async def refresh(session: AsyncSession, *nodes: Any) -> None:
    """Reload stored columns of nodes changed by bulk statements."""
    for node in nodes:
        await session.refresh(node)


async def build_scenario(
    writer: TreeWriter,
    session: AsyncSession,
    model: type[Any],
    prefix: str = "",
) -> dict[str, Any]:
    """Build the reference tree in ``session`` and commit it.

    Returns:
        Nodes by name (R, A, B, C, D), refreshed to their final bounds
    """
    nodes = {name: model(name=f"{prefix}{name}") for name in "RABCD"}
    await writer.create_root(nodes["R"], session=session)
    await writer.insert_as_last_child_of(nodes["A"], nodes["R"], session=session)
    await writer.insert_as_last_child_of(nodes["B"], nodes["R"], session=session)
    await writer.insert_as_last_child_of(nodes["C"], nodes["A"], session=session)
    await writer.insert_as_last_child_of(nodes["D"], nodes["B"], session=session)
    await session.commit()
    await refresh(session, *nodes.values())
    return nodes


async def snapshot(session: AsyncSession, model: type[Any], root_id: Any) -> dict[str, tuple]:
    """Stored ``(lft, rgt)`` per node name for one tree."""
    stmt = select(model.name, model.lft, model.rgt).where(model.root_id == root_id)
    rows = (await session.execute(stmt)).all()
    return {name: (lft, rgt) for name, lft, rgt in rows}


def names(nodes: list[Any]) -> list[str]:
    return [node.name for node in nodes]
