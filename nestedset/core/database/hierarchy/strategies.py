"""Storage strategies for ``level`` and ``parent_id``.

A model either stores these values in columns (``TrackedLevelMixin`` /
``TrackedParentMixin``) or leaves them to be derived from intervals. The
choice is resolved once per model into a ``NestedSetConfig`` holding one
level strategy and one parent strategy, so readers and writers call the
same methods whatever the schema looks like:

    LevelTracked      filters depth windows in SQL, increments the column
    LevelDerived      counts ancestors / rebuilds levels from preorder rows
    ParentIdTracked   primary-key lookup through the stored parent id
    ParentIdDerived   tightest enclosing interval (minimal rgt - lft)
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cache
from typing import TYPE_CHECKING, Any, ClassVar

from sqlalchemy import func, inspect, select
from sqlalchemy.orm.attributes import set_committed_value

from nestedset.core.database.hierarchy.levels import derive_fields

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession

    from nestedset.core.settings import NestedSetSettings


async def fetch_nodes(session: AsyncSession, stmt: Select[Any]) -> list[Any]:
    """Execute a node SELECT, refreshing instances already in the session.

    Bulk shifts bypass the identity map, so every node query repopulates
    loaded instances from the row it just read.
    """
    result = await session.execute(stmt.execution_options(populate_existing=True))
    return list(result.scalars().all())


def ancestor_criteria(model: type[Any], node: Any) -> list[Any]:
    return [model.lft < node.lft, model.rgt > node.rgt, model.root_id == node.root_id]


def descendant_criteria(model: type[Any], node: Any) -> list[Any]:
    return [model.lft > node.lft, model.rgt < node.rgt, model.root_id == node.root_id]


def _ids(nodes: Iterable[Any]) -> set[Any]:
    return {n.id for n in nodes}


# ============================================================================
# Parent strategies
# ============================================================================


class ParentIdTracked:
    """``parent_id`` is a stored column."""

    stored: ClassVar[bool] = True

    def __init__(self, model: type[Any]) -> None:
        self.model = model

    def read(self, node: Any) -> Any:
        return node.parent_id

    def assign(self, node: Any, value: Any) -> None:
        set_committed_value(node, "parent_id", value)

    def column_values(self, value: Any) -> dict[str, Any]:
        return {"parent_id": value}

    async def parent_id_of(self, session: AsyncSession, node: Any) -> Any:
        return node.parent_id

    async def parent_of(
        self,
        session: AsyncSession,
        node: Any,
        where: Sequence[Any] = (),
    ) -> Any | None:
        if node.parent_id is None:
            return None
        stmt = select(self.model).where(self.model.id == node.parent_id, *where)
        rows = await fetch_nodes(session, stmt)
        return rows[0] if rows else None


class ParentIdDerived:
    """``parent_id`` is derived from the tightest enclosing interval."""

    stored: ClassVar[bool] = False

    def __init__(self, model: type[Any]) -> None:
        self.model = model

    def read(self, node: Any) -> Any:
        return getattr(node, "parent_id", None)

    def assign(self, node: Any, value: Any) -> None:
        node.parent_id = value

    def column_values(self, value: Any) -> dict[str, Any]:
        return {}

    async def parent_id_of(self, session: AsyncSession, node: Any) -> Any:
        if node.lft == 1:
            return None
        model = self.model
        stmt = (
            select(model.id)
            .where(*ancestor_criteria(model, node))
            .order_by(model.rgt - model.lft)
            .limit(1)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def parent_of(
        self,
        session: AsyncSession,
        node: Any,
        where: Sequence[Any] = (),
    ) -> Any | None:
        parent_id = await self.parent_id_of(session, node)
        if parent_id is None:
            return None
        stmt = select(self.model).where(self.model.id == parent_id, *where)
        rows = await fetch_nodes(session, stmt)
        if rows:
            self.assign(node, parent_id)
        return rows[0] if rows else None


# ============================================================================
# Level strategies
# ============================================================================


class LevelTracked:
    """``level`` is a stored column; depth windows filter in SQL."""

    stored: ClassVar[bool] = True

    def __init__(self, model: type[Any], parent: ParentIdTracked | ParentIdDerived) -> None:
        self.model = model
        self.parent = parent

    def read(self, node: Any) -> int | None:
        return node.level

    def assign(self, node: Any, value: int | None) -> None:
        set_committed_value(node, "level", value)

    def column_values(self, value: int | None) -> dict[str, Any]:
        return {"level": value}

    def increment_values(self, delta: int) -> dict[Any, Any]:
        """Values clause adding ``delta`` to the stored level."""
        if not delta:
            return {}
        return {self.model.level: self.model.level + delta}

    async def level_of(self, session: AsyncSession, node: Any) -> int:
        return node.level

    async def ancestors(
        self,
        session: AsyncSession,
        node: Any,
        depth: int,
        where: Sequence[Any] = (),
    ) -> list[Any]:
        model = self.model
        stmt = select(model).where(*ancestor_criteria(model, node), *where)
        if depth > 0:
            stmt = stmt.where(model.level >= node.level - depth)
        return await fetch_nodes(session, stmt.order_by(model.lft))

    async def descendants(
        self,
        session: AsyncSession,
        node: Any,
        depth: int,
        where: Sequence[Any] = (),
    ) -> list[Any]:
        model = self.model
        stmt = select(model).where(*descendant_criteria(model, node), *where)
        if depth > 0:
            stmt = stmt.where(model.level.between(node.level + 1, node.level + depth))
        return await fetch_nodes(session, stmt.order_by(model.lft))

    async def tree(
        self,
        session: AsyncSession,
        root_id: Any,
        depth: int,
        where: Sequence[Any] = (),
    ) -> list[Any]:
        model = self.model
        stmt = select(model).where(model.root_id == root_id, model.lft >= 1, *where)
        if depth > 0:
            stmt = stmt.where(model.level.between(0, depth))
        return await fetch_nodes(session, stmt.order_by(model.lft))


class LevelDerived:
    """``level`` is derived from intervals.

    Depth windows cost a full fetch of the affected subtree: levels are only
    known after a preorder pass. Extra ``where`` criteria are applied by a
    second query whose ids filter the derived result, so filtering never
    breaks the single-subtree precondition of the pass.
    """

    stored: ClassVar[bool] = False

    def __init__(self, model: type[Any], parent: ParentIdTracked | ParentIdDerived) -> None:
        self.model = model
        self.parent = parent

    def read(self, node: Any) -> int | None:
        return getattr(node, "level", None)

    def assign(self, node: Any, value: int | None) -> None:
        node.level = value

    def column_values(self, value: int | None) -> dict[str, Any]:
        return {}

    def increment_values(self, delta: int) -> dict[Any, Any]:
        return {}

    async def level_of(self, session: AsyncSession, node: Any) -> int:
        if node.lft == 1:
            return 0
        model = self.model
        stmt = select(func.count()).select_from(model).where(*ancestor_criteria(model, node))
        return (await session.execute(stmt)).scalar_one()

    def _remember(self, nodes: Sequence[Any], base_level: int, base_parent_id: Any) -> None:
        for fields in derive_fields(nodes, base_level=base_level, base_parent_id=base_parent_id):
            self.assign(fields.node, fields.level)
            if not self.parent.stored:
                self.parent.assign(fields.node, fields.parent_id)

    async def _filter(
        self,
        session: AsyncSession,
        rows: list[Any],
        base: Sequence[Any],
        where: Sequence[Any],
    ) -> list[Any]:
        if not where:
            return rows
        kept = _ids(await fetch_nodes(session, select(self.model).where(*base, *where)))
        return [n for n in rows if n.id in kept]

    async def ancestors(
        self,
        session: AsyncSession,
        node: Any,
        depth: int,
        where: Sequence[Any] = (),
    ) -> list[Any]:
        model = self.model
        base = ancestor_criteria(model, node)
        chain = await fetch_nodes(session, select(model).where(*base).order_by(model.lft))
        # Strict ancestors form one chain from the root, so position == level
        for level, ancestor in enumerate(chain):
            self.assign(ancestor, level)
        if depth > 0:
            chain = chain[-depth:]
        return await self._filter(session, chain, base, where)

    async def descendants(
        self,
        session: AsyncSession,
        node: Any,
        depth: int,
        where: Sequence[Any] = (),
    ) -> list[Any]:
        model = self.model
        base = descendant_criteria(model, node)
        rows = await fetch_nodes(session, select(model).where(*base).order_by(model.lft))
        if not rows:
            return []
        node_level = self.read(node)
        if node_level is None:
            node_level = await self.level_of(session, node)
            self.assign(node, node_level)
        self._remember([node, *rows], node_level, self.parent.read(node))
        if depth > 0:
            rows = [n for n in rows if n.level <= node_level + depth]
        return await self._filter(session, rows, base, where)

    async def tree(
        self,
        session: AsyncSession,
        root_id: Any,
        depth: int,
        where: Sequence[Any] = (),
    ) -> list[Any]:
        model = self.model
        base = [model.root_id == root_id, model.lft >= 1]
        rows = await fetch_nodes(session, select(model).where(*base).order_by(model.lft))
        if not rows:
            return []
        self._remember(rows, 0, None)
        if depth > 0:
            rows = [n for n in rows if n.level <= depth]
        return await self._filter(session, rows, base, where)


# ============================================================================
# Resolution
# ============================================================================


@dataclass(frozen=True, slots=True)
class NestedSetConfig:
    """Per-model settings and strategies, resolved once.

    Attributes:
        model: Mapped model class
        settings: Column names, root mode, locking
        level: LevelTracked or LevelDerived
        parent: ParentIdTracked or ParentIdDerived
    """

    model: type[Any]
    settings: NestedSetSettings
    level: LevelTracked | LevelDerived
    parent: ParentIdTracked | ParentIdDerived

    @property
    def has_many_roots(self) -> bool:
        return self.settings.has_many_roots

    @property
    def default_root_id(self) -> int:
        return self.settings.default_root_id


@cache
def resolve_config(model: type[Any]) -> NestedSetConfig:
    """Resolve strategies for a mapped nested-set model.

    Args:
        model: Class mapping NestedSetMixin columns

    Returns:
        Cached NestedSetConfig for the model
    """
    mapper = inspect(model)
    parent: ParentIdTracked | ParentIdDerived
    if mapper.has_property("parent_id"):
        parent = ParentIdTracked(model)
    else:
        parent = ParentIdDerived(model)

    level: LevelTracked | LevelDerived
    if mapper.has_property("level"):
        level = LevelTracked(model, parent)
    else:
        level = LevelDerived(model, parent)

    return NestedSetConfig(
        model=model,
        settings=model.nested_set_settings(),
        level=level,
        parent=parent,
    )


__all__ = [
    "LevelDerived",
    "LevelTracked",
    "NestedSetConfig",
    "ParentIdDerived",
    "ParentIdTracked",
    "ancestor_criteria",
    "descendant_criteria",
    "fetch_nodes",
    "resolve_config",
]
