"""Structural writes on a nested-set forest.

Every public operation runs as one unit of work: statements go to the
caller's session when one is passed (the caller commits), otherwise to a
session opened from the writer's factory and committed on success.

Preconditions are checked against the stored rows before anything is
written, so a rejected operation leaves the database untouched. After a
successful operation the acting node and the destination carry their new
stored values; other instances loaded earlier are stale until re-read
through ``TreeReader``.

Example:
    >>> writer = TreeWriter(Category, session_factory)
    >>> root = await writer.create_root(Category(name="catalog"))
    >>> books = await writer.insert_as_last_child_of(Category(name="books"), root)
    >>> await writer.move_as_first_child_of(books, other_tree_root)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, NamedTuple

from sqlalchemy import delete as sa_delete
from sqlalchemy import func, inspect, select, update
from sqlalchemy.orm.attributes import set_committed_value

from nestedset.core.database.exceptions import (
    AlreadyAttachedError,
    NestedSetError,
    NotAttachedError,
    RootOperationError,
    SelfReferenceError,
    StructuralViolationError,
    UnknownMoveTypeError,
)
from nestedset.core.database.hierarchy.shifter import RangeShifter
from nestedset.core.database.hierarchy.strategies import resolve_config
from nestedset.core.database.transactions import unit_of_work
from nestedset.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)
_lazy = get_lazy_logger(__name__)


class MoveType(StrEnum):
    """Where a node goes relative to its destination."""

    PREV_SIBLING = "prev_sibling"
    NEXT_SIBLING = "next_sibling"
    FIRST_CHILD = "first_child"
    LAST_CHILD = "last_child"


_SIBLING_MOVES = frozenset({MoveType.PREV_SIBLING, MoveType.NEXT_SIBLING})


@dataclass(frozen=True, slots=True)
class NodeState:
    """Stored position of one node, read at the start of an operation."""

    id: Any
    lft: int
    rgt: int
    root_id: Any
    level: int
    parent_id: Any

    @property
    def width(self) -> int:
        return self.rgt - self.lft + 1

    @property
    def is_root(self) -> bool:
        return self.lft == 1

    @property
    def is_valid(self) -> bool:
        return self.rgt > self.lft

    def contains(self, other: NodeState) -> bool:
        """Other lies strictly inside this interval."""
        return (
            self.root_id == other.root_id
            and self.lft < other.lft
            and other.rgt < self.rgt
        )


class Placement(NamedTuple):
    lft: int
    level: int
    parent_id: Any


def placement_for(dest: NodeState, move_type: MoveType) -> Placement:
    """Slot a single node takes relative to ``dest``.

    Raises:
        UnknownMoveTypeError: For anything that is not a MoveType member
    """
    match move_type:
        case MoveType.PREV_SIBLING:
            return Placement(dest.lft, dest.level, dest.parent_id)
        case MoveType.NEXT_SIBLING:
            return Placement(dest.rgt + 1, dest.level, dest.parent_id)
        case MoveType.FIRST_CHILD:
            return Placement(dest.lft + 1, dest.level + 1, dest.id)
        case MoveType.LAST_CHILD:
            return Placement(dest.rgt, dest.level + 1, dest.id)
        case _:
            raise UnknownMoveTypeError(move_type)


class TreeWriter:
    """Insert, move, promote and delete nodes of one nested-set model.

    Args:
        model: Mapped model class using NestedSetMixin
        session_factory: Factory for writer-owned transactions; optional
            when every call passes ``session=``
    """

    def __init__(
        self,
        model: type[Any],
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self.model = model
        self.session_factory = session_factory
        self.config = resolve_config(model)
        self.shifter = RangeShifter(model)

    # ==================================================================
    # Roots
    # ==================================================================

    async def create_root(self, node: Any, *, session: AsyncSession | None = None) -> Any:
        """Persist ``node`` as the root of a new tree.

        In multi-root mode the tree's ``root_id`` is the node's own id unless
        one was preset on the node. In single-root mode it is the configured
        ``default_root_id`` and only one root may exist.

        Raises:
            AlreadyAttachedError: If the node already has a valid interval
            RootOperationError: If the target ``root_id`` is already in use
        """
        operation = "create_root"
        async with unit_of_work(self.session_factory, session, operation=operation) as s:
            await self._require_unattached(s, operation, node)

            if self.config.has_many_roots:
                root_id = node.root_id
            else:
                root_id = self.config.default_root_id
            if root_id is not None:
                await self._lock(s, root_id)
            if root_id is not None and await self._root_id_in_use(s, root_id):
                raise self._reject(
                    operation,
                    RootOperationError(
                        "A tree with this root id already exists", root_id=root_id
                    ),
                )

            await self._save(s, node, lft=1, rgt=2, root_id=root_id, level=0, parent_id=None)
            if root_id is None:
                await self._save(
                    s, node, lft=1, rgt=2, root_id=node.id, level=0, parent_id=None
                )
            # Instances may expire on commit
            node_id, root_id = node.id, node.root_id

        logger.info(
            "Tree root created",
            extra={"operation": operation, "node_id": node_id, "root_id": root_id},
        )
        return node

    async def make_root(
        self,
        node: Any,
        new_root_id: Any = None,
        *,
        session: AsyncSession | None = None,
    ) -> Any:
        """Promote a subtree to an independent tree.

        Args:
            node: Attached non-root node
            new_root_id: ``root_id`` of the new tree (defaults to ``node.id``)
            session: Caller-owned session

        Raises:
            RootOperationError: Multi-root disabled, node already a root, or
                ``new_root_id`` already used by a tree
            NotAttachedError: If the node has no valid interval
        """
        operation = "make_root"
        async with unit_of_work(self.session_factory, session, operation=operation) as s:
            if not self.config.has_many_roots:
                raise self._reject(
                    operation,
                    RootOperationError(
                        "make_root requires has_many_roots", node_id=node.id
                    ),
                )
            await self._lock_trees_of(s, node)
            old = await self._require_attached(s, operation, node)
            if old.is_root:
                raise self._reject(
                    operation,
                    RootOperationError("Node is already a root", node_id=old.id),
                )
            if new_root_id is None:
                new_root_id = old.id
            if await self._root_id_in_use(s, new_root_id):
                raise self._reject(
                    operation,
                    RootOperationError(
                        "A tree with this root id already exists",
                        node_id=old.id,
                        root_id=new_root_id,
                    ),
                )

            model = self.model
            values: dict[Any, Any] = {
                model.lft: model.lft + (1 - old.lft),
                model.rgt: model.rgt + (1 - old.lft),
                model.root_id: new_root_id,
                **self.config.level.increment_values(-old.level),
            }
            await s.execute(
                update(model)
                .where(
                    model.lft > old.lft,
                    model.rgt < old.rgt,
                    model.root_id == old.root_id,
                )
                .values(values)
                .execution_options(synchronize_session=False)
            )
            await self.shifter.shift_values(s, old.rgt + 1, -old.width, old.root_id)
            await self._save(
                s,
                node,
                lft=1,
                rgt=old.width,
                root_id=new_root_id,
                level=0,
                parent_id=None,
            )

        logger.info(
            "Subtree promoted to tree",
            extra={
                "operation": operation,
                "node_id": old.id,
                "old_root_id": old.root_id,
                "root_id": new_root_id,
            },
        )
        return node

    # ==================================================================
    # Inserts
    # ==================================================================

    async def insert_as_parent_of(
        self,
        node: Any,
        dest: Any,
        *,
        session: AsyncSession | None = None,
    ) -> Any:
        """Insert ``node`` between ``dest`` and its parent.

        ``dest`` and its subtree move one level down inside the new node.

        Raises:
            AlreadyAttachedError: If the node is already in a tree
            NotAttachedError: If the destination is not in a tree
            SelfReferenceError: If node and destination are the same
            RootOperationError: If the destination is a root
        """
        operation = "insert_as_parent_of"
        async with unit_of_work(self.session_factory, session, operation=operation) as s:
            await self._lock_trees_of(s, dest)
            d = await self._check_insert(s, operation, node, dest, root_forbidden=True)

            await self.shifter.shift_values(s, d.rgt + 1, 2, d.root_id)
            model = self.model
            await s.execute(
                update(model)
                .where(
                    model.lft >= d.lft,
                    model.rgt <= d.rgt,
                    model.root_id == d.root_id,
                )
                .values(
                    {
                        model.lft: model.lft + 1,
                        model.rgt: model.rgt + 1,
                        **self.config.level.increment_values(1),
                    }
                )
                .execution_options(synchronize_session=False)
            )
            await self._save(
                s,
                node,
                lft=d.lft,
                rgt=d.rgt + 2,
                root_id=d.root_id,
                level=d.level,
                parent_id=d.parent_id,
            )
            if self.config.parent.stored:
                await s.execute(
                    update(model)
                    .where(model.id == d.id)
                    .values({model.parent_id: node.id})
                    .execution_options(synchronize_session=False)
                )
            await self._state(s, dest)
            node_id = node.id

        self._log_placed(operation, node_id, d)
        return node

    async def insert_as_prev_sibling_of(
        self, node: Any, dest: Any, *, session: AsyncSession | None = None
    ) -> Any:
        return await self._insert(node, dest, MoveType.PREV_SIBLING, session)

    async def insert_as_next_sibling_of(
        self, node: Any, dest: Any, *, session: AsyncSession | None = None
    ) -> Any:
        return await self._insert(node, dest, MoveType.NEXT_SIBLING, session)

    async def insert_as_first_child_of(
        self, node: Any, dest: Any, *, session: AsyncSession | None = None
    ) -> Any:
        return await self._insert(node, dest, MoveType.FIRST_CHILD, session)

    async def insert_as_last_child_of(
        self, node: Any, dest: Any, *, session: AsyncSession | None = None
    ) -> Any:
        return await self._insert(node, dest, MoveType.LAST_CHILD, session)

    async def add_child(
        self, parent: Any, node: Any, *, session: AsyncSession | None = None
    ) -> Any:
        """Append ``node`` as the last child of ``parent``."""
        return await self._insert(node, parent, MoveType.LAST_CHILD, session)

    async def _insert(
        self,
        node: Any,
        dest: Any,
        move_type: MoveType,
        session: AsyncSession | None,
    ) -> Any:
        operation = f"insert_as_{move_type}_of"
        async with unit_of_work(self.session_factory, session, operation=operation) as s:
            await self._lock_trees_of(s, dest)
            d = await self._check_insert(
                s, operation, node, dest, root_forbidden=move_type in _SIBLING_MOVES
            )
            await self._place(s, node, placement_for(d, move_type), d.root_id)
            await self._state(s, dest)
            node_id = node.id

        self._log_placed(operation, node_id, d)
        return node

    async def _place(
        self,
        session: AsyncSession,
        node: Any,
        placement: Placement,
        root_id: Any,
    ) -> None:
        """Open a two-slot gap at the placement and put ``node`` in it."""
        await self.shifter.shift_values(session, placement.lft, 2, root_id)
        await self._save(
            session,
            node,
            lft=placement.lft,
            rgt=placement.lft + 1,
            root_id=root_id,
            level=placement.level,
            parent_id=placement.parent_id,
        )

    # ==================================================================
    # Moves
    # ==================================================================

    async def move_as_prev_sibling_of(
        self, node: Any, dest: Any, *, session: AsyncSession | None = None
    ) -> Any:
        return await self._move(node, dest, MoveType.PREV_SIBLING, session)

    async def move_as_next_sibling_of(
        self, node: Any, dest: Any, *, session: AsyncSession | None = None
    ) -> Any:
        return await self._move(node, dest, MoveType.NEXT_SIBLING, session)

    async def move_as_first_child_of(
        self, node: Any, dest: Any, *, session: AsyncSession | None = None
    ) -> Any:
        return await self._move(node, dest, MoveType.FIRST_CHILD, session)

    async def move_as_last_child_of(
        self, node: Any, dest: Any, *, session: AsyncSession | None = None
    ) -> Any:
        return await self._move(node, dest, MoveType.LAST_CHILD, session)

    async def _move(
        self,
        node: Any,
        dest: Any,
        move_type: MoveType,
        session: AsyncSession | None,
    ) -> Any:
        operation = f"move_as_{move_type}_of"
        async with unit_of_work(self.session_factory, session, operation=operation) as s:
            await self._lock_trees_of(s, node, dest)
            old = await self._require_attached(s, operation, node)
            d = await self._require_attached(s, operation, dest, role="destination")
            if old.id == d.id or (
                old.lft == d.lft and old.rgt == d.rgt and old.root_id == d.root_id
            ):
                raise self._reject(
                    operation,
                    SelfReferenceError(
                        operation, old.id, d.id, "node and destination are the same"
                    ),
                )
            if old.contains(d):
                raise self._reject(
                    operation,
                    SelfReferenceError(
                        operation, old.id, d.id, "destination is inside the node's subtree"
                    ),
                )
            if move_type in _SIBLING_MOVES and d.is_root:
                raise self._reject(
                    operation,
                    RootOperationError(
                        "A root cannot have siblings", node_id=old.id, root_id=d.root_id
                    ),
                )
            placement = placement_for(d, move_type)

            if old.root_id != d.root_id:
                await self._move_between_trees(s, node, old, placement, d.root_id)
            else:
                await self._move_within_tree(s, node, old, placement)
            await self._state(s, dest)

        logger.info(
            "Node moved",
            extra={
                "operation": operation,
                "node_id": old.id,
                "destination_id": d.id,
                "old_root_id": old.root_id,
                "root_id": d.root_id,
            },
        )
        return node

    async def _move_between_trees(
        self,
        session: AsyncSession,
        node: Any,
        old: NodeState,
        placement: Placement,
        dest_root_id: Any,
    ) -> None:
        """Relocate a subtree into another tree.

        Opens a gap of the subtree's width at the placement in the
        destination tree, re-keys the subtree into it and closes the hole in
        the source tree.
        """
        _lazy.debug(
            lambda: f"move_between_trees node={old.id!r} {old.root_id!r}->{dest_root_id!r} "
            f"at lft={placement.lft}"
        )
        await self.shifter.shift_values(session, placement.lft, old.width, dest_root_id)
        await self._save(
            session,
            node,
            lft=placement.lft,
            rgt=placement.lft + old.width - 1,
            root_id=dest_root_id,
            level=placement.level,
            parent_id=placement.parent_id,
        )

        model = self.model
        diff = placement.lft - old.lft
        await session.execute(
            update(model)
            .where(
                model.lft > old.lft,
                model.rgt < old.rgt,
                model.root_id == old.root_id,
            )
            .values(
                {
                    model.lft: model.lft + diff,
                    model.rgt: model.rgt + diff,
                    model.root_id: dest_root_id,
                    **self.config.level.increment_values(placement.level - old.level),
                }
            )
            .execution_options(synchronize_session=False)
        )
        await self.shifter.shift_values(session, old.rgt + 1, -old.width, old.root_id)

    async def _move_within_tree(
        self,
        session: AsyncSession,
        node: Any,
        old: NodeState,
        placement: Placement,
    ) -> None:
        """Slide a subtree to another slot of the same tree.

        Open a gap at the target, slide the block into it, close the hole it
        left. The block's bounds move with the first shift when the gap
        opens to their left.
        """
        root_id = old.root_id
        size = old.width
        dest_lft = placement.lft
        left, right = old.lft, old.rgt
        _lazy.debug(
            lambda: f"move_within_tree node={old.id!r} [{left}, {right}] -> {dest_lft} "
            f"root_id={root_id!r}"
        )

        await self.shifter.shift_values(session, dest_lft, size, root_id)
        if left >= dest_lft:
            left += size
            right += size

        level_values = self.config.level.increment_values(placement.level - old.level)
        if level_values:
            model = self.model
            await session.execute(
                update(model)
                .where(model.lft > left, model.rgt < right, model.root_id == root_id)
                .values(level_values)
                .execution_options(synchronize_session=False)
            )

        await self.shifter.shift_range(session, left, right, dest_lft - left, root_id)
        await self.shifter.shift_values(session, right + 1, -size, root_id)

        final_lft = dest_lft if dest_lft <= old.lft else dest_lft - size
        await self._save(
            session,
            node,
            lft=final_lft,
            rgt=final_lft + size - 1,
            root_id=root_id,
            level=placement.level,
            parent_id=placement.parent_id,
        )

    # ==================================================================
    # Delete
    # ==================================================================

    async def delete(self, node: Any, *, session: AsyncSession | None = None) -> Any:
        """Delete ``node`` with its whole subtree and close the gap.

        Returns:
            The node, detached to ``lft = rgt = 0``

        Raises:
            NotAttachedError: If the node has no valid interval
        """
        operation = "delete"
        async with unit_of_work(self.session_factory, session, operation=operation) as s:
            await self._lock_trees_of(s, node)
            old = await self._require_attached(s, operation, node)

            model = self.model
            result = await s.execute(
                sa_delete(model)
                .where(
                    model.lft.between(old.lft, old.rgt),
                    model.root_id == old.root_id,
                )
                .execution_options(synchronize_session="fetch")
            )
            await self.shifter.shift_values(s, old.rgt + 1, -old.width, old.root_id)
            node.detach()

        logger.info(
            "Subtree deleted",
            extra={
                "operation": operation,
                "node_id": old.id,
                "root_id": old.root_id,
                "rows": result.rowcount,
            },
        )
        return node

    # ==================================================================
    # Helpers
    # ==================================================================

    async def _state(self, session: AsyncSession, node: Any) -> NodeState | None:
        """Read a node's stored position and copy it onto the instance.

        Returns None for nodes that were never persisted or whose row is
        gone.
        """
        if inspect(node).key is None:
            return None
        model = self.model
        names = ["lft", "rgt", "root_id"]
        if self.config.level.stored:
            names.append("level")
        if self.config.parent.stored:
            names.append("parent_id")
        stmt = select(*(getattr(model, name) for name in names)).where(model.id == node.id)
        row = (await session.execute(stmt)).one_or_none()
        if row is None:
            return None
        for name, value in zip(names, row, strict=True):
            set_committed_value(node, name, value)
        if not node.rgt > node.lft:
            return NodeState(node.id, node.lft, node.rgt, node.root_id, 0, None)

        level = await self.config.level.level_of(session, node)
        parent_id = await self.config.parent.parent_id_of(session, node)
        if not self.config.level.stored:
            self.config.level.assign(node, level)
        if not self.config.parent.stored:
            self.config.parent.assign(node, parent_id)
        return NodeState(node.id, node.lft, node.rgt, node.root_id, level, parent_id)

    async def _require_attached(
        self,
        session: AsyncSession,
        operation: str,
        node: Any,
        *,
        role: str = "node",
    ) -> NodeState:
        state = await self._state(session, node)
        if state is None or not state.is_valid:
            raise self._reject(operation, NotAttachedError(getattr(node, "id", None), role=role))
        return state

    async def _require_unattached(self, session: AsyncSession, operation: str, node: Any) -> None:
        """Refuse nodes whose stored row holds a valid interval.

        The stored row wins over in-memory state such as ``detach()``; inserting
        a persisted row elsewhere would strand its descendants.
        """
        if inspect(node).key is None:
            return
        state = await self._state(session, node)
        if state is None:
            raise self._reject(
                operation,
                NestedSetError("Node row no longer exists", details={"node_id": node.id}),
            )
        if state.is_valid:
            raise self._reject(
                operation, AlreadyAttachedError(state.id, lft=state.lft, rgt=state.rgt)
            )

    async def _check_insert(
        self,
        session: AsyncSession,
        operation: str,
        node: Any,
        dest: Any,
        *,
        root_forbidden: bool,
    ) -> NodeState:
        await self._require_unattached(session, operation, node)
        if node is dest:
            raise self._reject(
                operation,
                SelfReferenceError(
                    operation,
                    getattr(node, "id", None),
                    getattr(dest, "id", None),
                    "node and destination are the same",
                ),
            )
        d = await self._require_attached(session, operation, dest, role="destination")
        if root_forbidden and d.is_root:
            raise self._reject(
                operation,
                RootOperationError(
                    f"Cannot {operation} a root node", node_id=d.id, root_id=d.root_id
                ),
            )
        return d

    async def _root_id_in_use(self, session: AsyncSession, root_id: Any) -> bool:
        model = self.model
        stmt = select(func.count()).select_from(model).where(model.root_id == root_id)
        return (await session.execute(stmt)).scalar_one() > 0

    async def _stored_root_id(self, session: AsyncSession, node: Any) -> Any:
        identity = inspect(node).identity
        if identity is None:
            return None
        model = self.model
        stmt = select(model.root_id).where(model.id == identity[0])
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _lock_trees_of(self, session: AsyncSession, *nodes: Any) -> None:
        """Lock the trees holding ``nodes`` before their positions are read.

        Only ``root_id`` is read ahead of the lock. It is read again once
        locked; a node that another writer moved to a different tree in the
        meantime gets that tree locked too.
        """
        if not self.config.settings.lock_trees:
            return
        locked: set[Any] = set()
        while True:
            root_ids = {await self._stored_root_id(session, node) for node in nodes}
            root_ids.discard(None)
            if root_ids <= locked:
                return
            await self._lock(session, *(root_ids - locked))
            locked |= root_ids

    async def _lock(self, session: AsyncSession, *root_ids: Any) -> None:
        """Lock tree root rows so concurrent writers to a tree serialise."""
        if not self.config.settings.lock_trees:
            return
        model = self.model
        for root_id in sorted(set(root_ids)):
            await session.execute(
                select(model.id)
                .where(model.root_id == root_id, model.lft == 1)
                .with_for_update()
            )

    async def _save(
        self,
        session: AsyncSession,
        node: Any,
        *,
        lft: int,
        rgt: int,
        root_id: Any,
        level: int,
        parent_id: Any,
    ) -> None:
        """Write a node's position: INSERT for new nodes, UPDATE otherwise."""
        config = self.config
        model = self.model
        values = {
            "lft": lft,
            "rgt": rgt,
            "root_id": root_id,
            **config.level.column_values(level),
            **config.parent.column_values(parent_id),
        }
        if inspect(node).key is None:
            for name, value in values.items():
                setattr(node, name, value)
            session.add(node)
            await session.flush()
        else:
            await session.execute(
                update(model)
                .where(model.id == node.id)
                .values({getattr(model, name): value for name, value in values.items()})
                .execution_options(synchronize_session=False)
            )
            for name, value in values.items():
                set_committed_value(node, name, value)

        if not config.level.stored:
            config.level.assign(node, level)
        if not config.parent.stored:
            config.parent.assign(node, parent_id)

    def _reject(self, operation: str, exc: NestedSetError) -> NestedSetError:
        level = logging.WARNING if isinstance(exc, StructuralViolationError) else logging.ERROR
        logger.log(
            level,
            "Rejected %s: %s",
            operation,
            exc.message,
            extra={"operation": operation, "model": self.model.__name__, **exc.details},
        )
        return exc

    def _log_placed(self, operation: str, node_id: Any, dest: NodeState) -> None:
        logger.info(
            "Node inserted",
            extra={
                "operation": operation,
                "node_id": node_id,
                "destination_id": dest.id,
                "root_id": dest.root_id,
            },
        )


__all__ = [
    "MoveType",
    "NodeState",
    "Placement",
    "TreeWriter",
    "placement_for",
]
