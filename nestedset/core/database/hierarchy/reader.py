"""Read-only queries over a nested-set forest.

Every query runs in the caller's session, accepts an optional ``where``
iterable of extra SQLAlchemy criteria (ANDed in) and returns ``None`` or an
empty list when nothing matches. Nothing here writes except
``generate_additional_fields(persist=True)``.

Example:
    >>> reader = TreeReader(Category)
    >>> root = await reader.fetch_root(session)
    >>> [c.name for c in await reader.get_children(session, root)]
    ['books', 'music']
    >>> visible = [Category.hidden.is_(False)]
    >>> await reader.get_descendants(session, root, depth=2, where=visible)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update

from nestedset.core.database.exceptions import NotAttachedError
from nestedset.core.database.hierarchy.levels import derive_fields
from nestedset.core.database.hierarchy.strategies import fetch_nodes, resolve_config
from nestedset.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

_lazy = get_lazy_logger(__name__)


def _criteria(where: Iterable[Any] | None) -> tuple[Any, ...]:
    return tuple(where) if where is not None else ()


class TreeReader:
    """Query helper bound to one nested-set model.

    Level and parent storage is resolved from the model once; models without
    stored ``level`` / ``parent_id`` get them derived on the returned
    instances as plain attributes.
    """

    def __init__(self, model: type[Any]) -> None:
        self.model = model
        self.config = resolve_config(model)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _first(self, session: AsyncSession, *criteria: Any) -> Any | None:
        rows = await fetch_nodes(session, select(self.model).where(*criteria).limit(1))
        return rows[0] if rows else None

    async def get(
        self,
        session: AsyncSession,
        node_id: Any,
        *,
        where: Iterable[Any] | None = None,
    ) -> Any | None:
        """Load a node by primary key, refreshing any stale instance."""
        return await self._first(session, self.model.id == node_id, *_criteria(where))

    async def fetch_root(
        self,
        session: AsyncSession,
        root_id: Any = None,
        *,
        where: Iterable[Any] | None = None,
    ) -> Any | None:
        """Root node of one tree.

        Args:
            session: Active session
            root_id: Tree to read (defaults to the configured default_root_id)
            where: Extra criteria

        Returns:
            The node with ``lft = 1`` in that tree, or None
        """
        if root_id is None:
            root_id = self.config.default_root_id
        model = self.model
        root = await self._first(
            session, model.lft == 1, model.root_id == root_id, *_criteria(where)
        )
        if root is not None:
            self._mark_root(root)
        return root

    async def fetch_roots(
        self,
        session: AsyncSession,
        *,
        where: Iterable[Any] | None = None,
    ) -> list[Any]:
        """Every tree's root, ordered by ``root_id``."""
        model = self.model
        stmt = select(model).where(model.lft == 1, *_criteria(where)).order_by(model.root_id)
        roots = await fetch_nodes(session, stmt)
        for root in roots:
            self._mark_root(root)
        return roots

    async def fetch_tree(
        self,
        session: AsyncSession,
        depth: int = 0,
        root_id: Any = None,
        *,
        where: Iterable[Any] | None = None,
    ) -> list[Any]:
        """One whole tree in preorder.

        Args:
            session: Active session
            depth: Keep levels ``0..depth`` only (0 = unlimited)
            root_id: Tree to read (defaults to the configured default_root_id)
            where: Extra criteria

        Returns:
            Nodes ordered by ``lft``
        """
        if root_id is None:
            root_id = self.config.default_root_id
        return await self.config.level.tree(session, root_id, depth, _criteria(where))

    # ------------------------------------------------------------------
    # Ancestry
    # ------------------------------------------------------------------

    async def get_ancestors(
        self,
        session: AsyncSession,
        node: Any,
        depth: int = 0,
        *,
        where: Iterable[Any] | None = None,
    ) -> list[Any]:
        """Strict ancestors, root first.

        Args:
            session: Active session
            node: Attached node
            depth: Keep only the ``depth`` closest ancestors (0 = all)
            where: Extra criteria

        Returns:
            Ancestors ordered by ``lft``; empty for a root
        """
        self._require_attached(node)
        if node.lft == 1:
            return []
        return await self.config.level.ancestors(session, node, depth, _criteria(where))

    async def get_descendants(
        self,
        session: AsyncSession,
        node: Any,
        depth: int = 0,
        *,
        where: Iterable[Any] | None = None,
    ) -> list[Any]:
        """Strict descendants in preorder.

        Args:
            session: Active session
            node: Attached node
            depth: Keep levels ``node.level + 1 .. node.level + depth`` (0 = all)
            where: Extra criteria

        Returns:
            Descendants ordered by ``lft``; empty for a leaf
        """
        self._require_attached(node)
        if node.rgt - node.lft == 1:
            return []
        return await self.config.level.descendants(session, node, depth, _criteria(where))

    async def get_children(
        self,
        session: AsyncSession,
        node: Any,
        *,
        where: Iterable[Any] | None = None,
    ) -> list[Any]:
        return await self.get_descendants(session, node, 1, where=where)

    async def get_parent(
        self,
        session: AsyncSession,
        node: Any,
        *,
        where: Iterable[Any] | None = None,
    ) -> Any | None:
        """Nearest ancestor, or None for a root."""
        self._require_attached(node)
        if node.lft == 1:
            return None
        parent = await self.config.parent.parent_of(session, node, _criteria(where))
        if parent is not None and not self.config.level.stored:
            level = self.config.level.read(node)
            if level is not None:
                self.config.level.assign(parent, level - 1)
        return parent

    async def get_first_child(
        self,
        session: AsyncSession,
        node: Any,
        *,
        where: Iterable[Any] | None = None,
    ) -> Any | None:
        self._require_attached(node)
        model = self.model
        child = await self._first(
            session,
            model.lft == node.lft + 1,
            model.root_id == node.root_id,
            *_criteria(where),
        )
        return self._mark_child(node, child)

    async def get_last_child(
        self,
        session: AsyncSession,
        node: Any,
        *,
        where: Iterable[Any] | None = None,
    ) -> Any | None:
        self._require_attached(node)
        if node.rgt - node.lft == 1:
            return None
        model = self.model
        child = await self._first(
            session,
            model.rgt == node.rgt - 1,
            model.root_id == node.root_id,
            *_criteria(where),
        )
        return self._mark_child(node, child)

    async def get_prev_sibling(
        self,
        session: AsyncSession,
        node: Any,
        *,
        where: Iterable[Any] | None = None,
    ) -> Any | None:
        self._require_attached(node)
        if node.lft == 1:
            return None
        model = self.model
        sibling = await self._first(
            session,
            model.rgt == node.lft - 1,
            model.root_id == node.root_id,
            *_criteria(where),
        )
        return self._mark_sibling(node, sibling)

    async def get_next_sibling(
        self,
        session: AsyncSession,
        node: Any,
        *,
        where: Iterable[Any] | None = None,
    ) -> Any | None:
        self._require_attached(node)
        if node.lft == 1:
            return None
        model = self.model
        sibling = await self._first(
            session,
            model.lft == node.rgt + 1,
            model.root_id == node.root_id,
            *_criteria(where),
        )
        return self._mark_sibling(node, sibling)

    async def has_prev_sibling(
        self,
        session: AsyncSession,
        node: Any,
        *,
        where: Iterable[Any] | None = None,
    ) -> bool:
        return await self.get_prev_sibling(session, node, where=where) is not None

    async def has_next_sibling(
        self,
        session: AsyncSession,
        node: Any,
        *,
        where: Iterable[Any] | None = None,
    ) -> bool:
        return await self.get_next_sibling(session, node, where=where) is not None

    async def get_siblings(
        self,
        session: AsyncSession,
        node: Any,
        include_self: bool = False,
        *,
        where: Iterable[Any] | None = None,
    ) -> list[Any]:
        """Children of the node's parent.

        Args:
            session: Active session
            node: Attached node
            include_self: Keep the node itself in the result
            where: Extra criteria (applied to the siblings, not the parent)

        Returns:
            Siblings in preorder; for a root ``[node]`` when ``include_self``
            else ``[]``
        """
        self._require_attached(node)
        if node.lft == 1:
            return [node] if include_self else []
        parent = await self.get_parent(session, node)
        if parent is None:
            return []
        children = await self.get_children(session, parent, where=where)
        if include_self:
            return children
        return [child for child in children if child.id != node.id]

    async def get_level(self, session: AsyncSession, node: Any) -> int:
        """Depth of the node (root = 0)."""
        self._require_attached(node)
        level = await self.config.level.level_of(session, node)
        if not self.config.level.stored:
            self.config.level.assign(node, level)
        return level

    async def get_number_children(
        self,
        session: AsyncSession,
        node: Any,
        *,
        where: Iterable[Any] | None = None,
    ) -> int:
        return len(await self.get_children(session, node, where=where))

    # ------------------------------------------------------------------
    # Reconstruction
    # ------------------------------------------------------------------

    async def generate_additional_fields(
        self,
        nodes: Sequence[Any],
        *,
        persist: bool = False,
        session: AsyncSession | None = None,
        base_level: int | None = None,
        base_parent_id: Any = None,
    ) -> Sequence[Any]:
        """Rebuild ``level`` and ``parent_id`` for a preorder subtree.

        Values are always set on the instances. With ``persist=True`` the
        model's stored columns are written as well (a no-op for models that
        store neither).

        Args:
            nodes: One subtree in preorder (see ``derive_fields``)
            persist: Write stored columns through ``session``
            session: Required when ``persist`` is set
            base_level: Level of the first node (default: 0 for a root,
                otherwise the first node's current level)
            base_parent_id: Parent id of the first node (default: None for a
                root, otherwise the first node's current parent id)

        Returns:
            The input nodes

        Raises:
            InvalidTreeOrderError: If the input is not one preorder subtree
            ValueError: If ``persist`` is set without a session
        """
        if persist and session is None:
            raise ValueError("generate_additional_fields(persist=True) needs a session")
        if not nodes:
            return nodes

        level_strategy = self.config.level
        parent_strategy = self.config.parent
        first = nodes[0]
        if base_level is None:
            base_level = 0 if first.lft == 1 else level_strategy.read(first) or 0
        if base_parent_id is None and first.lft != 1:
            base_parent_id = parent_strategy.read(first)

        derived = derive_fields(nodes, base_level=base_level, base_parent_id=base_parent_id)

        for fields in derived:
            level_strategy.assign(fields.node, fields.level)
            parent_strategy.assign(fields.node, fields.parent_id)

        if persist and (level_strategy.stored or parent_strategy.stored):
            model = self.model
            for fields in derived:
                values = {
                    **level_strategy.column_values(fields.level),
                    **parent_strategy.column_values(fields.parent_id),
                }
                await session.execute(
                    update(model)
                    .where(model.id == fields.node.id)
                    .values(values)
                    .execution_options(synchronize_session=False)
                )
            _lazy.debug(
                lambda: f"generate_additional_fields persisted {len(derived)} rows "
                f"model={model.__name__}"
            )
        return nodes

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_attached(self, node: Any) -> None:
        if not node.is_valid_node:
            raise NotAttachedError(getattr(node, "id", None))

    def _mark_root(self, root: Any) -> None:
        if not self.config.level.stored:
            self.config.level.assign(root, 0)
        if not self.config.parent.stored:
            self.config.parent.assign(root, None)

    def _mark_child(self, node: Any, child: Any | None) -> Any | None:
        if child is None:
            return None
        if not self.config.level.stored:
            level = self.config.level.read(node)
            if level is not None:
                self.config.level.assign(child, level + 1)
        if not self.config.parent.stored:
            self.config.parent.assign(child, node.id)
        return child

    def _mark_sibling(self, node: Any, sibling: Any | None) -> Any | None:
        if sibling is None:
            return None
        if not self.config.level.stored:
            level = self.config.level.read(node)
            if level is not None:
                self.config.level.assign(sibling, level)
        if not self.config.parent.stored:
            parent_id = self.config.parent.read(node)
            if parent_id is not None:
                self.config.parent.assign(sibling, parent_id)
        return sibling


__all__ = [
    "TreeReader",
]
