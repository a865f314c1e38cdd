"""Mixins for models stored as nested sets.

``NestedSetMixin`` declares the interval columns (``lft``, ``rgt``) and the
tree partition key (``root_id``) and adds the in-memory predicates that
compare intervals without touching the database. ``TrackedLevelMixin`` and
``TrackedParentMixin`` add physical ``level`` / ``parent_id`` columns; a
model without them gets both values derived on read by ``TreeReader``.

Database queries and structural writes live in ``TreeReader`` and
``TreeWriter``; instances only know their own interval.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from sqlalchemy import Integer, inspect
from sqlalchemy.orm import Mapped, declared_attr, mapped_column
from sqlalchemy.orm.attributes import set_committed_value

from nestedset.core.settings import NestedSetSettings, get_nested_set_settings

if TYPE_CHECKING:
    from typing import Self


class NestedSetMixin:
    """Mixin for models holding one node of a nested-set forest.

    Every node carries an interval ``[lft, rgt]``. A node is an ancestor of
    another exactly when its interval strictly contains the other's and both
    share ``root_id``.

    Example:
        >>> class Category(Base, IntegerPKMixin, NestedSetMixin, TrackedLevelMixin):
        ...     __tablename__ = "categories"
        ...     name: Mapped[str] = mapped_column(String(255))
        >>>
        >>> root = Category(name="catalog")
        >>> await writer.create_root(root, session=session)
        >>> root.lft, root.rgt
        (1, 2)
        >>> root.is_leaf
        True

    Note:
        - Column names come from ``__nested_set__`` (a NestedSetSettings) or
          the cached global settings, read once when the class is declared.
        - ``root_id`` is nullable only so a new root can learn its own id on
          the first flush in multi-root mode.
        - Set ``__node_id_type__`` to the primary-key type (e.g. ``Uuid``)
          for non-integer keys; it types ``root_id`` and ``parent_id``.
    """

    __allow_unmapped__ = True

    # Override in subclass for per-model column names / root mode
    __nested_set__: ClassVar[NestedSetSettings | None] = None
    __node_id_type__: ClassVar[Any] = Integer

    @classmethod
    def nested_set_settings(cls) -> NestedSetSettings:
        """Settings in effect for this model."""
        return cls.__nested_set__ or get_nested_set_settings()

    @declared_attr
    def lft(cls) -> Mapped[int]:
        return mapped_column(
            cls.nested_set_settings().lft_column,
            Integer,
            nullable=False,
            index=True,
            comment="Nested-set left bound",
        )

    @declared_attr
    def rgt(cls) -> Mapped[int]:
        return mapped_column(
            cls.nested_set_settings().rgt_column,
            Integer,
            nullable=False,
            index=True,
            comment="Nested-set right bound",
        )

    @declared_attr
    def root_id(cls) -> Mapped[Any]:
        return mapped_column(
            cls.nested_set_settings().root_column,
            cls.__node_id_type__,
            nullable=True,
            index=True,
            comment="Tree partition key (id of the tree's root in multi-root mode)",
        )

    # ------------------------------------------------------------------
    # In-memory predicates (no database access)
    # ------------------------------------------------------------------

    @property
    def is_valid_node(self) -> bool:
        """True when the node is persisted and has a real interval.

        Unattached (never inserted), detached and deleted nodes are invalid.
        """
        if self.lft is None or self.rgt is None or self.rgt <= self.lft:
            return False
        return inspect(self).has_identity

    @property
    def is_root(self) -> bool:
        """True for the node whose interval starts at 1."""
        return self.lft == 1

    @property
    def is_leaf(self) -> bool:
        """True when the interval holds no descendants."""
        return self.lft is not None and self.rgt is not None and self.rgt - self.lft == 1

    @property
    def has_children(self) -> bool:
        return self.lft is not None and self.rgt is not None and self.rgt - self.lft > 1

    @property
    def has_parent(self) -> bool:
        return self.is_valid_node and not self.is_root

    @property
    def number_descendants(self) -> int:
        """Number of descendants, read from the interval width.

        Returns:
            ``(rgt - lft - 1) // 2``; 0 for nodes without an interval
        """
        if self.lft is None or self.rgt is None or self.rgt <= self.lft:
            return 0
        return (self.rgt - self.lft - 1) // 2

    def get_number_descendants(self) -> int:
        return self.number_descendants

    def is_equal_to(self, node: NestedSetMixin) -> bool:
        """Same interval in the same tree."""
        if self.lft is None or node.lft is None:
            return False
        return (
            node.lft == self.lft
            and node.rgt == self.rgt
            and node.root_id == self.root_id
        )

    def is_descendant_of(self, node: NestedSetMixin) -> bool:
        if self.lft is None or node.lft is None:
            return False
        return node.lft < self.lft and node.rgt > self.rgt and node.root_id == self.root_id

    def is_descendant_of_or_equal_to(self, node: NestedSetMixin) -> bool:
        if self.lft is None or node.lft is None:
            return False
        return node.lft <= self.lft and node.rgt >= self.rgt and node.root_id == self.root_id

    def is_ancestor_of(self, node: NestedSetMixin) -> bool:
        if self.lft is None or node.lft is None:
            return False
        return node.lft > self.lft and node.rgt < self.rgt and node.root_id == self.root_id

    def detach(self) -> Self:
        """Invalidate the interval in memory only (``lft = rgt = 0``).

        Nothing is flagged for flushing; the row keeps its stored interval
        until a writer operation persists a new one. Writers judge a persisted
        node by its stored row, so a detached persisted node is still refused
        by the ``insert_as_*`` operations; relocate it with ``move_*``.
        """
        set_committed_value(self, "lft", 0)
        set_committed_value(self, "rgt", 0)
        return self


class TrackedLevelMixin:
    """Store each node's depth in a physical column.

    With the column present, depth-limited queries filter in SQL; without it
    ``TreeReader`` derives levels from the intervals.
    """

    __allow_unmapped__ = True

    @declared_attr
    def level(cls) -> Mapped[int]:
        return mapped_column(
            cls.nested_set_settings().level_column,
            Integer,
            nullable=False,
            default=0,
            index=True,
            comment="Depth from the tree root (root = 0)",
        )


class TrackedParentMixin:
    """Store each node's parent id in a physical column.

    ``TreeReader.get_parent`` then becomes a primary-key lookup.
    """

    __allow_unmapped__ = True

    @declared_attr
    def parent_id(cls) -> Mapped[Any | None]:
        return mapped_column(
            cls.nested_set_settings().parent_column,
            cls.__node_id_type__,
            nullable=True,
            index=True,
            comment="Id of the nearest ancestor (NULL for roots)",
        )


__all__ = [
    "NestedSetMixin",
    "TrackedLevelMixin",
    "TrackedParentMixin",
]
