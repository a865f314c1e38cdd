"""Hierarchical data stored as nested sets (modified preorder traversal).

Every node carries an interval ``[lft, rgt]``; a node is an ancestor of
another exactly when its interval strictly contains the other's. Several
trees share one table, partitioned by ``root_id``.

Components:
    - NestedSetMixin: interval columns and in-memory predicates
    - TrackedLevelMixin / TrackedParentMixin: optional stored level / parent id
    - RangeShifter: bulk bound shifts inside one tree
    - TreeReader: ancestry, descendant and sibling queries
    - TreeWriter: insert, move, promote and delete subtrees
    - derive_fields: level / parent reconstruction from preorder rows
    - validate_tree: structural consistency report for one tree

Example:
    >>> from nestedset.core.database import Base, IntegerPKMixin
    >>> from nestedset.core.database.hierarchy import (
    ...     NestedSetMixin, TrackedLevelMixin, TreeReader, TreeWriter,
    ... )
    >>>
    >>> class Category(Base, IntegerPKMixin, NestedSetMixin, TrackedLevelMixin):
    ...     __tablename__ = "categories"
    ...     name: Mapped[str] = mapped_column(String(255))
    >>>
    >>> writer = TreeWriter(Category, session_factory)
    >>> root = await writer.create_root(Category(name="catalog"))
    >>> await writer.insert_as_last_child_of(Category(name="books"), root)
    >>> async with session_factory() as session:
    ...     children = await TreeReader(Category).get_children(session, root)

Note:
    - Structural writes cost O(rows at or after the shift point)
    - Concurrent writers to one tree serialise through root-row locks
      (``NestedSetSettings.lock_trees``) or serialisable isolation
"""

from nestedset.core.database.hierarchy.levels import DerivedFields, derive_fields
from nestedset.core.database.hierarchy.mixins import (
    NestedSetMixin,
    TrackedLevelMixin,
    TrackedParentMixin,
)
from nestedset.core.database.hierarchy.reader import TreeReader
from nestedset.core.database.hierarchy.shifter import RangeShifter
from nestedset.core.database.hierarchy.strategies import NestedSetConfig, resolve_config
from nestedset.core.database.hierarchy.validation import TreeViolation, validate_tree
from nestedset.core.database.hierarchy.writer import MoveType, TreeWriter

__all__ = [
    "DerivedFields",
    "MoveType",
    "NestedSetConfig",
    "NestedSetMixin",
    "RangeShifter",
    "TrackedLevelMixin",
    "TrackedParentMixin",
    "TreeReader",
    "TreeViolation",
    "TreeWriter",
    "derive_fields",
    "resolve_config",
    "validate_tree",
]
