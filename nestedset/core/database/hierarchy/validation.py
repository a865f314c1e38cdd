"""Consistency checks for one stored tree.

``validate_tree`` reads every row of a tree and reports each broken
structural rule as a ``TreeViolation``. An empty list means the tree is
healthy. It never raises for bad data and never writes.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from nestedset.core.database.hierarchy.strategies import resolve_config

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True, slots=True)
class TreeViolation:
    """One broken rule.

    Attributes:
        node_id: Offending node (None for tree-wide rules)
        rule: Short rule name, e.g. ``"width"`` or ``"overlap"``
        message: Human readable description
    """

    node_id: Any
    rule: str
    message: str


async def validate_tree(
    session: AsyncSession,
    model: type[Any],
    root_id: Any,
) -> list[TreeViolation]:
    """Check the stored rows of one tree.

    Rules:
        interval: ``rgt > lft`` for every row
        width: ``rgt - lft == 2 * descendants + 1``
        root: exactly one row with ``lft = 1``
        overlap: intervals are disjoint or strictly nested
        level / parent: stored values match the interval structure
        bounds: the bounds are exactly ``1 .. 2n``

    Args:
        session: Active session
        model: Nested-set model class
        root_id: Tree to check

    Returns:
        Violations found (empty when the tree is healthy)
    """
    config = resolve_config(model)
    stmt = (
        select(model)
        .where(model.root_id == root_id)
        .order_by(model.lft)
        .execution_options(populate_existing=True)
    )
    nodes = list((await session.execute(stmt)).scalars().all())
    if not nodes:
        return []

    violations: list[TreeViolation] = []

    for node in nodes:
        if node.rgt <= node.lft:
            violations.append(
                TreeViolation(node.id, "interval", f"rgt {node.rgt} <= lft {node.lft}")
            )

    roots = [node for node in nodes if node.lft == 1]
    if len(roots) != 1:
        violations.append(
            TreeViolation(None, "root", f"expected one root, found {len(roots)}")
        )

    bounds = sorted([n.lft for n in nodes] + [n.rgt for n in nodes])
    if bounds != list(range(1, 2 * len(nodes) + 1)):
        violations.append(
            TreeViolation(None, "bounds", "bounds are not exactly 1..2n without gaps")
        )

    lfts = [node.lft for node in nodes]
    for index, node in enumerate(nodes):
        if node.rgt <= node.lft:
            continue
        descendants = bisect_right(lfts, node.rgt) - index - 1
        if node.rgt - node.lft != 2 * descendants + 1:
            violations.append(
                TreeViolation(
                    node.id,
                    "width",
                    f"width {node.rgt - node.lft} does not match {descendants} descendants",
                )
            )

    # Ancestor stack walk: overlap, stored level and stored parent
    stack: list[Any] = []
    for node in nodes:
        if node.rgt <= node.lft:
            continue
        while stack and stack[-1].rgt < node.lft:
            stack.pop()
        if stack and node.rgt > stack[-1].rgt:
            violations.append(
                TreeViolation(
                    node.id,
                    "overlap",
                    f"[{node.lft}, {node.rgt}] overlaps [{stack[-1].lft}, {stack[-1].rgt}]",
                )
            )
            continue
        expected_parent = stack[-1].id if stack else None
        if config.level.stored and node.level != len(stack):
            violations.append(
                TreeViolation(node.id, "level", f"stored level {node.level} != {len(stack)}")
            )
        if config.parent.stored and node.parent_id != expected_parent:
            violations.append(
                TreeViolation(
                    node.id,
                    "parent",
                    f"stored parent {node.parent_id!r} != {expected_parent!r}",
                )
            )
        stack.append(node)

    return violations


__all__ = [
    "TreeViolation",
    "validate_tree",
]
