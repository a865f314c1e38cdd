"""Level and parent reconstruction from nested-set intervals.

Works on plain Python objects (anything with ``id``, ``lft``, ``rgt`` and
``root_id`` attributes) and never touches the database. ``TreeReader`` uses
it when a model does not store ``level`` / ``parent_id``, and to rebuild or
verify stored values.

The input must be one subtree in preorder: sorted by ``lft``, sharing one
``root_id``, with the first node enclosing every other node. Anything else
raises ``InvalidTreeOrderError`` instead of producing wrong levels.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from nestedset.core.database.exceptions import InvalidTreeOrderError

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass(frozen=True, slots=True)
class DerivedFields:
    """Level and parent reconstructed for one node.

    Attributes:
        node: The input object
        level: Depth (``base_level`` for the first node)
        parent_id: Id of the tightest enclosing node in the input
    """

    node: Any
    level: int
    parent_id: Any


def derive_fields(
    nodes: Sequence[Any],
    *,
    base_level: int = 0,
    base_parent_id: Any = None,
) -> list[DerivedFields]:
    """Rebuild level and parent id for a preorder subtree in one pass.

    An ancestor stack holds the chain of open intervals. Before each node,
    intervals that closed before the node starts are popped (several at
    once when the walk climbs more than one level); the stack depth is then
    the node's level relative to the first node and the top of the stack is
    its parent.

    Args:
        nodes: Subtree in preorder, first element is the subtree root
        base_level: Level assigned to the first node
        base_parent_id: Parent id assigned to the first node

    Returns:
        One DerivedFields per input node, in input order

    Raises:
        InvalidTreeOrderError: If the input is not a single preorder subtree

    Example:
        >>> fields = derive_fields(tree)  # tree = R(1,10) A(2,5) C(3,4) B(6,9) D(7,8)
        >>> [(f.node.id, f.level) for f in fields]
        [('R', 0), ('A', 1), ('C', 2), ('B', 1), ('D', 2)]
    """
    if not nodes:
        return []

    first = nodes[0]
    _check_interval(first, 0)

    result: list[DerivedFields] = []
    stack: list[Any] = []
    prev_lft: int | None = None

    for position, node in enumerate(nodes):
        _check_interval(node, position)
        if node.root_id != first.root_id:
            raise InvalidTreeOrderError(
                "Nodes from more than one tree", node_id=node.id, position=position
            )
        if prev_lft is not None and node.lft <= prev_lft:
            raise InvalidTreeOrderError(
                "Nodes are not sorted by lft", node_id=node.id, position=position
            )
        if position > 0 and not (first.lft < node.lft and node.rgt < first.rgt):
            raise InvalidTreeOrderError(
                "Node lies outside the first node's interval",
                node_id=node.id,
                position=position,
            )

        while stack and stack[-1].rgt < node.lft:
            stack.pop()

        if stack and node.rgt >= stack[-1].rgt:
            raise InvalidTreeOrderError(
                "Node partially overlaps an enclosing interval",
                node_id=node.id,
                position=position,
            )

        parent_id = stack[-1].id if stack else base_parent_id
        result.append(DerivedFields(node, base_level + len(stack), parent_id))
        stack.append(node)
        prev_lft = node.lft

    return result


def _check_interval(node: Any, position: int) -> None:
    if node.lft is None or node.rgt is None or node.rgt <= node.lft:
        raise InvalidTreeOrderError(
            "Node has no valid interval", node_id=getattr(node, "id", None), position=position
        )


__all__ = [
    "DerivedFields",
    "derive_fields",
]
