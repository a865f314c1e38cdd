"""Nested-set exceptions.

Typed errors for structural tree operations. Each error carries the
offending node ids in ``details`` so callers and log records can tell
exactly which nodes were involved.

Lookups that find nothing are not errors: readers return ``None`` or an
empty list so "nothing there" stays distinguishable from "operation failed".
"""
from __future__ import annotations

from typing import Any


class NestedSetError(Exception):
    """Base exception for nested-set operations.

    Attributes:
        message: Human readable description
        details: Structured context (node ids, root ids, positions)
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize nested-set error.

        Args:
            message: Error description
            details: Additional context about the error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Format error message with details."""
        if self.details:
            details_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class StructuralViolationError(NestedSetError):
    """Operation would break the interval structure of a tree.

    Always raised before any statement is written.
    """


class AlreadyAttachedError(StructuralViolationError):
    """Node already has a valid interval and cannot be inserted again."""

    def __init__(self, node_id: Any, *, lft: int | None = None, rgt: int | None = None):
        self.node_id = node_id
        super().__init__(
            "Cannot insert a node that already has its place in the tree",
            details={"node_id": node_id, "lft": lft, "rgt": rgt},
        )


class NotAttachedError(StructuralViolationError):
    """Node has no valid interval (never inserted, detached, or deleted)."""

    def __init__(self, node_id: Any, *, role: str = "node"):
        self.node_id = node_id
        self.role = role
        super().__init__(
            f"The {role} is not attached to a tree",
            details={f"{role}_id": node_id},
        )


class SelfReferenceError(StructuralViolationError):
    """Destination is the node itself, or lies inside the node's subtree.

    Attributes:
        node_id: Acting node
        destination_id: Requested anchor node
        operation: Name of the rejected operation
    """

    def __init__(self, operation: str, node_id: Any, destination_id: Any, reason: str):
        self.node_id = node_id
        self.destination_id = destination_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation}: {reason}",
            details={"node_id": node_id, "destination_id": destination_id},
        )


class RootOperationError(StructuralViolationError):
    """Operation is not allowed for a root node or in the current root mode."""

    def __init__(self, message: str, *, node_id: Any = None, root_id: Any = None):
        self.node_id = node_id
        self.root_id = root_id
        details: dict[str, Any] = {}
        if node_id is not None:
            details["node_id"] = node_id
        if root_id is not None:
            details["root_id"] = root_id
        super().__init__(message, details=details)


class UnknownMoveTypeError(NestedSetError):
    """Internal dispatch received a move type it does not know."""

    def __init__(self, move_type: Any):
        self.move_type = move_type
        super().__init__("Unknown move operation", details={"move_type": move_type})


class InvalidTreeOrderError(NestedSetError):
    """Input to level/parent reconstruction is not a single preorder subtree.

    Raised for unsorted input, mixed ``root_id`` values, nodes outside the
    first node's interval, or partially overlapping intervals.
    """

    def __init__(self, message: str, *, node_id: Any = None, position: int | None = None):
        self.node_id = node_id
        self.position = position
        super().__init__(message, details={"node_id": node_id, "position": position})


class TransactionFailureError(NestedSetError):
    """Store failure inside a writer-owned unit of work.

    The transaction has already been rolled back when this is raised; the
    original SQLAlchemy error is chained as ``__cause__``.
    """

    def __init__(self, operation: str, error: BaseException):
        self.operation = operation
        super().__init__(
            f"Transaction for {operation} failed and was rolled back",
            details={"operation": operation, "error": str(error)},
        )


__all__ = [
    "AlreadyAttachedError",
    "InvalidTreeOrderError",
    "NestedSetError",
    "NotAttachedError",
    "RootOperationError",
    "SelfReferenceError",
    "StructuralViolationError",
    "TransactionFailureError",
    "UnknownMoveTypeError",
]
