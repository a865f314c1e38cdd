"""Database layer: declarative base, error taxonomy and transactions.

Tree models and algorithms live in ``nestedset.core.database.hierarchy``.
"""

from nestedset.core.database.base import NAMING_CONVENTION, Base, IntegerPKMixin, UUIDPKMixin
from nestedset.core.database.exceptions import (
    AlreadyAttachedError,
    InvalidTreeOrderError,
    NestedSetError,
    NotAttachedError,
    RootOperationError,
    SelfReferenceError,
    StructuralViolationError,
    TransactionFailureError,
    UnknownMoveTypeError,
)
from nestedset.core.database.transactions import unit_of_work

__all__ = [
    "NAMING_CONVENTION",
    "AlreadyAttachedError",
    "Base",
    "IntegerPKMixin",
    "InvalidTreeOrderError",
    "NestedSetError",
    "NotAttachedError",
    "RootOperationError",
    "SelfReferenceError",
    "StructuralViolationError",
    "TransactionFailureError",
    "UUIDPKMixin",
    "UnknownMoveTypeError",
    "unit_of_work",
]
