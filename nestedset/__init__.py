"""Nested-set (modified preorder tree traversal) forests on SQLAlchemy."""

__version__ = "0.1.0"
