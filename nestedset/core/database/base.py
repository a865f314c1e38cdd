"""Declarative base and primary-key mixins for tree models.

Tree models combine ``Base``, one primary-key mixin and the nested-set
mixins from ``nestedset.core.database.hierarchy``:

    class Category(Base, IntegerPKMixin, NestedSetMixin, TrackedLevelMixin):
        __tablename__ = "categories"
        name: Mapped[str] = mapped_column(String(255))

Integer keys work in both root modes. In multi-root mode the root's own id
becomes the tree's ``root_id``, so UUID-keyed models need a UUID-typed
root column (see ``NestedSetMixin.__node_id_type__``).
"""

from __future__ import annotations

import uuid

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

# Predictable constraint and index names for migrations
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Declarative base with constraint naming and automatic table names.

    The automatic table name is the lowercased class name; set
    ``__tablename__`` explicitly for anything else.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return cls.__name__.lower()


class IntegerPKMixin:
    """Integer auto-increment primary key.

    Provides:
        id: Auto-incrementing integer primary key
    """

    __allow_unmapped__ = True

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
        comment="Auto-incrementing integer primary key",
    )


class UUIDPKMixin:
    """UUID v4 primary key.

    The key is generated on flush, so a new root in multi-root mode gets its
    ``root_id`` after the first flush just like integer keys do.

    Provides:
        id: UUID v4 primary key (random)
    """

    __allow_unmapped__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
        comment="UUID v4 primary key",
    )


__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "IntegerPKMixin",
    "UUIDPKMixin",
]
