"""Nested-set schema and behaviour settings.

Environment variables use NESTEDSET_ prefix.
Example: NESTEDSET_HAS_MANY_ROOTS=true, NESTEDSET_ROOT_COLUMN=tree_id

These settings pick column names and the root mode. They are read when a
model class is declared, so a model that needs different values should set
its own ``__nested_set__ = NestedSetSettings(...)`` instead of relying on
the environment.
"""

from __future__ import annotations

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .sources import nested_set_source

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class NestedSetSettings(BaseSettings):
    """Column naming, root mode and locking for nested-set models.

    Attributes:
        has_many_roots: Allow several independent trees in one table.
        default_root_id: Fixed ``root_id`` used in single-root mode, and the
            default tree for root lookups.
        lft_column: Database column holding the left bound.
        rgt_column: Database column holding the right bound.
        level_column: Database column for the stored level (only used by
            models that mix in ``TrackedLevelMixin``).
        root_column: Database column holding the tree partition key.
        parent_column: Database column for the stored parent id (only used by
            models that mix in ``TrackedParentMixin``).
        lock_trees: Lock tree root rows FOR UPDATE before structural writes.
    """

    has_many_roots: bool = Field(
        default=False,
        description="Allow multiple independent trees (a forest) in one table",
    )
    default_root_id: int = Field(
        default=1,
        ge=0,
        description="root_id used in single-root mode and as the default tree",
    )

    lft_column: str = Field(default="lft", description="Column name for left bound")
    rgt_column: str = Field(default="rgt", description="Column name for right bound")
    level_column: str = Field(default="level", description="Column name for stored level")
    root_column: str = Field(default="root_id", description="Column name for tree partition key")
    parent_column: str = Field(default="parent_id", description="Column name for stored parent id")

    lock_trees: bool = Field(
        default=True,
        description="Select tree root rows FOR UPDATE before structural writes",
    )

    @field_validator(
        "lft_column",
        "rgt_column",
        "level_column",
        "root_column",
        "parent_column",
    )
    @classmethod
    def validate_column_name(cls, v: str) -> str:
        """Reject names that are not plain SQL identifiers."""
        if not _IDENTIFIER.match(v):
            raise ValueError(f"Invalid column name: {v!r}")
        return v

    model_config = SettingsConfigDict(
        env_prefix="NESTEDSET_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        """Customize settings source precedence (env beats conf files)."""
        return (init_settings, env_settings, nested_set_source, dotenv_settings, file_secret_settings)
