"""Bulk interval shifts within one tree.

Both operations run two UPDATE statements (one for ``lft``, one for
``rgt``) with different predicates in the caller's session. They never
commit; a failure aborts the enclosing transaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import update

from nestedset.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

_lazy = get_lazy_logger(__name__)


class RangeShifter:
    """Shift ``lft`` / ``rgt`` values of one model, scoped by ``root_id``.

    Example:
        >>> shifter = RangeShifter(Category)
        >>> # open a two-slot gap starting at 7
        >>> await shifter.shift_values(session, 7, 2, root_id=1)
    """

    __slots__ = ("model",)

    def __init__(self, model: type[Any]) -> None:
        self.model = model

    async def shift_values(
        self,
        session: AsyncSession,
        first: int,
        delta: int,
        root_id: Any,
    ) -> None:
        """Add ``delta`` to every bound ``>= first``.

        ``lft`` and ``rgt`` are updated independently: a row whose ``lft`` is
        below ``first`` but whose ``rgt`` is not (an ancestor of the gap)
        only has its right bound moved.

        Args:
            session: Session running the enclosing transaction
            first: Lowest bound value to move
            delta: Signed amount (negative closes a gap)
            root_id: Tree to touch
        """
        if delta == 0:
            return
        model = self.model
        await self._shift(session, model.lft, model.lft >= first, delta, root_id)
        await self._shift(session, model.rgt, model.rgt >= first, delta, root_id)
        _lazy.debug(
            lambda: f"shift_values first={first} delta={delta} root_id={root_id!r} "
            f"model={model.__name__}"
        )

    async def shift_range(
        self,
        session: AsyncSession,
        first: int,
        last: int,
        delta: int,
        root_id: Any,
    ) -> None:
        """Add ``delta`` to every bound in ``[first, last]``.

        Used to slide one contiguous block (a node and its subtree) without
        touching rows outside the block.

        Args:
            session: Session running the enclosing transaction
            first: Lowest bound in the block
            last: Highest bound in the block
            delta: Signed distance to move the block
            root_id: Tree to touch
        """
        if delta == 0:
            return
        model = self.model
        await self._shift(
            session, model.lft, model.lft.between(first, last), delta, root_id
        )
        await self._shift(
            session, model.rgt, model.rgt.between(first, last), delta, root_id
        )
        _lazy.debug(
            lambda: f"shift_range first={first} last={last} delta={delta} "
            f"root_id={root_id!r} model={model.__name__}"
        )

    async def _shift(
        self,
        session: AsyncSession,
        column: Any,
        criterion: Any,
        delta: int,
        root_id: Any,
    ) -> None:
        stmt = (
            update(self.model)
            .where(criterion, self.model.root_id == root_id)
            .values({column: column + delta})
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)


__all__ = [
    "RangeShifter",
]
