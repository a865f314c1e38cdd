"""Unit-of-work helper for structural tree writes.

A structural edit is several statements (gap opening, block slide, gap
closing, row update) that must become visible together. ``unit_of_work``
either joins a session the caller already controls or opens its own,
committing on success and rolling back on any failure.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from nestedset.core.database.exceptions import NestedSetError, TransactionFailureError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker[AsyncSession] | None,
    session: AsyncSession | None = None,
    *,
    operation: str,
) -> AsyncGenerator[AsyncSession]:
    """Run one structural operation atomically.

    With a caller session every statement runs in it and nothing is
    committed here; errors propagate unchanged so the caller can roll back
    its whole composition. Without one, a session is opened from
    ``session_factory``, committed when the block exits cleanly and rolled
    back otherwise.

    Args:
        session_factory: Factory for writer-owned sessions
        session: Caller-owned session, if any
        operation: Operation name for logs and errors

    Yields:
        The session to run statements in

    Raises:
        NestedSetError: If no session was given and no factory is configured
        TransactionFailureError: If a SQLAlchemy error aborted a writer-owned
            transaction (original error chained as ``__cause__``)

    Example:
        async with unit_of_work(factory, operation="delete") as session:
            await session.execute(stmt)
    """
    if session is not None:
        yield session
        return

    if session_factory is None:
        raise NestedSetError(
            "No session given and no session factory configured",
            details={"operation": operation},
        )

    async with session_factory() as own:
        try:
            yield own
            await own.commit()
        except SQLAlchemyError as e:
            await own.rollback()
            logger.error(
                "Transaction rolled back for %s: %s",
                operation,
                e,
                extra={"operation": operation, "error_type": type(e).__name__},
            )
            raise TransactionFailureError(operation, e) from e
        except BaseException as e:
            await own.rollback()
            logger.warning(
                "Transaction rolled back for %s",
                operation,
                extra={"operation": operation, "error_type": type(e).__name__},
            )
            raise


__all__ = [
    "unit_of_work",
]
