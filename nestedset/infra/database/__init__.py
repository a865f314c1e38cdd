"""Database infrastructure package.

Engine and session-factory helpers built from DatabaseSettings:

    from nestedset.infra.database import create_engine_from_settings, create_session_factory

    engine = create_engine_from_settings()
    factory = create_session_factory(engine)
"""

from .session import (
    create_engine_from_settings,
    create_session_factory,
    get_async_session,
)

__all__ = [
    "create_engine_from_settings",
    "create_session_factory",
    "get_async_session",
]
