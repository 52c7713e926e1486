"""Database engine and session helpers."""

from loyalty.db.session import (
    AsyncSessionLocal,
    build_engine,
    engine,
    get_db,
    get_db_context,
    get_session_factory,
)

__all__ = [
    "AsyncSessionLocal",
    "build_engine",
    "engine",
    "get_db",
    "get_db_context",
    "get_session_factory",
]
