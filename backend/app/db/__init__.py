"""Database package."""

from app.db.base import (
    engine,
    async_session_maker,
    Base,
    check_connection,
    get_db,
    init_db,
)

__all__ = [
    "engine",
    "async_session_maker",
    "Base",
    "check_connection",
    "get_db",
    "init_db",
]
