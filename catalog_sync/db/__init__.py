"""Database module."""
from catalog_sync.db.base import (
    Base,
    TimestampMixin,
    engine,
    async_session_maker,
    init_db,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "engine",
    "async_session_maker",
    "init_db",
]
