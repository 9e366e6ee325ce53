"""Database utilities for PartKeeper."""

from partkeeper.db.session import (
    close_db,
    engine,
    get_partition_store,
    init_db,
)

__all__ = [
    "engine",
    "get_partition_store",
    "init_db",
    "close_db",
]
