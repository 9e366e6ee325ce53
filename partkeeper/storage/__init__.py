"""Storage collaborators for partition lifecycle operations."""

from partkeeper.storage.base import PartitionStore, RawTimestamp, StorageTransaction
from partkeeper.storage.postgres import PostgresPartitionStore, PostgresTransaction

__all__ = [
    "PartitionStore",
    "PostgresPartitionStore",
    "PostgresTransaction",
    "RawTimestamp",
    "StorageTransaction",
]
