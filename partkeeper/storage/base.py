"""Storage collaborator interface used by the lifecycle services.

The services never build SQL themselves. They open a transaction on a
:class:`PartitionStore` and call the primitives on the yielded
:class:`StorageTransaction`; implementations are responsible for quoting
identifiers and binding values.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, Optional

from partkeeper.models.target import LifecycleTarget

# Encoded timestamp: epoch int, or UTC datetime (naive for ``timestamp`` columns)
RawTimestamp = int | datetime


class StorageTransaction(ABC):
    """Operations available inside one database transaction."""

    # Generic statements

    @abstractmethod
    async def query(self, statement: Any, params: Optional[dict[str, Any]] = None) -> Sequence[Any]:
        """Run a statement and return its rows."""

    @abstractmethod
    async def execute(self, statement: Any, params: Optional[dict[str, Any]] = None) -> int:
        """Run a statement and return the affected row count."""

    # Catalog and DDL

    @abstractmethod
    async def list_tables_matching(self, schema: str, prefix: str) -> list[str]:
        """Names of tables in ``schema`` starting with ``prefix``, sorted."""

    @abstractmethod
    async def table_exists(self, schema: str, table: str) -> bool:
        """Whether ``schema.table`` exists."""

    @abstractmethod
    async def is_partitioned(self, schema: str, table: str) -> bool:
        """Whether ``schema.table`` is a partitioned parent table."""

    @abstractmethod
    async def partition_parent(self, schema: str, table: str) -> Optional[str]:
        """Name of the table ``schema.table`` is attached to, or None."""

    @abstractmethod
    async def column_has_time_zone(self, schema: str, table: str, column: str) -> bool:
        """Whether ``column`` of ``schema.table`` is ``timestamp with time zone``."""

    @abstractmethod
    async def create_range_partition(
        self,
        schema: str,
        table: str,
        partition: str,
        lower: RawTimestamp,
        upper: RawTimestamp,
    ) -> None:
        """Create ``partition`` of ``table`` for ``[lower, upper)`` if absent."""

    @abstractmethod
    async def drop_table(self, schema: str, table: str) -> None:
        """Drop ``schema.table`` if it exists."""

    # Reads

    @abstractmethod
    async def latest_timestamp(self, target: LifecycleTarget) -> Any:
        """Maximum raw time value of the base table, or None when empty."""

    @abstractmethod
    async def timestamp_bounds(self, target: LifecycleTarget, table: str) -> Optional[tuple[Any, Any]]:
        """Raw ``(min, max)`` time values of ``table``, or None when empty."""

    @abstractmethod
    async def count_dependents_of(self, target: LifecycleTarget, source_table: str) -> int:
        """Dependent rows referencing an identifier stored in ``source_table``."""

    @abstractmethod
    async def count_dependents_before(self, target: LifecycleTarget, cutoff: RawTimestamp) -> int:
        """Dependent rows referencing base rows older than ``cutoff``."""

    @abstractmethod
    async def count_rows_before(self, target: LifecycleTarget, cutoff: RawTimestamp) -> int:
        """Base rows older than ``cutoff``."""

    @abstractmethod
    async def count_orphans(self, target: LifecycleTarget, cutoff: RawTimestamp) -> int:
        """Dependent rows older than ``cutoff`` whose base row is gone."""

    # Chunked deletes, each removes at most ``limit`` rows

    @abstractmethod
    async def delete_dependents_of(self, target: LifecycleTarget, source_table: str, limit: int) -> int:
        """Delete dependent rows referencing identifiers stored in ``source_table``."""

    @abstractmethod
    async def delete_dependents_before(
        self, target: LifecycleTarget, cutoff: RawTimestamp, limit: int
    ) -> int:
        """Delete dependent rows referencing base rows older than ``cutoff``."""

    @abstractmethod
    async def delete_rows_before(self, target: LifecycleTarget, cutoff: RawTimestamp, limit: int) -> int:
        """Delete base rows older than ``cutoff``."""

    @abstractmethod
    async def delete_orphans(self, target: LifecycleTarget, cutoff: RawTimestamp, limit: int) -> int:
        """Delete dependent rows older than ``cutoff`` whose base row is gone."""


class PartitionStore(ABC):
    """Factory for transactions against one database."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StorageTransaction]:
        """Open a transaction.

        The transaction commits when the block exits normally and rolls back
        on any exception. Storage errors surface as ``StorageFailure``.
        """
