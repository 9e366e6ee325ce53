"""In-memory partition store for exercising the lifecycle services.

Tables are lists of row dicts. A partitioned parent holds no rows itself;
reading it reads the union of its partitions, like PostgreSQL does. Tests
may append rows to any partition directly, which is how misfiled rows are
simulated.
"""

import copy
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Optional

from partkeeper.core.exceptions import StorageFailure
from partkeeper.models.target import LifecycleTarget
from partkeeper.storage.base import PartitionStore, RawTimestamp, StorageTransaction


class InMemoryDatabase:
    """State shared by all transactions of one fake store."""

    def __init__(self, schema: str = "public"):
        self.schema = schema
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.partitions: dict[str, list[str]] = {}
        self.bounds: dict[str, tuple[RawTimestamp, RawTimestamp]] = {}
        # (table, column) -> timestamptz; unlisted columns are inferred from their rows
        self.column_types: dict[tuple[str, str], bool] = {}

    def snapshot(self) -> tuple:
        return copy.deepcopy((self.tables, self.partitions, self.bounds))

    def restore(self, state: tuple) -> None:
        self.tables, self.partitions, self.bounds = state

    def storage_for(self, table: str) -> list[list[dict[str, Any]]]:
        """Row lists backing ``table`` (one per partition for a parent)."""
        if table in self.partitions:
            return [self.tables[p] for p in self.partitions[table]]
        if table not in self.tables:
            raise StorageFailure(f'relation "{table}" does not exist', details={"table": table})
        return [self.tables[table]]

    def rows(self, table: str) -> list[dict[str, Any]]:
        return [row for rows in self.storage_for(table) for row in rows]


class FakeTransaction(StorageTransaction):
    """Storage primitives over an :class:`InMemoryDatabase`."""

    def __init__(self, store: "InMemoryPartitionStore"):
        self._store = store
        self._db = store.db

    def _call(self, operation: str, table: Optional[str] = None) -> None:
        self._store.calls.append((operation, table))
        if (operation, table) in self._store.failures or (operation, None) in self._store.failures:
            raise StorageFailure(
                f"Injected failure in {operation}",
                details={"operation": operation, "table": table},
            )

    def _check_schema(self, schema: str) -> None:
        if schema != self._db.schema:
            raise StorageFailure(f'schema "{schema}" does not exist')

    def _delete(self, table: str, predicate: Callable[[dict[str, Any]], bool], limit: int) -> int:
        deleted = 0
        for rows in self._db.storage_for(table):
            for row in list(rows):
                if deleted >= limit:
                    return deleted
                if predicate(row):
                    rows.remove(row)
                    deleted += 1
        return deleted

    def _base_ids(self, target: LifecycleTarget, table: Optional[str] = None) -> set[Any]:
        return {row[target.id_column] for row in self._db.rows(table or target.base_table)}

    def _old_base_ids(self, target: LifecycleTarget, cutoff: RawTimestamp) -> set[Any]:
        return {
            row[target.id_column]
            for row in self._db.rows(target.base_table)
            if row[target.timestamp_column] < cutoff
        }

    def _is_orphan(self, target: LifecycleTarget, cutoff: RawTimestamp) -> Callable[[dict[str, Any]], bool]:
        existing = self._base_ids(target)

        def predicate(row: dict[str, Any]) -> bool:
            fk = row[target.dependent_fk_column]
            return (
                row[target.dependent_timestamp_column] < cutoff
                and fk is not None
                and fk not in existing
            )

        return predicate

    # Generic statements

    async def query(self, statement: Any, params: Optional[dict[str, Any]] = None) -> list[Any]:
        self._call("query")
        return []

    async def execute(self, statement: Any, params: Optional[dict[str, Any]] = None) -> int:
        self._call("execute")
        return 0

    # Catalog and DDL

    async def list_tables_matching(self, schema: str, prefix: str) -> list[str]:
        self._call("list_tables_matching", prefix)
        self._check_schema(schema)
        names = set(self._db.tables) | set(self._db.partitions)
        return sorted(name for name in names if name.startswith(prefix))

    async def table_exists(self, schema: str, table: str) -> bool:
        self._call("table_exists", table)
        self._check_schema(schema)
        return table in self._db.tables or table in self._db.partitions

    async def is_partitioned(self, schema: str, table: str) -> bool:
        self._call("is_partitioned", table)
        self._check_schema(schema)
        return table in self._db.partitions

    async def partition_parent(self, schema: str, table: str) -> Optional[str]:
        self._call("partition_parent", table)
        self._check_schema(schema)
        for parent, children in self._db.partitions.items():
            if table in children:
                return parent
        return None

    async def column_has_time_zone(self, schema: str, table: str, column: str) -> bool:
        self._call("column_has_time_zone", table)
        self._check_schema(schema)
        if (table, column) in self._db.column_types:
            return self._db.column_types[(table, column)]
        for row in self._db.rows(table):
            value = row.get(column)
            if isinstance(value, datetime):
                return value.tzinfo is not None
        return True

    async def create_range_partition(
        self,
        schema: str,
        table: str,
        partition: str,
        lower: RawTimestamp,
        upper: RawTimestamp,
    ) -> None:
        self._call("create_range_partition", partition)
        self._check_schema(schema)
        if partition in self._db.tables:
            return
        if table not in self._db.partitions:
            raise StorageFailure(f'table "{table}" is not partitioned')
        for existing in self._db.partitions[table]:
            other_lower, other_upper = self._db.bounds[existing]
            if lower < other_upper and other_lower < upper:
                raise StorageFailure(f'partition "{partition}" would overlap "{existing}"')
        self._db.tables[partition] = []
        self._db.partitions[table].append(partition)
        self._db.bounds[partition] = (lower, upper)

    async def drop_table(self, schema: str, table: str) -> None:
        self._call("drop_table", table)
        self._check_schema(schema)
        self._db.tables.pop(table, None)
        self._db.bounds.pop(table, None)
        for children in self._db.partitions.values():
            if table in children:
                children.remove(table)

    # Reads

    async def latest_timestamp(self, target: LifecycleTarget) -> Any:
        self._call("latest_timestamp", target.base_table)
        values = [row[target.timestamp_column] for row in self._db.rows(target.base_table)]
        return max(values) if values else None

    async def timestamp_bounds(self, target: LifecycleTarget, table: str) -> Optional[tuple[Any, Any]]:
        self._call("timestamp_bounds", table)
        values = [row[target.timestamp_column] for row in self._db.rows(table)]
        if not values:
            return None
        return min(values), max(values)

    async def count_dependents_of(self, target: LifecycleTarget, source_table: str) -> int:
        self._call("count_dependents_of", source_table)
        ids = self._base_ids(target, source_table)
        return sum(1 for row in self._db.rows(target.dependent_table) if row[target.dependent_fk_column] in ids)

    async def count_dependents_before(self, target: LifecycleTarget, cutoff: RawTimestamp) -> int:
        self._call("count_dependents_before", target.dependent_table)
        ids = self._old_base_ids(target, cutoff)
        return sum(1 for row in self._db.rows(target.dependent_table) if row[target.dependent_fk_column] in ids)

    async def count_rows_before(self, target: LifecycleTarget, cutoff: RawTimestamp) -> int:
        self._call("count_rows_before", target.base_table)
        return sum(1 for row in self._db.rows(target.base_table) if row[target.timestamp_column] < cutoff)

    async def count_orphans(self, target: LifecycleTarget, cutoff: RawTimestamp) -> int:
        self._call("count_orphans", target.dependent_table)
        predicate = self._is_orphan(target, cutoff)
        return sum(1 for row in self._db.rows(target.dependent_table) if predicate(row))

    # Chunked deletes

    async def delete_dependents_of(self, target: LifecycleTarget, source_table: str, limit: int) -> int:
        self._call("delete_dependents_of", source_table)
        ids = self._base_ids(target, source_table)
        return self._delete(
            target.dependent_table, lambda row: row[target.dependent_fk_column] in ids, limit
        )

    async def delete_dependents_before(
        self, target: LifecycleTarget, cutoff: RawTimestamp, limit: int
    ) -> int:
        self._call("delete_dependents_before", target.dependent_table)
        ids = self._old_base_ids(target, cutoff)
        return self._delete(
            target.dependent_table, lambda row: row[target.dependent_fk_column] in ids, limit
        )

    async def delete_rows_before(self, target: LifecycleTarget, cutoff: RawTimestamp, limit: int) -> int:
        self._call("delete_rows_before", target.base_table)
        return self._delete(
            target.base_table, lambda row: row[target.timestamp_column] < cutoff, limit
        )

    async def delete_orphans(self, target: LifecycleTarget, cutoff: RawTimestamp, limit: int) -> int:
        self._call("delete_orphans", target.dependent_table)
        return self._delete(target.dependent_table, self._is_orphan(target, cutoff), limit)


class InMemoryPartitionStore(PartitionStore):
    """Fake store with rollback-on-error transactions and failure injection.

    Usage:
        store = InMemoryPartitionStore()
        store.create_partitioned("events")
        store.fail("drop_table", "events_y2025m04")
    """

    def __init__(self, schema: str = "public"):
        self.db = InMemoryDatabase(schema)
        self.calls: list[tuple[str, Optional[str]]] = []
        self.failures: set[tuple[str, Optional[str]]] = set()
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StorageTransaction]:
        self.transactions += 1
        state = self.db.snapshot()
        try:
            yield FakeTransaction(self)
        except BaseException:
            self.db.restore(state)
            raise

    # Test helpers

    def fail(self, operation: str, table: Optional[str] = None) -> None:
        """Make ``operation`` raise StorageFailure (for ``table``, or always)."""
        self.failures.add((operation, table))

    def create_flat(self, table: str, rows: Optional[list[dict[str, Any]]] = None) -> None:
        self.db.tables[table] = list(rows or [])

    def create_partitioned(self, table: str) -> None:
        self.db.partitions[table] = []

    def add_partition(
        self,
        parent: str,
        partition: str,
        lower: RawTimestamp,
        upper: RawTimestamp,
        rows: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        self.db.tables[partition] = list(rows or [])
        self.db.partitions[parent].append(partition)
        self.db.bounds[partition] = (lower, upper)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.db.rows(table)

    def partition_names(self, parent: str) -> list[str]:
        return sorted(self.db.partitions[parent])

    def operations(self, *names: str) -> list[tuple[str, Optional[str]]]:
        """Recorded calls, optionally filtered by operation name."""
        if not names:
            return list(self.calls)
        return [call for call in self.calls if call[0] in names]
