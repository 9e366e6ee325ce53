"""PostgreSQL implementation of the storage collaborator.

Identifiers are always passed through the dialect's identifier preparer and
values are bound parameters. The only literals rendered into SQL are
partition range bounds, which PostgreSQL does not accept as parameters and
which are produced by the time codec as ``int`` or ``datetime``.

Chunked deletes select victims by ``(tableoid, ctid)`` so the same statement
works for plain and partitioned tables.
"""

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from partkeeper.core.exceptions import StorageFailure
from partkeeper.models.target import LifecycleTarget
from partkeeper.storage.base import PartitionStore, RawTimestamp, StorageTransaction

logger = structlog.get_logger(__name__)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ``value`` matches literally (escape char ``\\``)."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def render_bound(value: RawTimestamp) -> str:
    """Render a partition bound as a SQL literal.

    Raises:
        TypeError: For anything other than an int or an aware datetime.
    """
    if isinstance(value, bool):
        raise TypeError("Partition bound cannot be a boolean")
    if isinstance(value, int):
        return str(int(value))
    if isinstance(value, datetime) and value.tzinfo is not None:
        # isoformat of an aware datetime only contains digits, '-', ':', '+', 'T' and '.'
        return f"'{value.isoformat()}'"
    raise TypeError(f"Unsupported partition bound: {value!r}")


class PostgresTransaction(StorageTransaction):
    """Storage primitives bound to one open connection."""

    def __init__(self, conn: AsyncConnection):
        self._conn = conn
        self._preparer = conn.dialect.identifier_preparer

    def _quote(self, identifier: str) -> str:
        return self._preparer.quote_identifier(identifier)

    def _table(self, schema: str, table: str) -> str:
        return f"{self._quote(schema)}.{self._quote(table)}"

    async def query(self, statement: Any, params: Optional[dict[str, Any]] = None) -> Sequence[Any]:
        if isinstance(statement, str):
            statement = text(statement)
        try:
            result = await self._conn.execute(statement, params or {})
            return result.fetchall()
        except SQLAlchemyError as e:
            raise StorageFailure(
                "Query failed",
                details={"statement": str(statement), "error": str(e)},
            ) from e

    async def execute(self, statement: Any, params: Optional[dict[str, Any]] = None) -> int:
        if isinstance(statement, str):
            statement = text(statement)
        try:
            result = await self._conn.execute(statement, params or {})
            return max(result.rowcount or 0, 0)
        except SQLAlchemyError as e:
            raise StorageFailure(
                "Statement failed",
                details={"statement": str(statement), "error": str(e)},
            ) from e

    async def _scalar(self, statement: str, params: Optional[dict[str, Any]] = None) -> Any:
        rows = await self.query(statement, params)
        return rows[0][0] if rows else None

    # Catalog and DDL

    async def list_tables_matching(self, schema: str, prefix: str) -> list[str]:
        rows = await self.query(
            """
            SELECT c.relname
            FROM pg_catalog.pg_class c
            JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = :schema
            AND c.relkind IN ('r', 'p')
            AND c.relname LIKE :pattern ESCAPE '\\'
            ORDER BY c.relname
            """,
            {"schema": schema, "pattern": escape_like(prefix) + "%"},
        )
        return [row[0] for row in rows]

    async def table_exists(self, schema: str, table: str) -> bool:
        found = await self._scalar(
            """
            SELECT 1
            FROM pg_catalog.pg_class c
            JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = :schema AND c.relname = :name
            """,
            {"schema": schema, "name": table},
        )
        return found is not None

    async def is_partitioned(self, schema: str, table: str) -> bool:
        relkind = await self._scalar(
            """
            SELECT c.relkind
            FROM pg_catalog.pg_class c
            JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = :schema AND c.relname = :name
            """,
            {"schema": schema, "name": table},
        )
        # "char" columns come back as bytes from some drivers
        if isinstance(relkind, bytes):
            return relkind == b"p"
        return relkind == "p"

    async def partition_parent(self, schema: str, table: str) -> Optional[str]:
        return await self._scalar(
            """
            SELECT p.relname
            FROM pg_catalog.pg_inherits i
            JOIN pg_catalog.pg_class c ON c.oid = i.inhrelid
            JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_catalog.pg_class p ON p.oid = i.inhparent
            WHERE n.nspname = :schema AND c.relname = :name
            """,
            {"schema": schema, "name": table},
        )

    async def column_has_time_zone(self, schema: str, table: str, column: str) -> bool:
        type_name = await self._scalar(
            """
            SELECT t.typname
            FROM pg_catalog.pg_attribute a
            JOIN pg_catalog.pg_class c ON c.oid = a.attrelid
            JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_catalog.pg_type t ON t.oid = a.atttypid
            WHERE n.nspname = :schema AND c.relname = :name
            AND a.attname = :column AND NOT a.attisdropped
            """,
            {"schema": schema, "name": table, "column": column},
        )
        return type_name == "timestamptz"

    async def create_range_partition(
        self,
        schema: str,
        table: str,
        partition: str,
        lower: RawTimestamp,
        upper: RawTimestamp,
    ) -> None:
        await self.execute(
            f"CREATE TABLE IF NOT EXISTS {self._table(schema, partition)} "
            f"PARTITION OF {self._table(schema, table)} "
            f"FOR VALUES FROM ({render_bound(lower)}) TO ({render_bound(upper)})"
        )

    async def drop_table(self, schema: str, table: str) -> None:
        await self.execute(f"DROP TABLE IF EXISTS {self._table(schema, table)}")

    # Reads

    async def latest_timestamp(self, target: LifecycleTarget) -> Any:
        return await self._scalar(
            f"SELECT max({self._quote(target.timestamp_column)}) "
            f"FROM {self._table(target.schema_name, target.base_table)}"
        )

    async def timestamp_bounds(self, target: LifecycleTarget, table: str) -> Optional[tuple[Any, Any]]:
        column = self._quote(target.timestamp_column)
        rows = await self.query(
            f"SELECT min({column}), max({column}) FROM {self._table(target.schema_name, table)}"
        )
        if not rows or rows[0][0] is None:
            return None
        return rows[0][0], rows[0][1]

    def _dependents_of_clause(self, target: LifecycleTarget, source_table: str) -> str:
        return (
            f"FROM {self._table(target.schema_name, target.dependent_table)} d "
            f"WHERE d.{self._quote(target.dependent_fk_column)} IN ("
            f"SELECT s.{self._quote(target.id_column)} "
            f"FROM {self._table(target.schema_name, source_table)} s)"
        )

    def _dependents_before_clause(self, target: LifecycleTarget) -> str:
        return (
            f"FROM {self._table(target.schema_name, target.dependent_table)} d "
            f"WHERE d.{self._quote(target.dependent_fk_column)} IN ("
            f"SELECT b.{self._quote(target.id_column)} "
            f"FROM {self._table(target.schema_name, target.base_table)} b "
            f"WHERE b.{self._quote(target.timestamp_column)} < :cutoff)"
        )

    def _rows_before_clause(self, target: LifecycleTarget) -> str:
        return (
            f"FROM {self._table(target.schema_name, target.base_table)} d "
            f"WHERE d.{self._quote(target.timestamp_column)} < :cutoff"
        )

    def _orphans_clause(self, target: LifecycleTarget) -> str:
        fk = self._quote(target.dependent_fk_column)
        return (
            f"FROM {self._table(target.schema_name, target.dependent_table)} d "
            f"WHERE d.{self._quote(target.dependent_timestamp_column)} < :cutoff "
            f"AND d.{fk} IS NOT NULL "
            f"AND NOT EXISTS (SELECT 1 FROM {self._table(target.schema_name, target.base_table)} b "
            f"WHERE b.{self._quote(target.id_column)} = d.{fk})"
        )

    async def _count(self, clause: str, params: Optional[dict[str, Any]] = None) -> int:
        return int(await self._scalar(f"SELECT count(*) {clause}", params) or 0)

    async def count_dependents_of(self, target: LifecycleTarget, source_table: str) -> int:
        return await self._count(self._dependents_of_clause(target, source_table))

    async def count_dependents_before(self, target: LifecycleTarget, cutoff: RawTimestamp) -> int:
        return await self._count(self._dependents_before_clause(target), {"cutoff": cutoff})

    async def count_rows_before(self, target: LifecycleTarget, cutoff: RawTimestamp) -> int:
        return await self._count(self._rows_before_clause(target), {"cutoff": cutoff})

    async def count_orphans(self, target: LifecycleTarget, cutoff: RawTimestamp) -> int:
        return await self._count(self._orphans_clause(target), {"cutoff": cutoff})

    # Chunked deletes

    async def _delete_chunk(
        self,
        table: str,
        schema: str,
        clause: str,
        limit: int,
        params: Optional[dict[str, Any]] = None,
    ) -> int:
        statement = (
            f"DELETE FROM {self._table(schema, table)} "
            f"WHERE (tableoid, ctid) IN (SELECT d.tableoid, d.ctid {clause} LIMIT :limit)"
        )
        return await self.execute(statement, {**(params or {}), "limit": limit})

    async def delete_dependents_of(self, target: LifecycleTarget, source_table: str, limit: int) -> int:
        return await self._delete_chunk(
            target.dependent_table,
            target.schema_name,
            self._dependents_of_clause(target, source_table),
            limit,
        )

    async def delete_dependents_before(
        self, target: LifecycleTarget, cutoff: RawTimestamp, limit: int
    ) -> int:
        return await self._delete_chunk(
            target.dependent_table,
            target.schema_name,
            self._dependents_before_clause(target),
            limit,
            {"cutoff": cutoff},
        )

    async def delete_rows_before(self, target: LifecycleTarget, cutoff: RawTimestamp, limit: int) -> int:
        return await self._delete_chunk(
            target.base_table,
            target.schema_name,
            self._rows_before_clause(target),
            limit,
            {"cutoff": cutoff},
        )

    async def delete_orphans(self, target: LifecycleTarget, cutoff: RawTimestamp, limit: int) -> int:
        return await self._delete_chunk(
            target.dependent_table,
            target.schema_name,
            self._orphans_clause(target),
            limit,
            {"cutoff": cutoff},
        )


class PostgresPartitionStore(PartitionStore):
    """Partition store backed by an SQLAlchemy async engine."""

    def __init__(self, engine: AsyncEngine, lock_timeout_ms: Optional[int] = None):
        """Initialize the store.

        Args:
            engine: Async engine (asyncpg driver).
            lock_timeout_ms: Optional ``lock_timeout`` applied to every
                transaction, bounding how long DDL waits for locks.
        """
        self._engine = engine
        self._lock_timeout_ms = lock_timeout_ms

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StorageTransaction]:
        try:
            async with self._engine.begin() as conn:
                tx = PostgresTransaction(conn)
                if self._lock_timeout_ms:
                    await tx.execute(f"SET LOCAL lock_timeout = '{int(self._lock_timeout_ms)}ms'")
                yield tx
        except SQLAlchemyError as e:
            # Commit or connection errors; statement errors are wrapped by the transaction
            logger.error("storage_transaction_failed", error=str(e))
            raise StorageFailure("Transaction failed", details={"error": str(e)}) from e
