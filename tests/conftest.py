"""Pytest configuration and shared fixtures."""

from datetime import UTC, date, datetime
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from fakes import InMemoryPartitionStore
from partkeeper.models.target import LifecycleTarget, TimestampRepresentation
from partkeeper.services import partition_namer, time_codec


# ============================================================================
# Target Fixtures
# ============================================================================


@pytest.fixture
def events_target() -> LifecycleTarget:
    """Partitioned events table with a tags table referencing it."""
    return LifecycleTarget(
        base_table="events",
        dependent_table="event_tags",
        id_column="event_id",
        timestamp_column="created_at",
        timestamp_representation=TimestampRepresentation.NATIVE_TIMESTAMP,
        months_to_keep=2,
        chunk_size=2,  # Small chunks so deletes take several rounds
    )


@pytest.fixture
def millis_target() -> LifecycleTarget:
    """Same layout as ``events_target`` with epoch-millisecond timestamps."""
    return LifecycleTarget(
        base_table="readings",
        dependent_table="reading_notes",
        id_column="reading_id",
        timestamp_column="ts",
        timestamp_representation=TimestampRepresentation.EPOCH_MILLIS,
        months_to_keep=2,
        chunk_size=3,
    )


# ============================================================================
# Store Fixtures
# ============================================================================


def encode(moment: datetime, target: LifecycleTarget, naive: bool = False) -> Any:
    """Encode an aware datetime in the target's representation.

    With ``naive`` native values are stored without tzinfo, as a
    ``timestamp without time zone`` column returns them.
    """
    if target.timestamp_representation == TimestampRepresentation.NATIVE_TIMESTAMP:
        return moment.replace(tzinfo=None) if naive else moment
    seconds = int(moment.timestamp())
    if target.timestamp_representation == TimestampRepresentation.EPOCH_MILLIS:
        return seconds * 1000
    return seconds


@pytest.fixture
def make_store() -> Callable[..., InMemoryPartitionStore]:
    """Factory fixture building a partitioned base table with dependents.

    Usage:
        def test_purge(make_store, events_target):
            store = make_store(events_target, months=[(2025, 3), (2025, 4)], rows_per_month=3)

    Every base row gets ``dependents_per_row`` dependent rows carrying the
    same timestamp. Row ids look like ``"2025-03-0"``.
    ``naive`` stores native timestamps without tzinfo.
    """

    def _make_store(
        target: LifecycleTarget,
        months: List[tuple[int, int]],
        rows_per_month: int = 2,
        dependents_per_row: int = 1,
        partitioned: bool = True,
        empty_months: Optional[List[tuple[int, int]]] = None,
        naive: bool = False,
    ) -> InMemoryPartitionStore:
        store = InMemoryPartitionStore()
        representation = target.timestamp_representation
        dependents: List[Dict[str, Any]] = []
        flat_rows: List[Dict[str, Any]] = []

        if partitioned:
            store.create_partitioned(target.base_table)

        for year, month in sorted(set(months) | set(empty_months or [])):
            rows = []
            if (year, month) in months:
                for i in range(rows_per_month):
                    moment = datetime(year, month, 10 + i, 12, 0, tzinfo=UTC)
                    row_id = f"{year}-{month:02d}-{i}"
                    rows.append({target.id_column: row_id, target.timestamp_column: encode(moment, target, naive)})
                    for j in range(dependents_per_row):
                        dependents.append(
                            {
                                "note_id": f"{row_id}/{j}",
                                target.dependent_fk_column: row_id,
                                target.dependent_timestamp_column: encode(moment, target, naive),
                            }
                        )
            if partitioned:
                lower, upper = time_codec.month_bounds(date(year, month, 1), representation)
                store.add_partition(
                    target.base_table,
                    partition_namer.name(target.base_table, year, month),
                    lower,
                    upper,
                    rows,
                )
            else:
                flat_rows.extend(rows)

        if not partitioned:
            store.create_flat(target.base_table, flat_rows)
        if target.has_dependent:
            store.create_flat(target.dependent_table, dependents)
        return store

    return _make_store


@pytest.fixture
def store() -> InMemoryPartitionStore:
    """Empty in-memory store."""
    return InMemoryPartitionStore()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def mock_connection() -> MagicMock:
    """Create a mock async connection carrying a real PostgreSQL dialect.

    The dialect is real so identifier quoting is exercised; ``execute`` is an
    AsyncMock whose result returns no rows and a rowcount of 0.
    """
    conn = MagicMock()
    conn.dialect = postgresql.dialect()

    mock_result = MagicMock()
    mock_result.fetchall = MagicMock(return_value=[])
    mock_result.rowcount = 0

    conn.execute = AsyncMock(return_value=mock_result)
    return conn


@pytest.fixture
def mock_engine(mock_connection) -> MagicMock:
    """Create a mock async engine whose ``begin()`` yields ``mock_connection``."""
    engine = MagicMock()
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=mock_connection)
    context.__aexit__ = AsyncMock(return_value=False)
    engine.begin = MagicMock(return_value=context)
    return engine


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def utc() -> Callable[..., datetime]:
    """Shorthand for building aware UTC datetimes."""

    def _utc(year: int, month: int, day: int = 1, hour: int = 0, minute: int = 0) -> datetime:
        return datetime(year, month, day, hour, minute, tzinfo=UTC)

    return _utc
