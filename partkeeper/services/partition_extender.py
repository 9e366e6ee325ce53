"""Creation of monthly partitions ahead of incoming data.

PostgreSQL rejects inserts that have no matching partition, so the scheduler
keeps the current month and a few future months ready at all times.
"""

from datetime import UTC, date, datetime
from typing import Optional

import structlog

from partkeeper.core.exceptions import InvalidRange
from partkeeper.models.summary import ExtendSummary
from partkeeper.models.target import LifecycleTarget
from partkeeper.services import partition_namer, time_codec
from partkeeper.storage.base import PartitionStore

logger = structlog.get_logger(__name__)


class PartitionExtender:
    """Ensures monthly partitions exist for a base table."""

    def __init__(self, store: PartitionStore):
        self._store = store

    async def ensure(self, target: LifecycleTarget, year: int, month: int) -> bool:
        """Create the partition covering one month if it does not exist.

        Returns:
            True if the partition was created, False if a table with its name
            already existed. A same-named table that is not attached to the
            base table is left alone and logged as a warning.
        """
        self._validate_month(year, month)
        partition = partition_namer.name(target.base_table, year, month)
        lower, upper = time_codec.month_bounds(
            time_codec.month_start(year, month), target.timestamp_representation
        )

        async with self._store.transaction() as tx:
            if await tx.table_exists(target.schema_name, partition):
                parent = await tx.partition_parent(target.schema_name, partition)
                if parent != target.base_table:
                    logger.warning(
                        "partition_name_taken_by_unattached_table",
                        table=target.qualified_base,
                        partition=partition,
                        attached_to=parent,
                    )
                return False
            await tx.create_range_partition(
                target.schema_name, target.base_table, partition, lower, upper
            )

        logger.info(
            "partition_created",
            table=target.qualified_base,
            partition=partition,
            lower=str(lower),
            upper=str(upper),
        )
        return True

    async def ensure_range(
        self,
        target: LifecycleTarget,
        start_year: int,
        start_month: int,
        end_year: int,
        end_month: int,
    ) -> ExtendSummary:
        """Ensure partitions for every month from start to end, inclusive.

        Raises:
            InvalidRange: If either bound is invalid or the end precedes the
                start. Nothing is created in that case.
        """
        self._validate_month(start_year, start_month)
        self._validate_month(end_year, end_month)
        start = time_codec.month_start(start_year, start_month)
        end = time_codec.month_start(end_year, end_month)
        if end < start:
            raise InvalidRange(
                "End month precedes start month",
                details={"start": start.isoformat(), "end": end.isoformat()},
            )
        # Over-long names fail here, before any DDL runs
        partition_namer.name(target.base_table, end.year, end.month)

        summary = ExtendSummary(target=target.qualified_base)
        for month in time_codec.iter_months(start, end):
            created = await self.ensure(target, month.year, month.month)
            name = partition_namer.name(target.base_table, month.year, month.month)
            if created:
                summary.created.append(name)
            else:
                summary.existing.append(name)

        logger.info(
            "partition_range_ensured",
            table=target.qualified_base,
            start=start.isoformat(),
            end=end.isoformat(),
            created=len(summary.created),
            existing=len(summary.existing),
        )
        return summary

    async def ensure_ahead(
        self,
        target: LifecycleTarget,
        months_ahead: Optional[int] = None,
        today: Optional[date] = None,
    ) -> ExtendSummary:
        """Ensure the current UTC month and ``months_ahead`` future months.

        Flat (non-partitioned) tables are left untouched.
        """
        ahead = target.months_ahead if months_ahead is None else months_ahead
        if ahead < 0:
            raise InvalidRange("months_ahead must be 0 or greater", details={"months_ahead": ahead})

        async with self._store.transaction() as tx:
            partitioned = await tx.is_partitioned(target.schema_name, target.base_table)
        if not partitioned:
            logger.warning("table_not_partitioned_skipping_extend", table=target.qualified_base)
            return ExtendSummary(target=target.qualified_base)

        current = time_codec.truncate_to_month(today or datetime.now(UTC))
        last = time_codec.add_months(current, ahead)
        return await self.ensure_range(target, current.year, current.month, last.year, last.month)

    @staticmethod
    def _validate_month(year: int, month: int) -> None:
        # Upper bound of 9999-12 would fall outside the calendar
        if not (1 <= month <= 12 and 1 <= year <= 9999) or (year, month) == (9999, 12):
            raise InvalidRange(
                "Month out of range",
                details={"year": year, "month": month},
            )
