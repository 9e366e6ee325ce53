"""Dependency-aware retention purge.

Old data is retired in an order that never leaves dependent rows pointing at
vanished base rows for longer than one sweep:

Partitioned base table:
    1. discover partitions by name prefix
    2. parse each name (malformed names are skipped)
    3. validate that the partition's rows all fall in its named month
       (mismatches are skipped as unsafe, never force-dropped)
    4. keep partitions at or after the cutoff
    5. retire: delete dependents of the partition, then drop the partition
    6. sweep orphaned dependent rows older than the cutoff

Flat base table:
    delete dependents of old base rows, delete old base rows, sweep.

Eligibility is recomputed from the database on every run, so running the
purge again after a partial failure only touches what is still eligible.
"""

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import date
from typing import Optional

import structlog

from partkeeper.core.exceptions import (
    InvalidRepresentation,
    MalformedPartitionName,
    NoData,
    StorageFailure,
    UnsafePartition,
)
from partkeeper.models.summary import (
    PHASE_BASE,
    PHASE_DEPENDENTS,
    PHASE_ORPHANS,
    PartitionOutcome,
    PurgeMode,
    PurgeStatus,
    PurgeSummary,
    SkipReason,
)
from partkeeper.models.target import LifecycleTarget, TimestampRepresentation
from partkeeper.services import partition_namer, time_codec
from partkeeper.services.metrics_service import record_purge
from partkeeper.services.retention_calculator import RetentionCalculator
from partkeeper.storage.base import PartitionStore, RawTimestamp, StorageTransaction

logger = structlog.get_logger(__name__)

ChunkOperation = Callable[[StorageTransaction, int], Awaitable[int]]


class PartitionCatalog:
    """Lazy listing of tables that look like partitions of a base table.

    Each iteration queries the catalog again, so the listing can be restarted
    and always reflects current state.
    """

    def __init__(self, store: PartitionStore, target: LifecycleTarget):
        self._store = store
        self._target = target

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        async with self._store.transaction() as tx:
            names = await tx.list_tables_matching(
                self._target.schema_name,
                partition_namer.prefix(self._target.base_table),
            )
        for name in names:
            yield name


class DependencyAwarePurger:
    """Retires data older than the retention cutoff."""

    def __init__(self, store: PartitionStore, calculator: Optional[RetentionCalculator] = None):
        self._store = store
        self._calculator = calculator or RetentionCalculator(store)

    async def purge(
        self,
        target: LifecycleTarget,
        months_to_keep: Optional[int] = None,
        dry_run: bool = False,
    ) -> PurgeSummary:
        """Run one purge cycle for a target.

        Args:
            target: Table configuration.
            months_to_keep: Override for ``target.months_to_keep``.
            dry_run: Report what would be removed without changing anything.

        Returns:
            Summary of the run. An empty base table yields status ``no_data``.

        Raises:
            StorageFailure: If the mode or the cutoff cannot be determined.
        """
        started = time.monotonic()
        mode = await self._resolve_mode(target)
        summary = PurgeSummary(target=target.qualified_base, mode=mode, dry_run=dry_run)
        log = logger.bind(table=target.qualified_base, mode=mode.value, dry_run=dry_run)

        try:
            latest, cutoff = await self._calculator.compute_cutoff(target, months_to_keep)
        except NoData:
            log.info("purge_skipped_no_data")
            summary.status = PurgeStatus.NO_DATA
            return self._finish(summary, started)

        summary.latest_month = latest
        summary.cutoff = cutoff
        log.info("purge_started", latest_month=latest.isoformat(), cutoff=cutoff.isoformat())

        if mode == PurgeMode.PARTITIONED:
            await self._purge_partitions(target, cutoff, summary)
        else:
            await self._purge_rows(target, cutoff, summary)

        summary.finalize()
        self._finish(summary, started)
        log.info(
            "purge_finished",
            status=summary.status.value,
            dropped=len(summary.dropped),
            skipped=len(summary.skipped),
            failed=len(summary.failed),
            rows_deleted=summary.rows_deleted,
        )
        return summary

    async def _resolve_mode(self, target: LifecycleTarget) -> PurgeMode:
        if target.partitioned is not None:
            partitioned = target.partitioned
        else:
            async with self._store.transaction() as tx:
                partitioned = await tx.is_partitioned(target.schema_name, target.base_table)
        return PurgeMode.PARTITIONED if partitioned else PurgeMode.FLAT

    @staticmethod
    def _finish(summary: PurgeSummary, started: float) -> PurgeSummary:
        summary.duration_seconds = time.monotonic() - started
        record_purge(summary)
        return summary

    # Partitioned mode

    async def _purge_partitions(self, target: LifecycleTarget, cutoff: date, summary: PurgeSummary) -> None:
        try:
            async for name in PartitionCatalog(self._store, target):
                await self._process_partition(target, name, cutoff, summary)
        except StorageFailure as e:
            logger.error("partition_discovery_failed", table=target.qualified_base, error=e.message)
            summary.errors.append(f"discover: {e.message}")

        await self._sweep(target, cutoff, summary)

    async def _process_partition(
        self, target: LifecycleTarget, name: str, cutoff: date, summary: PurgeSummary
    ) -> None:
        try:
            year, month = partition_namer.parse(target.base_table, name)
        except MalformedPartitionName as e:
            logger.info("partition_skipped_malformed", partition=name)
            summary.skipped.append(PartitionOutcome(name, SkipReason.MALFORMED.value, e.message))
            return

        declared = time_codec.month_start(year, month)
        try:
            await self._validate(target, name, declared)
        except UnsafePartition as e:
            logger.warning(
                "partition_unsafe_requires_attention",
                partition=name,
                declared_month=declared.isoformat(),
                **e.details,
            )
            summary.skipped.append(PartitionOutcome(name, SkipReason.UNSAFE.value, e.message))
            return
        except StorageFailure as e:
            logger.error("partition_validation_failed", partition=name, error=e.message)
            summary.failed.append(PartitionOutcome(name, "validate", e.message))
            return

        if declared >= cutoff:
            summary.retained.append(name)
            return

        summary.eligible.append(name)
        if summary.dry_run:
            if target.has_dependent:
                try:
                    async with self._store.transaction() as tx:
                        summary.add_rows(PHASE_DEPENDENTS, await tx.count_dependents_of(target, name))
                except StorageFailure as e:
                    summary.failed.append(PartitionOutcome(name, "count", e.message))
            return

        await self._retire(target, name, summary)

    async def _validate(self, target: LifecycleTarget, name: str, declared: date) -> None:
        """Check that every row of the partition lies in its declared month.

        Raises:
            UnsafePartition: On any mismatch, or if the stored values cannot be decoded.
        """
        async with self._store.transaction() as tx:
            bounds = await tx.timestamp_bounds(target, name)
        if bounds is None:
            return  # Empty partition

        representation = target.timestamp_representation
        try:
            first = time_codec.to_month(bounds[0], representation)
            last = time_codec.to_month(bounds[1], representation)
        except InvalidRepresentation as e:
            raise UnsafePartition(
                "Partition holds values that cannot be decoded",
                details={"error": e.message},
            ) from e

        if first != declared or last != declared:
            raise UnsafePartition(
                "Partition holds rows outside its named month",
                details={"first_month": first.isoformat(), "last_month": last.isoformat()},
            )

    async def _retire(self, target: LifecycleTarget, name: str, summary: PurgeSummary) -> None:
        """Delete the partition's dependents, then drop the partition."""
        try:
            if target.has_dependent:
                await self._drain(
                    lambda tx, limit: tx.delete_dependents_of(target, name, limit),
                    target.chunk_size,
                    summary,
                    PHASE_DEPENDENTS,
                )
            async with self._store.transaction() as tx:
                await tx.drop_table(target.schema_name, name)
        except StorageFailure as e:
            logger.error("partition_retire_failed", partition=name, error=e.message)
            summary.failed.append(PartitionOutcome(name, "retire", e.message))
            return

        summary.dropped.append(name)
        logger.info("partition_dropped", table=target.qualified_base, partition=name)

    # Flat mode

    async def _purge_rows(self, target: LifecycleTarget, cutoff: date, summary: PurgeSummary) -> None:
        try:
            cutoff_raw = await self._encode_cutoff(target, cutoff, target.base_table, target.timestamp_column)
        except StorageFailure as e:
            logger.error("cutoff_encoding_failed", table=target.qualified_base, error=e.message)
            summary.errors.append(f"cutoff: {e.message}")
            return

        if summary.dry_run:
            try:
                async with self._store.transaction() as tx:
                    if target.has_dependent:
                        summary.add_rows(PHASE_DEPENDENTS, await tx.count_dependents_before(target, cutoff_raw))
                    summary.add_rows(PHASE_BASE, await tx.count_rows_before(target, cutoff_raw))
            except StorageFailure as e:
                summary.errors.append(f"count: {e.message}")
                return
            await self._sweep(target, cutoff, summary)
            return

        phase = PHASE_DEPENDENTS
        try:
            if target.has_dependent:
                await self._drain(
                    lambda tx, limit: tx.delete_dependents_before(target, cutoff_raw, limit),
                    target.chunk_size,
                    summary,
                    PHASE_DEPENDENTS,
                )
            # Base rows only go once their dependents are gone
            phase = PHASE_BASE
            await self._drain(
                lambda tx, limit: tx.delete_rows_before(target, cutoff_raw, limit),
                target.chunk_size,
                summary,
                PHASE_BASE,
            )
        except StorageFailure as e:
            logger.error("purge_phase_failed", table=target.qualified_base, phase=phase, error=e.message)
            summary.errors.append(f"{phase}: {e.message}")
            return

        await self._sweep(target, cutoff, summary)

    # Shared

    async def _sweep(self, target: LifecycleTarget, cutoff: date, summary: PurgeSummary) -> None:
        """Remove dependent rows older than the cutoff whose base row is gone."""
        if not target.has_dependent:
            return
        try:
            cutoff_raw = await self._encode_cutoff(
                target, cutoff, target.dependent_table, target.dependent_timestamp_column
            )
            if summary.dry_run:
                async with self._store.transaction() as tx:
                    summary.add_rows(PHASE_ORPHANS, await tx.count_orphans(target, cutoff_raw))
                return
            swept = await self._drain(
                lambda tx, limit: tx.delete_orphans(target, cutoff_raw, limit),
                target.chunk_size,
                summary,
                PHASE_ORPHANS,
            )
        except StorageFailure as e:
            logger.error("orphan_sweep_failed", table=target.qualified_base, error=e.message)
            summary.errors.append(f"{PHASE_ORPHANS}: {e.message}")
            return

        if swept:
            logger.info("orphans_swept", table=target.qualified_base, rows=swept)

    async def _encode_cutoff(
        self, target: LifecycleTarget, cutoff: date, table: str, column: str
    ) -> RawTimestamp:
        """Encode the cutoff for comparison against ``table.column``.

        Native columns get an aware value for ``timestamptz`` and a naive UTC
        value for ``timestamp``.
        """
        representation = target.timestamp_representation
        if representation != TimestampRepresentation.NATIVE_TIMESTAMP:
            return time_codec.from_month(cutoff, representation)

        with_time_zone = target.timestamp_with_time_zone
        if with_time_zone is None:
            async with self._store.transaction() as tx:
                with_time_zone = await tx.column_has_time_zone(target.schema_name, table, column)
        return time_codec.from_month(cutoff, representation, with_time_zone=with_time_zone)

    async def _drain(
        self,
        operation: ChunkOperation,
        chunk_size: int,
        summary: PurgeSummary,
        phase: str,
    ) -> int:
        """Repeat a chunked delete, one transaction per chunk, until it runs dry."""
        total = 0
        while True:
            async with self._store.transaction() as tx:
                deleted = await operation(tx, chunk_size)
            total += deleted
            summary.add_rows(phase, deleted)
            if deleted < chunk_size:
                return total
