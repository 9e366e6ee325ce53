"""Retention cutoff computation.

The cutoff is always relative to the freshest row in the base table, never to
the wall clock, so a stalled ingestion pipeline cannot cause data to age out.
"""

from datetime import date

import structlog

from partkeeper.core.exceptions import InvalidRetentionWindow, NoData
from partkeeper.models.target import LifecycleTarget
from partkeeper.services import time_codec
from partkeeper.storage.base import PartitionStore

logger = structlog.get_logger(__name__)


def cutoff(latest_month: date, keep_months: int) -> date:
    """Return the first month that must be kept.

    Months strictly before the result are eligible for removal. With
    ``latest_month`` 2025-08 and ``keep_months`` 2 the cutoff is 2025-06.

    Raises:
        InvalidRetentionWindow: If ``keep_months`` is negative.
    """
    if keep_months < 0:
        raise InvalidRetentionWindow(details={"months_to_keep": keep_months})
    return time_codec.add_months(time_codec.truncate_to_month(latest_month), -keep_months)


class RetentionCalculator:
    """Computes retention cutoffs from the data actually stored."""

    def __init__(self, store: PartitionStore):
        self._store = store

    async def latest_month(self, target: LifecycleTarget) -> date:
        """Month of the newest base row, read fresh on every call.

        Raises:
            NoData: If the base table is empty.
        """
        async with self._store.transaction() as tx:
            latest = await tx.latest_timestamp(target)

        if latest is None:
            raise NoData(details={"table": target.qualified_base})

        return time_codec.to_month(latest, target.timestamp_representation)

    async def compute_cutoff(self, target: LifecycleTarget, keep_months: int | None = None) -> tuple[date, date]:
        """Return ``(latest_month, cutoff_month)`` for a target.

        Args:
            target: Table configuration.
            keep_months: Override for ``target.months_to_keep``.
        """
        keep = target.months_to_keep if keep_months is None else keep_months
        latest = await self.latest_month(target)
        cutoff_month = cutoff(latest, keep)

        logger.debug(
            "retention_cutoff_computed",
            table=target.qualified_base,
            latest_month=latest.isoformat(),
            months_to_keep=keep,
            cutoff=cutoff_month.isoformat(),
        )
        return latest, cutoff_month
