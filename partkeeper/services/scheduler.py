"""Scheduler for periodic partition extension and retention purges."""

import asyncio
from typing import Any, Optional

import structlog

from partkeeper.config import settings
from partkeeper.core.exceptions import PartKeeperException
from partkeeper.core.logging import bind_target
from partkeeper.models.target import LifecycleTarget
from partkeeper.services.metrics_service import record_extend
from partkeeper.services.partition_extender import PartitionExtender
from partkeeper.services.purger import DependencyAwarePurger
from partkeeper.storage.base import PartitionStore

logger = structlog.get_logger(__name__)


class LifecycleScheduler:
    """Background scheduler that keeps every configured table maintained.

    Each cycle, for every target, future partitions are ensured first and the
    retention purge runs second. Cycles never overlap within one process;
    running several schedulers against the same tables is not supported.
    """

    def __init__(
        self,
        store: PartitionStore,
        targets: Optional[list[LifecycleTarget]] = None,
        interval_seconds: Optional[int] = None,
    ):
        self._store = store
        self._targets = targets if targets is not None else settings.targets
        self._interval_seconds = interval_seconds or settings.scheduler_interval_seconds
        self._extender = PartitionExtender(store)
        self._purger = DependencyAwarePurger(store)
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the scheduler."""
        if not settings.scheduler_enabled:
            logger.info("Lifecycle scheduler disabled in config")
            return

        if not self._targets:
            logger.warning("No lifecycle targets configured, scheduler not starting")
            return

        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Lifecycle scheduler started",
            targets=[t.qualified_base for t in self._targets],
            interval_seconds=self._interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Lifecycle scheduler stopped")

    async def _run_loop(self) -> None:
        """Main scheduler loop."""
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Error in scheduler loop", error=str(e))

            await asyncio.sleep(self._interval_seconds)

    async def run_once(self) -> list[dict[str, Any]]:
        """Run one maintenance cycle over all targets.

        Returns:
            One result dict per target with the extend and purge summaries
            and the error, if any, of each step.
        """
        async with self._lock:
            results = []
            for target in self._targets:
                results.append(await self._maintain(target))
            return results

    async def _maintain(self, target: LifecycleTarget) -> dict[str, Any]:
        """Extend then purge one target.

        The two steps fail independently: a failed extend still lets the purge
        run, and any error is recorded under ``extend_error`` or ``purge_error``.
        """
        result: dict[str, Any] = {
            "target": target.qualified_base,
            "extend": None,
            "purge": None,
            "extend_error": None,
            "purge_error": None,
        }
        with bind_target(target):
            try:
                extend = await self._extender.ensure_ahead(target)
                record_extend(extend)
                result["extend"] = extend.to_dict()
            except PartKeeperException as e:
                logger.error("partition_extend_failed", error=e.message, details=e.details)
                result["extend_error"] = e.message
            except Exception as e:
                logger.error("partition_extend_failed", error=str(e))
                result["extend_error"] = str(e)

            try:
                purge = await self._purger.purge(target)
                result["purge"] = purge.to_dict()
            except PartKeeperException as e:
                logger.error("retention_purge_failed", error=e.message, details=e.details)
                result["purge_error"] = e.message
            except Exception as e:
                logger.error("retention_purge_failed", error=str(e))
                result["purge_error"] = str(e)
        return result
