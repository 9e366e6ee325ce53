"""Lifecycle worker entry point.

This module runs as a separate process that periodically extends partitions
and enforces retention for every configured table.
"""

import asyncio
import signal

import structlog

from partkeeper.config import settings
from partkeeper.core.logging import setup_logging
from partkeeper.db.session import close_db, get_partition_store, init_db
from partkeeper.services.scheduler import LifecycleScheduler

logger = structlog.get_logger()


class LifecycleWorker:
    """Main lifecycle worker process."""

    def __init__(self):
        self._shutdown_event: asyncio.Event = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._scheduler: LifecycleScheduler | None = None

    def _signal_handler(self, sig: signal.Signals) -> None:
        """Handle shutdown signals."""
        logger.info("shutdown_signal_received", signal=sig.name)
        self._shutdown_event.set()

    async def run(self) -> None:
        """Run the lifecycle worker."""
        setup_logging(component="worker")

        logger.info(
            "lifecycle_worker_starting",
            debug=settings.debug,
            targets=len(settings.targets),
        )

        self._loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                self._loop.add_signal_handler(
                    sig,
                    lambda s=sig: self._signal_handler(s),
                )
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f, sig=sig: self._signal_handler(sig))

        try:
            await init_db()
            logger.info("database_connected")

            self._scheduler = LifecycleScheduler(get_partition_store())
            await self._scheduler.start()

            await self._shutdown_event.wait()

        except Exception as e:
            logger.error("lifecycle_worker_error", error=str(e))
            raise
        finally:
            logger.info("lifecycle_worker_shutting_down")

            if self._scheduler:
                await self._scheduler.stop()
            await close_db()

            logger.info("lifecycle_worker_stopped")


def main() -> None:
    """Entry point for the lifecycle worker."""
    worker = LifecycleWorker()
    asyncio.run(worker.run())


if __name__ == "__main__":
    main()
