"""
Background worker.

    python -m lotto_ledger.worker

Starts the scheduler and runs until SIGINT/SIGTERM. On shutdown new job runs
are rejected, in-flight ones get SHUTDOWN_TIMEOUT_SECONDS to finish, then the
scheduler stops and the connection pool is closed.
"""
import asyncio
import logging
import signal

from lotto_ledger import database
from lotto_ledger.config import settings
from lotto_ledger.core.active_operations import get_active_operations
from lotto_ledger.core.connection_warmup import warmup_connection
from lotto_ledger.jobs.scheduler import start_scheduler, shutdown_scheduler

logger = logging.getLogger(__name__)


async def main() -> None:
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} worker")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    if not await warmup_connection(context="worker-startup"):
        logger.warning("Database not reachable at startup; scheduled runs will retry on their own")

    if settings.SCHEDULER_ENABLED:
        await start_scheduler()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

    await stop_event.wait()
    logger.info("Shutdown signal received")

    registry = get_active_operations()
    registry.mark_shutting_down()
    await registry.wait_for_completion(settings.SHUTDOWN_TIMEOUT_SECONDS)

    shutdown_scheduler()
    await database.engine.dispose()
    logger.info("Worker stopped")


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    asyncio.run(main())
