"""CLI entrypoint for the lease reaper."""

import asyncio
import logging
import signal
import sys

from jobqueue.config import JobQueueConfig
from jobqueue.job_types import default_registry
from jobqueue.reaper import run_reaper_loop
from jobqueue.service import JobQueueService
from jobqueue.worker_main import create_db_pool, setup_logging

DEFAULT_INTERVAL_SECONDS = 60


def main():
    """Main entrypoint for the lease reaper."""
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config = JobQueueConfig.from_env()
        config.require_db_dsn()
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    interval = config.reaper_interval_seconds or DEFAULT_INTERVAL_SECONDS

    # Setup shutdown event
    shutdown_event = asyncio.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    async def run():
        """Async main function."""
        db_pool = None
        try:
            logger.info("Creating database connection pool...")
            db_pool = await create_db_pool(config)

            job_service = JobQueueService.from_pool(
                default_registry(config.max_retry_attempts), db_pool, config, logger
            )
            await run_reaper_loop(
                job_service,
                logger,
                interval_seconds=interval,
                shutdown_event=shutdown_event,
            )
        except Exception as e:
            logger.error(f"Fatal error in reaper: {e}", exc_info=True)
            sys.exit(1)
        finally:
            if db_pool:
                logger.info("Closing database connection pool...")
                await db_pool.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
