"""CLI entrypoint and programmatic interface for worker."""

import argparse
import asyncio
import importlib
import logging
import os
import signal
import socket
import sys
from typing import Optional

import asyncpg

from jobqueue.config import JobQueueConfig
from jobqueue.handlers import HandlerRegistry, handler_registry
from jobqueue.http_client import JobQueueHttpClient
from jobqueue.job_types import default_registry
from jobqueue.service import JobQueueService
from jobqueue.worker import run_worker_loop


def setup_logging():
    """Setup logging configuration."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def create_db_pool(config: JobQueueConfig):
    """Create database connection pool."""
    return await asyncpg.create_pool(config.require_db_dsn(), min_size=2, max_size=10)


def default_worker_id() -> str:
    """Worker identity unique per host and process."""
    return f"{socket.gethostname()}-{os.getpid()}"


def load_handlers(handlers_module: Optional[str] = None):
    """Load job handlers from the given or configured module."""
    handlers_module = handlers_module or os.getenv("JOB_QUEUE_HANDLERS_MODULE")
    if handlers_module:
        try:
            importlib.import_module(handlers_module)
            logging.info(f"Loaded handlers from {handlers_module}")
        except ImportError as e:
            logging.warning(f"Failed to import handlers module {handlers_module}: {e}")
    else:
        logging.warning(
            "JOB_QUEUE_HANDLERS_MODULE not set, no handlers will be available"
        )


async def run_worker(
    worker_id: Optional[str] = None,
    job_type: Optional[str] = None,
    config: Optional[JobQueueConfig] = None,
    db_pool=None,
    api_url: Optional[str] = None,
    registry: Optional[HandlerRegistry] = None,
    logger: Optional[logging.Logger] = None,
    shutdown_event: Optional[asyncio.Event] = None,
    batch_size: int = 1,
    poll_interval_seconds: float = 5,
    handlers_module: Optional[str] = None,
):
    """
    Run the worker programmatically.

    The worker talks to Postgres directly unless api_url is given, in
    which case it leases and reports through the HTTP API.

    Example:
        ```python
        from jobqueue.worker_main import run_worker
        import asyncio

        asyncio.run(run_worker(
            job_type="thumbnail.create",
            handlers_module="myapp.jobs.handlers",
        ))
        ```
    """
    if config is None:
        config = JobQueueConfig.from_env()

    if logger is None:
        logger = logging.getLogger(__name__)

    if registry is None:
        registry = handler_registry

    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    worker_id = worker_id or default_worker_id()
    load_handlers(handlers_module)

    if api_url:
        queue = JobQueueHttpClient(api_url, auth_token=config.auth_token)
        await run_worker_loop(
            queue,
            registry,
            worker_id,
            logger,
            job_type=job_type,
            batch_size=batch_size,
            poll_interval_seconds=poll_interval_seconds,
            shutdown_event=shutdown_event,
        )
        return

    db_pool_provided = db_pool is not None
    if db_pool is None:
        db_pool = await create_db_pool(config)

    try:
        queue = JobQueueService.from_pool(
            default_registry(config.max_retry_attempts), db_pool, config, logger
        )
        await run_worker_loop(
            queue,
            registry,
            worker_id,
            logger,
            job_type=job_type,
            batch_size=batch_size,
            poll_interval_seconds=poll_interval_seconds,
            shutdown_event=shutdown_event,
        )
    finally:
        if not db_pool_provided and db_pool:
            await db_pool.close()


def main():
    """Main entrypoint for worker."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Job Queue Worker")
    parser.add_argument("--worker-id", help="Worker identity (default: host-pid)")
    parser.add_argument("--type", dest="job_type", help="Only lease jobs of this type")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=1,
        help="Max jobs to lease per poll, 1-10 (default: 1)",
    )
    parser.add_argument(
        "--poll-interval-seconds",
        type=float,
        default=5,
        help="Pause after an empty poll (default: 5)",
    )
    parser.add_argument(
        "--api-url",
        help="Lease and report through this job queue HTTP API instead of Postgres",
    )
    parser.add_argument("--handlers-module", help="Module that registers handlers")

    args = parser.parse_args()

    try:
        config = JobQueueConfig.from_env()
        if not args.api_url:
            config.require_db_dsn()
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    # Setup shutdown event
    shutdown_event = asyncio.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    async def run():
        """Async main function."""
        try:
            await run_worker(
                worker_id=args.worker_id,
                job_type=args.job_type,
                config=config,
                api_url=args.api_url,
                logger=logger,
                shutdown_event=shutdown_event,
                batch_size=args.batch_size,
                poll_interval_seconds=args.poll_interval_seconds,
                handlers_module=args.handlers_module,
            )
        except Exception as e:
            logger.error(f"Fatal error in worker: {e}", exc_info=True)
            sys.exit(1)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
