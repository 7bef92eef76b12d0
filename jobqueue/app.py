"""FastAPI application serving the job queue API."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg
from fastapi import FastAPI

from jobqueue.config import JobQueueConfig
from jobqueue.fastapi_router import create_jobs_router
from jobqueue.job_types import default_registry
from jobqueue.memory_store import InMemoryJobStore
from jobqueue.reaper import run_reaper_loop
from jobqueue.registry import JobRegistry
from jobqueue.service import JobQueueService
from jobqueue.store import JobStore

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[JobQueueConfig] = None,
    registry: Optional[JobRegistry] = None,
) -> FastAPI:
    """
    Build the application.

    Jobs live in Postgres when a DSN is configured and in process memory
    otherwise. When reaper_interval_seconds is set the app also sweeps
    expired leases in the background.
    """
    config = config or JobQueueConfig.from_env()
    registry = registry or default_registry(config.max_retry_attempts)
    state = {}

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db_pool = None
        if config.db_dsn:
            db_pool = await asyncpg.create_pool(config.db_dsn, min_size=2, max_size=10)
            store = JobStore(db_pool)
        else:
            logger.warning("JOB_QUEUE_DB_DSN not set, jobs are kept in memory")
            store = InMemoryJobStore()

        state["service"] = JobQueueService(registry, store, config=config, logger=logger)

        shutdown_event = asyncio.Event()
        reaper_task = None
        if config.reaper_interval_seconds:
            reaper_task = asyncio.create_task(
                run_reaper_loop(
                    state["service"],
                    logger,
                    interval_seconds=config.reaper_interval_seconds,
                    shutdown_event=shutdown_event,
                )
            )

        try:
            yield
        finally:
            shutdown_event.set()
            if reaper_task:
                await reaper_task
            if db_pool:
                await db_pool.close()
            state.clear()

    def get_job_service() -> JobQueueService:
        """Factory function to create job service."""
        if "service" not in state:
            raise RuntimeError("Application not initialized")
        return state["service"]

    app = FastAPI(title="Job Queue API", lifespan=lifespan)
    app.include_router(create_jobs_router(get_job_service, auth_token=config.auth_token))

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "job_types": registry.types()}

    return app
