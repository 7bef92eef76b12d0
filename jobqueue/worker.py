"""Worker logic for the job queue."""

import asyncio
import logging
from typing import Any, Optional

from jobqueue.errors import JobNotLeasedOrNotFoundError
from jobqueue.handlers import HandlerRegistry


async def run_worker_loop(
    queue: Any,
    registry: HandlerRegistry,
    worker_id: str,
    logger: logging.Logger,
    job_type: Optional[str] = None,
    batch_size: int = 1,
    lease_duration_seconds: Optional[int] = None,
    poll_interval_seconds: float = 5,
    shutdown_event: asyncio.Event = None,
) -> None:
    """
    Run the worker loop that leases jobs and executes their handlers.

    Args:
        queue: JobQueueService, or JobQueueHttpClient for a remote queue
        registry: Job handler registry
        worker_id: Identity this worker leases under
        logger: Logger instance
        job_type: Only lease jobs of this type
        batch_size: Maximum jobs to lease per poll
        lease_duration_seconds: Lease length; the queue picks one if omitted
        poll_interval_seconds: Pause after a poll that found no work
        shutdown_event: Optional event to signal shutdown
    """
    logger.info(f"Starting worker loop as {worker_id} (type={job_type or 'any'})")

    while True:
        # Check for shutdown signal
        if shutdown_event and shutdown_event.is_set():
            logger.info("Shutdown signal received, exiting worker loop")
            break

        try:
            jobs = await queue.lease(
                worker_id,
                job_type=job_type,
                limit=batch_size,
                lease_duration_seconds=lease_duration_seconds,
            )

            if not jobs:
                logger.debug("No jobs available")
                await _pause(poll_interval_seconds, shutdown_event)
                continue

            for job in jobs:
                await process_job(queue, registry, worker_id, job, logger)

        except Exception as e:
            logger.error(f"Error in worker loop: {str(e)}", exc_info=True)
            await _pause(poll_interval_seconds, shutdown_event)


async def process_job(
    queue: Any,
    registry: HandlerRegistry,
    worker_id: str,
    job: Any,
    logger: logging.Logger,
) -> None:
    """Run the handler for one leased job and report the outcome."""
    handler = registry.get_handler(job.type)
    if not handler:
        logger.error(f"No handler found for job type {job.type}")
        await _report(
            queue.report_failure(
                job.job_id,
                worker_id,
                {"code": "no_handler", "message": f"No handler for type {job.type}"},
            ),
            job,
            logger,
        )
        return

    logger.info(f"Executing job {job.job_id} (type={job.type}, attempt={job.attempt})")

    try:
        ctx = {"job": job, "worker_id": worker_id, "logger": logger}
        result = await handler(ctx, job.payload)
    except Exception as e:
        logger.error(f"Job {job.job_id} failed: {str(e)}", exc_info=True)
        await _report(
            queue.report_failure(
                job.job_id,
                worker_id,
                {"code": "worker_fail", "message": f"{type(e).__name__}: {e}"},
            ),
            job,
            logger,
        )
        return

    await _report(queue.report_success(job.job_id, worker_id, result), job, logger)
    logger.info(f"Job {job.job_id} completed successfully")


async def _report(report: Any, job: Any, logger: logging.Logger) -> None:
    try:
        await report
    except JobNotLeasedOrNotFoundError:
        # The lease expired and the job now belongs to another worker or retry
        logger.warning(f"Lost lease on job {job.job_id}, abandoning report")


async def _pause(seconds: float, shutdown_event: Optional[asyncio.Event]) -> None:
    if shutdown_event is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass
