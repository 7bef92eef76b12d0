"""Periodic sweep that releases expired leases."""

import asyncio
import logging

from jobqueue.service import JobQueueService


async def run_reaper_loop(
    job_service: JobQueueService,
    logger: logging.Logger,
    interval_seconds: int = 60,
    shutdown_event: asyncio.Event = None,
) -> None:
    """
    Run the lease reaper loop.

    Leasing reclaims expired jobs lazily, but only for job types that
    still receive lease calls. Running this loop also recovers jobs whose
    workers crashed while no one is polling for their type.

    Args:
        job_service: Job queue service
        logger: Logger instance
        interval_seconds: Time to sleep between sweeps
        shutdown_event: Optional event to signal shutdown
    """
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be positive")

    logger.info(f"Starting lease reaper (every {interval_seconds}s)")

    while True:
        # Check for shutdown signal
        if shutdown_event and shutdown_event.is_set():
            logger.info("Shutdown signal received, exiting reaper loop")
            break

        try:
            released = await job_service.reclaim_expired_leases()
            if released > 0:
                logger.info(f"Lease reaper released {released} expired jobs")
        except Exception as e:
            logger.error(f"Error in lease reaper: {str(e)}", exc_info=True)

        # Sleep before next sweep, waking early on shutdown
        if shutdown_event is None:
            await asyncio.sleep(interval_seconds)
            continue
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass
