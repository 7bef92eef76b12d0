"""Unit tests for the lease reaper."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from jobqueue.job_types import THUMBNAIL_CREATE
from jobqueue.models import JobStatus
from jobqueue.reaper import run_reaper_loop

logger = logging.getLogger("test_reaper")


@pytest.mark.asyncio
async def test_reaper_stops_immediately_when_shutdown_set():
    """Test that a set shutdown event stops the loop before any sweep."""
    job_service = MagicMock()
    job_service.reclaim_expired_leases = AsyncMock(return_value=0)
    shutdown_event = asyncio.Event()
    shutdown_event.set()

    await run_reaper_loop(job_service, logger, interval_seconds=1, shutdown_event=shutdown_event)

    job_service.reclaim_expired_leases.assert_not_called()


@pytest.mark.asyncio
async def test_reaper_sweeps_and_survives_errors():
    """Test that sweep errors are logged and the loop keeps going."""
    shutdown_event = asyncio.Event()
    calls = []

    async def reclaim():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("db down")
        shutdown_event.set()
        return 2

    job_service = MagicMock()
    job_service.reclaim_expired_leases = reclaim

    await asyncio.wait_for(
        run_reaper_loop(
            job_service, logger, interval_seconds=0.01, shutdown_event=shutdown_event
        ),
        timeout=5,
    )

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_reaper_releases_expired_jobs(service, clock, thumbnail_payload):
    """Test a sweep against the in-memory service."""
    job = await service.enqueue(THUMBNAIL_CREATE, thumbnail_payload)
    await service.lease("worker-a", lease_duration_seconds=30)
    clock.advance(60)

    shutdown_event = asyncio.Event()
    original = service.reclaim_expired_leases

    async def reclaim_once():
        released = await original()
        shutdown_event.set()
        return released

    service.reclaim_expired_leases = reclaim_once

    await asyncio.wait_for(
        run_reaper_loop(service, logger, interval_seconds=1, shutdown_event=shutdown_event),
        timeout=5,
    )

    stored = await service.get_job(job.job_id)
    assert stored.status == JobStatus.queued
    assert stored.attempt == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("interval_seconds", [0, -5])
async def test_reaper_rejects_non_positive_interval(interval_seconds):
    """Test that the loop refuses an interval that would never sleep."""
    job_service = MagicMock()
    job_service.reclaim_expired_leases = AsyncMock(return_value=0)

    with pytest.raises(ValueError, match="interval_seconds"):
        await run_reaper_loop(job_service, logger, interval_seconds=interval_seconds)

    job_service.reclaim_expired_leases.assert_not_called()
