"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from jobqueue.backoff import BackoffCalculator
from jobqueue.config import JobQueueConfig
from jobqueue.job_types import default_registry
from jobqueue.memory_store import InMemoryJobStore
from jobqueue.service import JobQueueService


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    """Clock the service reads the current time from."""
    return FakeClock()


@pytest.fixture
def registry():
    """Registry of the built-in marketplace job types."""
    return default_registry()


@pytest.fixture
def store():
    """Empty in-memory job store."""
    return InMemoryJobStore()


@pytest.fixture
def config():
    """Default queue configuration."""
    return JobQueueConfig()


@pytest.fixture
def service(registry, store, config, clock):
    """Service with jitter-free backoff and a controllable clock."""
    backoff = BackoffCalculator(
        base_delay_seconds=config.backoff_base_seconds,
        max_attempts=config.max_retry_attempts,
        jitter=lambda: 0.0,
    )
    return JobQueueService(registry, store, config=config, backoff=backoff, clock=clock)


@pytest.fixture
def thumbnail_payload():
    """Valid thumbnail.create payload."""
    return {"assetId": "asset_123", "versionNumber": 1, "sizes": [64, 256]}


@pytest.fixture
def payout_payload():
    """Valid payout.execute payload."""
    return {"batchId": "batch_1", "escrowId": "escrow_1"}
