"""High-level service layer for job operations."""

import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import asyncpg

from jobqueue.backoff import NO_RETRY, BackoffCalculator
from jobqueue.config import JobQueueConfig
from jobqueue.errors import (
    JobNotFoundError,
    JobNotLeasedOrNotFoundError,
    PayloadValidationError,
    SchemaValidationError,
    UnknownJobTypeError,
)
from jobqueue.models import Job, JobPage, JobStatus, new_job_id
from jobqueue.registry import JobRegistry
from jobqueue.store import JobStore

MAX_LEASE_LIMIT = 10
MAX_PER_PAGE = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobQueueService:
    """High-level API for enqueueing, leasing and reporting jobs."""

    def __init__(
        self,
        registry: JobRegistry,
        store: Any,
        config: Optional[JobQueueConfig] = None,
        backoff: Optional[BackoffCalculator] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            registry: Job type registry used for validation and policies
            store: JobStore or InMemoryJobStore
            config: Queue configuration; defaults apply when omitted
            backoff: Retry delay calculator; built from config when omitted
            logger: Logger instance
            clock: Returns the current UTC time
        """
        self.registry = registry
        self.store = store
        self.config = config or JobQueueConfig(
            max_retry_attempts=registry.max_retry_attempts
        )
        self.backoff = backoff or BackoffCalculator(
            base_delay_seconds=self.config.backoff_base_seconds,
            max_attempts=self.config.max_retry_attempts,
        )
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or utcnow

        # Policies were checked against the registry's ceiling at startup
        if registry.max_retry_attempts > self.backoff.max_attempts:
            raise ValueError(
                f"Registry allows up to {registry.max_retry_attempts} attempts but "
                f"backoff stops retrying after {self.backoff.max_attempts}"
            )

    @classmethod
    def from_pool(
        cls,
        registry: JobRegistry,
        db_pool: asyncpg.Pool,
        config: Optional[JobQueueConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "JobQueueService":
        """Create a service backed by Postgres."""
        return cls(registry, JobStore(db_pool), config=config, logger=logger)

    async def enqueue(
        self,
        type: str,
        payload: Dict[str, Any],
        *,
        priority: Optional[int] = None,
        schedule_at: Optional[datetime] = None,
        max_attempts: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> Job:
        """
        Enqueue a new job.

        Args:
            type: Registered job type (e.g., "thumbnail.create")
            payload: Job payload, validated against the type's schema
            priority: 0-100, higher runs sooner (defaults to the configured mid value)
            schedule_at: Earliest time the job may run (defaults to now)
            max_attempts: Override for the type's policy max_attempts
            created_by: Identity of the producer

        Returns:
            Job: The queued job

        Raises:
            UnknownJobTypeError: If the type is not registered
            PayloadValidationError: With every violation found
        """
        violations: List[str] = []
        try:
            self.registry.validate_payload(type, payload)
        except SchemaValidationError as e:
            violations.extend(e.violations)

        if priority is not None and not _is_int_between(priority, 0, 100):
            violations.append(f"priority must be between 0 and 100, got {priority}")

        ceiling = self.backoff.max_attempts
        if max_attempts is not None and not _is_int_between(max_attempts, 1, ceiling):
            violations.append(
                f"maxAttempts must be between 1 and {ceiling}, got {max_attempts}"
            )

        if violations:
            raise PayloadValidationError(violations)

        policy = self.registry.policy_for(type)
        now = self.clock()

        job = await self.store.insert_job(
            job_id=new_job_id(),
            type=type,
            payload=payload,
            priority=self.config.default_priority if priority is None else priority,
            max_attempts=max_attempts or policy.max_attempts,
            next_run_at=_as_utc(schedule_at) if schedule_at else now,
            now=now,
            created_by=created_by,
        )

        self.logger.info(f"Enqueued job {job.job_id} of type {type}")
        return job

    async def lease(
        self,
        worker_id: str,
        job_type: Optional[str] = None,
        limit: int = 1,
        lease_duration_seconds: Optional[int] = None,
    ) -> List[Job]:
        """
        Claim up to `limit` ready jobs for a worker.

        Jobs are claimed one at a time, each with a single atomic store
        operation, and leasing stops at the first claim that finds nothing.
        An empty list means there is no work right now.
        """
        if not worker_id:
            raise ValueError("worker_id is required")
        if not 1 <= limit <= MAX_LEASE_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_LEASE_LIMIT}")

        if lease_duration_seconds is None:
            if job_type:
                lease_duration_seconds = self.registry.policy_for(
                    job_type
                ).lease_duration_seconds
            else:
                lease_duration_seconds = self.config.default_lease_seconds
        elif job_type and job_type not in self.registry:
            raise UnknownJobTypeError(job_type)

        if lease_duration_seconds <= 0:
            raise ValueError("lease_duration_seconds must be positive")

        now = self.clock()
        lease_expires_at = now + timedelta(seconds=lease_duration_seconds)

        leased: List[Job] = []
        while len(leased) < limit:
            job = await self.store.claim_next_job(
                worker_id=worker_id,
                now=now,
                lease_expires_at=lease_expires_at,
                job_type=job_type,
            )
            if job is None:
                break
            if job.status == JobStatus.dlq:
                self.logger.error(
                    f"Job {job.job_id} lease expired on its final attempt "
                    f"({job.attempt}/{job.max_attempts}), moved to dlq"
                )
                continue
            leased.append(job)

        self.logger.info(f"Worker {worker_id} leased {len(leased)} jobs")
        return leased

    async def report_success(self, job_id: str, worker_id: str, result: Any = None) -> Job:
        """
        Mark a leased job as succeeded.

        Raises:
            JobNotLeasedOrNotFoundError: If worker_id does not hold the lease
        """
        job = await self.store.complete_leased_job(
            job_id, worker_id, {} if result is None else result, self.clock()
        )
        if job is None:
            raise JobNotLeasedOrNotFoundError(job_id, worker_id)

        self.logger.info(f"Job {job_id} succeeded")
        return job

    async def report_failure(self, job_id: str, worker_id: str, error: Any = None) -> Job:
        """
        Record a failed attempt and schedule a retry or dead-letter the job.

        Raises:
            JobNotLeasedOrNotFoundError: If worker_id does not hold the lease
        """
        current = await self.store.find_leased_job(job_id, worker_id)
        if current is None:
            raise JobNotLeasedOrNotFoundError(job_id, worker_id)

        now = self.clock()
        last_error = _normalize_error(error)
        next_run_at = None

        if current.attempt >= current.max_attempts:
            status = JobStatus.dlq
        else:
            delay = self.backoff.delay_for_attempt(current.attempt + 1)
            if delay is NO_RETRY:
                status = JobStatus.dlq
            else:
                status = JobStatus.queued
                next_run_at = now + timedelta(seconds=delay)

        job = await self.store.fail_leased_job(
            job_id=job_id,
            worker_id=worker_id,
            expected_attempt=current.attempt,
            status=status,
            last_error=last_error,
            now=now,
            next_run_at=next_run_at,
        )
        if job is None:
            raise JobNotLeasedOrNotFoundError(job_id, worker_id)

        if status == JobStatus.dlq:
            self.logger.error(
                f"Job {job_id} moved to dlq after {job.attempt} attempts: "
                f"{last_error['message']}"
            )
        else:
            self.logger.warning(
                f"Job {job_id} failed (attempt {job.attempt}/{job.max_attempts}), "
                f"next run at {next_run_at.isoformat()}"
            )
        return job

    async def get_job(self, job_id: str) -> Job:
        """Get a job by ID."""
        return await self.store.get_job(job_id)

    async def get_job_status(
        self, job_id: str, requester_id: Optional[str], is_admin: bool = False
    ) -> Job:
        """
        Get a job on behalf of a requester.

        Admins may read any job; anyone else only jobs they created. A job
        the requester may not see is reported as not found.
        """
        job = await self.store.get_job(job_id)
        if not is_admin and (requester_id is None or job.created_by != requester_id):
            raise JobNotFoundError(job_id)
        return job

    async def list_jobs(
        self,
        *,
        status: Optional[str] = None,
        type: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> JobPage:
        """List jobs newest first with optional filters."""
        if status is not None:
            status = JobStatus(status).value
        page = max(page, 1)
        per_page = min(max(per_page, 1), MAX_PER_PAGE)

        jobs, total = await self.store.list_jobs(
            status=status, type=type, offset=(page - 1) * per_page, limit=per_page
        )
        return JobPage(jobs, total, page, per_page)

    async def queue_stats(self) -> Dict[str, int]:
        """Count jobs in each status."""
        return await self.store.count_jobs_by_status()

    async def reclaim_expired_leases(self) -> int:
        """
        Release every expired lease in one sweep.

        Leasing already reclaims expired jobs lazily; this sweep exists for
        job types that may have no active pollers. Returns the number of
        jobs released.
        """
        requeued, dead = await self.store.reclaim_expired_leases(self.clock())
        if requeued:
            self.logger.info(f"Requeued {requeued} jobs with expired leases")
        if dead:
            self.logger.error(f"Moved {dead} jobs with expired final leases to dlq")
        return requeued + dead


def _is_int_between(value: Any, low: int, high: int) -> bool:
    # bool is a subclass of int
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return low <= value <= high


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _normalize_error(error: Any) -> Dict[str, Any]:
    code = "worker_fail"
    if isinstance(error, BaseException):
        message = str(error) or type(error).__name__
    elif isinstance(error, Mapping):
        message = error.get("message")
        code = error.get("code") or code
    elif error:
        message = str(error)
    else:
        message = None
    return {"code": code, "message": message or "Unknown error"}
