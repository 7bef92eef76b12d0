"""In-process job store with the same interface as the Postgres store."""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from jobqueue.errors import JobNotFoundError
from jobqueue.models import Job, JobStatus
from jobqueue.store import LEASE_EXPIRED_ERROR


class InMemoryJobStore:
    """
    Job store kept in a dict, for single-process deployments and tests.

    Each operation runs as one critical section under an asyncio.Lock,
    which plays the role of the database's conditional UPDATE. Jobs are
    copied on the way in and out so callers never mutate stored state.
    """

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = asyncio.Lock()

    async def insert_job(
        self,
        job_id: str,
        type: str,
        payload: Dict[str, Any],
        priority: int,
        max_attempts: int,
        next_run_at: datetime,
        now: datetime,
        created_by: Optional[str] = None,
    ) -> Job:
        job = Job(
            job_id=job_id,
            type=type,
            payload=payload,
            status=JobStatus.queued,
            priority=priority,
            attempt=0,
            max_attempts=max_attempts,
            next_run_at=next_run_at,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            if job_id in self._jobs:
                raise ValueError(f"Duplicate job id {job_id}")
            self._jobs[job_id] = job.clone()
        return job

    async def get_job(self, job_id: str) -> Job:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.clone()

    async def find_leased_job(self, job_id: str, worker_id: str) -> Optional[Job]:
        async with self._lock:
            job = self._held_by(job_id, worker_id)
            return job.clone() if job else None

    async def claim_next_job(
        self,
        worker_id: str,
        now: datetime,
        lease_expires_at: datetime,
        job_type: Optional[str] = None,
    ) -> Optional[Job]:
        async with self._lock:
            ready = [
                job
                for job in self._jobs.values()
                if _is_claimable(job, now) and (not job_type or job.type == job_type)
            ]
            if not ready:
                return None

            job = min(ready, key=lambda j: (-j.priority, j.next_run_at))
            if job.attempt >= job.max_attempts:
                job.status = JobStatus.dlq
                job.worker_id = None
                job.lease_expires_at = None
                job.last_error = dict(LEASE_EXPIRED_ERROR)
            else:
                job.status = JobStatus.leased
                job.worker_id = worker_id
                job.lease_expires_at = lease_expires_at
                job.attempt += 1
            job.updated_at = now
            return job.clone()

    async def complete_leased_job(
        self, job_id: str, worker_id: str, result: Any, now: datetime
    ) -> Optional[Job]:
        async with self._lock:
            job = self._held_by(job_id, worker_id)
            if job is None:
                return None
            job.status = JobStatus.succeeded
            job.result = result
            job.worker_id = None
            job.lease_expires_at = None
            job.updated_at = now
            return job.clone()

    async def fail_leased_job(
        self,
        job_id: str,
        worker_id: str,
        expected_attempt: int,
        status: JobStatus,
        last_error: Dict[str, Any],
        now: datetime,
        next_run_at: Optional[datetime] = None,
    ) -> Optional[Job]:
        async with self._lock:
            job = self._held_by(job_id, worker_id)
            if job is None or job.attempt != expected_attempt:
                return None
            job.status = status
            job.last_error = last_error
            if next_run_at is not None:
                job.next_run_at = next_run_at
            job.worker_id = None
            job.lease_expires_at = None
            job.updated_at = now
            return job.clone()

    async def list_jobs(
        self,
        status: Optional[str] = None,
        type: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Job], int]:
        async with self._lock:
            matches = [
                job
                for job in self._jobs.values()
                if (not status or job.status.value == status)
                and (not type or job.type == type)
            ]
            matches.sort(key=lambda j: j.created_at, reverse=True)
            return [job.clone() for job in matches[offset : offset + limit]], len(matches)

    async def count_jobs_by_status(self) -> Dict[str, int]:
        async with self._lock:
            counts = {status.value: 0 for status in JobStatus}
            for job in self._jobs.values():
                counts[job.status.value] += 1
            return counts

    async def reclaim_expired_leases(self, now: datetime) -> Tuple[int, int]:
        requeued = dead = 0
        async with self._lock:
            for job in self._jobs.values():
                if job.status != JobStatus.leased or job.lease_expires_at > now:
                    continue
                if job.attempt >= job.max_attempts:
                    job.status = JobStatus.dlq
                    job.last_error = dict(LEASE_EXPIRED_ERROR)
                    dead += 1
                else:
                    job.status = JobStatus.queued
                    requeued += 1
                job.worker_id = None
                job.lease_expires_at = None
                job.updated_at = now
        return requeued, dead

    def _held_by(self, job_id: str, worker_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job and job.status == JobStatus.leased and job.worker_id == worker_id:
            return job
        return None


def _is_claimable(job: Job, now: datetime) -> bool:
    if job.next_run_at > now:
        return False
    if job.status == JobStatus.queued:
        return True
    return job.status == JobStatus.leased and job.lease_expires_at <= now
