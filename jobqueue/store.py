"""Postgres store layer for the job queue."""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import asyncpg

from jobqueue.errors import JobNotFoundError
from jobqueue.models import Job, JobStatus

LEASE_EXPIRED_ERROR = {
    "code": "lease_expired",
    "message": "Lease expired after the final attempt - worker may have crashed",
}


class JobStore:
    """
    Database layer for job operations.

    Every state change is a single conditional UPDATE ... RETURNING, so the
    row either matched the expected prior state and was changed, or nothing
    is returned.
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

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
        """Insert a new queued job."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO jobs (
                    job_id, type, payload, status, priority, attempt,
                    max_attempts, next_run_at, created_by, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, 0, $6, $7, $8, $9, $9)
                RETURNING *
                """,
                job_id,
                type,
                json.dumps(payload),
                JobStatus.queued.value,
                priority,
                max_attempts,
                next_run_at,
                created_by,
                now,
            )

        return self._row_to_job(row)

    async def get_job(self, job_id: str) -> Job:
        """Get a job by ID."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM jobs WHERE job_id = $1", job_id)

        if not row:
            raise JobNotFoundError(job_id)

        return self._row_to_job(row)

    async def find_leased_job(self, job_id: str, worker_id: str) -> Optional[Job]:
        """Get a job only if it is currently leased by the given worker."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT * FROM jobs
                WHERE job_id = $1 AND worker_id = $2 AND status = $3
                """,
                job_id,
                worker_id,
                JobStatus.leased.value,
            )

        return self._row_to_job(row) if row else None

    async def claim_next_job(
        self,
        worker_id: str,
        now: datetime,
        lease_expires_at: datetime,
        job_type: Optional[str] = None,
    ) -> Optional[Job]:
        """
        Atomically claim the best ready job, or return None.

        Ready means queued, or leased with an expired lease, and due. The
        candidate row is locked with FOR UPDATE SKIP LOCKED so concurrent
        claimers never pick the same job. A reclaimed job whose holder used
        the final attempt is moved to dlq instead of being leased again;
        the returned job's status tells the caller which happened.
        """
        params: List[Any] = [
            JobStatus.dlq.value,
            JobStatus.leased.value,
            worker_id,
            lease_expires_at,
            json.dumps(LEASE_EXPIRED_ERROR),
            now,
            JobStatus.queued.value,
        ]
        type_clause = ""
        if job_type:
            params.append(job_type)
            type_clause = f"AND type = ${len(params)}"

        query = f"""
            UPDATE jobs
            SET status = CASE WHEN attempt >= max_attempts THEN $1::text ELSE $2::text END,
                attempt = CASE WHEN attempt >= max_attempts THEN attempt ELSE attempt + 1 END,
                worker_id = CASE WHEN attempt >= max_attempts THEN NULL ELSE $3::text END,
                lease_expires_at = CASE
                    WHEN attempt >= max_attempts THEN NULL ELSE $4::timestamptz
                END,
                last_error = CASE
                    WHEN attempt >= max_attempts THEN $5::jsonb ELSE last_error
                END,
                updated_at = $6
            WHERE job_id = (
                SELECT job_id FROM jobs
                WHERE (status = $7 OR (status = $2 AND lease_expires_at <= $6))
                  AND next_run_at <= $6
                  {type_clause}
                ORDER BY priority DESC, next_run_at ASC
                LIMIT 1
                FOR UPDATE SKIP LOCKED
            )
            RETURNING *
        """

        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(query, *params)

        return self._row_to_job(row) if row else None

    async def complete_leased_job(
        self, job_id: str, worker_id: str, result: Any, now: datetime
    ) -> Optional[Job]:
        """Mark a job held by worker_id as succeeded."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE jobs
                SET status = $1,
                    result = $2,
                    worker_id = NULL,
                    lease_expires_at = NULL,
                    updated_at = $3
                WHERE job_id = $4 AND worker_id = $5 AND status = $6
                RETURNING *
                """,
                JobStatus.succeeded.value,
                json.dumps(result),
                now,
                job_id,
                worker_id,
                JobStatus.leased.value,
            )

        return self._row_to_job(row) if row else None

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
        """
        Requeue or dead-letter a job held by worker_id.

        The update also matches the attempt the caller based its decision
        on, so a lease lost and regained in between does not apply a stale
        transition.
        """
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE jobs
                SET status = $1,
                    last_error = $2,
                    next_run_at = COALESCE($3::timestamptz, next_run_at),
                    worker_id = NULL,
                    lease_expires_at = NULL,
                    updated_at = $4
                WHERE job_id = $5
                  AND worker_id = $6
                  AND status = $7
                  AND attempt = $8
                RETURNING *
                """,
                status.value,
                json.dumps(last_error),
                next_run_at,
                now,
                job_id,
                worker_id,
                JobStatus.leased.value,
                expected_attempt,
            )

        return self._row_to_job(row) if row else None

    async def list_jobs(
        self,
        status: Optional[str] = None,
        type: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Job], int]:
        """List jobs newest first with optional filters, plus the total match count."""
        where = " WHERE 1=1"
        params: List[Any] = []

        if status:
            params.append(status)
            where += f" AND status = ${len(params)}"

        if type:
            params.append(type)
            where += f" AND type = ${len(params)}"

        query = (
            "SELECT * FROM jobs"
            + where
            + f" ORDER BY created_at DESC OFFSET ${len(params) + 1} LIMIT ${len(params) + 2}"
        )

        async with self.db_pool.acquire() as conn:
            total = await conn.fetchval("SELECT COUNT(*) FROM jobs" + where, *params)
            rows = await conn.fetch(query, *params, offset, limit)

        return [self._row_to_job(row) for row in rows], total

    async def count_jobs_by_status(self) -> Dict[str, int]:
        """Count jobs in each status."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch("SELECT status, COUNT(*) AS n FROM jobs GROUP BY status")

        counts = {status.value: 0 for status in JobStatus}
        for row in rows:
            counts[row["status"]] = row["n"]
        return counts

    async def reclaim_expired_leases(self, now: datetime) -> Tuple[int, int]:
        """
        Release jobs whose lease has expired.

        Returns (requeued, dead_lettered). Requeued jobs keep their attempt
        count and next_run_at; jobs whose holder used the final attempt are
        dead-lettered.
        """
        async with self.db_pool.acquire() as conn:
            async with conn.transaction():
                requeued = await conn.execute(
                    """
                    UPDATE jobs
                    SET status = $1,
                        worker_id = NULL,
                        lease_expires_at = NULL,
                        updated_at = $3
                    WHERE status = $2
                      AND lease_expires_at <= $3
                      AND attempt < max_attempts
                    """,
                    JobStatus.queued.value,
                    JobStatus.leased.value,
                    now,
                )

                dead = await conn.execute(
                    """
                    UPDATE jobs
                    SET status = $1,
                        worker_id = NULL,
                        lease_expires_at = NULL,
                        last_error = $4,
                        updated_at = $3
                    WHERE status = $2
                      AND lease_expires_at <= $3
                      AND attempt >= max_attempts
                    """,
                    JobStatus.dlq.value,
                    JobStatus.leased.value,
                    now,
                    json.dumps(LEASE_EXPIRED_ERROR),
                )

        # Status strings look like "UPDATE 5"
        return _affected(requeued), _affected(dead)

    def _row_to_job(self, row: asyncpg.Record) -> Job:
        """Convert a database row to a Job model."""
        return Job(
            job_id=row["job_id"],
            type=row["type"],
            payload=_json_column(row["payload"]),
            status=JobStatus(row["status"]),
            priority=row["priority"],
            attempt=row["attempt"],
            max_attempts=row["max_attempts"],
            next_run_at=row["next_run_at"],
            worker_id=row["worker_id"],
            lease_expires_at=row["lease_expires_at"],
            result=_json_column(row["result"]),
            last_error=_json_column(row["last_error"]),
            created_by=row["created_by"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def _json_column(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


def _affected(status: str) -> int:
    return int(status.split()[-1]) if status else 0
