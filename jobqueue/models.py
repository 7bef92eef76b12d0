"""Data models for jobs."""

import copy
import secrets
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class JobStatus(str, Enum):
    """Job status values."""

    queued = "queued"
    leased = "leased"
    succeeded = "succeeded"
    dlq = "dlq"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.succeeded, JobStatus.dlq)


def new_job_id() -> str:
    """Generate an opaque job identifier."""
    return f"job_{secrets.token_hex(6)}"


class Job:
    """Represents a job record."""

    def __init__(
        self,
        job_id: str,
        type: str,
        payload: Dict[str, Any],
        status: JobStatus,
        priority: int,
        attempt: int,
        max_attempts: int,
        next_run_at: datetime,
        worker_id: Optional[str] = None,
        lease_expires_at: Optional[datetime] = None,
        result: Optional[Any] = None,
        last_error: Optional[Dict[str, Any]] = None,
        created_by: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.job_id = job_id
        self.type = type
        self.payload = payload
        self.status = JobStatus(status) if isinstance(status, str) else status
        self.priority = priority
        self.attempt = attempt
        self.max_attempts = max_attempts
        self.next_run_at = next_run_at
        self.worker_id = worker_id
        self.lease_expires_at = lease_expires_at
        self.result = result
        self.last_error = last_error
        self.created_by = created_by
        self.created_at = created_at
        self.updated_at = updated_at

    def __repr__(self) -> str:
        return (
            f"Job(job_id={self.job_id!r}, type={self.type!r}, "
            f"status={self.status.value!r}, attempt={self.attempt}/{self.max_attempts})"
        )

    def is_lease_valid(self, now: datetime) -> bool:
        """Whether the job is leased and its lease has not yet expired."""
        return (
            self.status == JobStatus.leased
            and self.lease_expires_at is not None
            and self.lease_expires_at > now
        )

    def clone(self) -> "Job":
        """Deep copy, so callers never share mutable state with a store."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for JSON serialization."""
        return {
            "job_id": self.job_id,
            "type": self.type,
            "payload": self.payload,
            "status": self.status.value,
            "priority": self.priority,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "worker_id": self.worker_id,
            "lease_expires_at": (
                self.lease_expires_at.isoformat() if self.lease_expires_at else None
            ),
            "result": self.result,
            "last_error": self.last_error,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class JobPage:
    """One page of a job listing."""

    def __init__(self, jobs: List[Job], total: int, page: int, per_page: int):
        self.jobs = jobs
        self.total = total
        self.page = page
        self.per_page = per_page

    @property
    def total_pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page if self.per_page else 0
