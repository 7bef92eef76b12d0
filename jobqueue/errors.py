"""Exception types for the job queue."""

from typing import List, Optional


class JobQueueError(Exception):
    """Base exception for all job queue errors."""

    pass


class UnknownJobTypeError(JobQueueError):
    """Raised when a job type has no registry entry."""

    def __init__(self, job_type: str, message: str = None):
        self.job_type = job_type
        if message is None:
            message = f"Job type {job_type!r} is not registered"
        super().__init__(message)


class SchemaValidationError(JobQueueError):
    """Raised by the registry when a payload does not match its schema."""

    def __init__(self, job_type: str, violations: List[str]):
        self.job_type = job_type
        self.violations = list(violations)
        super().__init__(
            f"Payload for {job_type} failed validation: " + "; ".join(self.violations)
        )


class PayloadValidationError(JobQueueError):
    """Raised when an enqueue request is rejected; carries every violation."""

    def __init__(self, violations: List[str]):
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))


class JobNotLeasedOrNotFoundError(JobQueueError):
    """Raised when a report targets a job the caller does not hold a lease on."""

    def __init__(self, job_id: str, worker_id: Optional[str] = None, message: str = None):
        self.job_id = job_id
        self.worker_id = worker_id
        if message is None:
            message = f"Job {job_id} not found or not leased by worker {worker_id}"
        super().__init__(message)


class JobNotFoundError(JobQueueError):
    """Raised when a job is not found."""

    def __init__(self, job_id: str, message: str = None):
        self.job_id = job_id
        if message is None:
            message = f"Job {job_id} not found"
        super().__init__(message)


class RemoteHttpError(JobQueueError):
    """Raised when an HTTP request to a remote job queue service fails."""

    def __init__(self, status_code: int, message: str, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"HTTP {status_code}: {message}")
