"""Lease-based job queue for deferring work to asynchronous workers."""

from jobqueue.backoff import NO_RETRY, BackoffCalculator
from jobqueue.config import JobQueueConfig
from jobqueue.ddl import JOBS_TABLE_DDL
from jobqueue.errors import (
    JobNotFoundError,
    JobNotLeasedOrNotFoundError,
    JobQueueError,
    PayloadValidationError,
    RemoteHttpError,
    SchemaValidationError,
    UnknownJobTypeError,
)
from jobqueue.handlers import HandlerRegistry, handler_registry
from jobqueue.job_types import BUILTIN_JOB_TYPES, default_registry
from jobqueue.memory_store import InMemoryJobStore
from jobqueue.models import Job, JobPage, JobStatus
from jobqueue.registry import JobPolicy, JobRegistry, JobSchema, JobTypeDefinition
from jobqueue.service import JobQueueService
from jobqueue.store import JobStore
from jobqueue.worker import run_worker_loop

__version__ = "0.1.0"

__all__ = [
    "NO_RETRY",
    "BackoffCalculator",
    "JobQueueConfig",
    "JOBS_TABLE_DDL",
    "JobNotFoundError",
    "JobNotLeasedOrNotFoundError",
    "JobQueueError",
    "PayloadValidationError",
    "RemoteHttpError",
    "SchemaValidationError",
    "UnknownJobTypeError",
    "HandlerRegistry",
    "handler_registry",
    "BUILTIN_JOB_TYPES",
    "default_registry",
    "InMemoryJobStore",
    "Job",
    "JobPage",
    "JobStatus",
    "JobPolicy",
    "JobRegistry",
    "JobSchema",
    "JobTypeDefinition",
    "JobQueueService",
    "JobStore",
    "run_worker_loop",
]
