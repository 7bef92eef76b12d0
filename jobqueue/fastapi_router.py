"""FastAPI router for the job queue HTTP API."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field

from jobqueue.errors import (
    JobNotFoundError,
    JobNotLeasedOrNotFoundError,
    PayloadValidationError,
    UnknownJobTypeError,
)
from jobqueue.models import Job
from jobqueue.service import MAX_LEASE_LIMIT, JobQueueService


logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    model_config = {"populate_by_name": True}


class EnqueueJobRequest(CamelModel):
    """Request model for enqueueing a job."""

    type: str = Field(min_length=3)
    payload: Dict[str, Any]
    priority: Optional[int] = Field(default=None, ge=0, le=100)
    schedule_at: Optional[datetime] = Field(default=None, alias="scheduleAt")
    max_attempts: Optional[int] = Field(default=None, ge=1, le=10, alias="maxAttempts")


class EnqueueJobResponse(CamelModel):
    """Response model for enqueueing a job."""

    job_id: str = Field(alias="jobId")
    status: str
    type: str
    next_run_at: datetime = Field(alias="nextRunAt")


class LeasedJobResponse(CamelModel):
    job_id: str = Field(alias="jobId")
    type: str
    payload: Dict[str, Any]
    attempt: int
    lease_expires_at: datetime = Field(alias="leaseExpiresAt")


class LeaseResponse(CamelModel):
    leased_at: datetime = Field(alias="leasedAt")
    jobs: List[LeasedJobResponse]


class ReportSuccessRequest(BaseModel):
    # Any JSON value a handler returned
    result: Optional[Any] = None


class ReportedError(BaseModel):
    message: Optional[str] = None
    code: Optional[str] = None


class ReportFailureRequest(BaseModel):
    error: Optional[ReportedError] = None


class ReportResponse(CamelModel):
    status: str
    job_id: str = Field(alias="jobId")
    next_run_at: Optional[datetime] = Field(default=None, alias="nextRunAt")
    attempt: Optional[int] = None


class JobResponse(CamelModel):
    """Response model for job details."""

    job_id: str = Field(alias="jobId")
    type: str
    status: str
    payload: Dict[str, Any]
    priority: int
    attempt: int
    max_attempts: int = Field(alias="maxAttempts")
    next_run_at: Optional[datetime] = Field(default=None, alias="nextRunAt")
    worker_id: Optional[str] = Field(default=None, alias="workerId")
    lease_expires_at: Optional[datetime] = Field(default=None, alias="leaseExpiresAt")
    result: Optional[Any] = None
    last_error: Optional[Dict[str, Any]] = Field(default=None, alias="lastError")
    created_by: Optional[str] = Field(default=None, alias="createdBy")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")


class Pagination(BaseModel):
    page: int
    per_page: int
    total: int
    total_pages: int


class JobListResponse(BaseModel):
    data: List[JobResponse]
    pagination: Pagination


def job_response(job: Job) -> JobResponse:
    return JobResponse(
        job_id=job.job_id,
        type=job.type,
        status=job.status.value,
        payload=job.payload,
        priority=job.priority,
        attempt=job.attempt,
        max_attempts=job.max_attempts,
        next_run_at=job.next_run_at,
        worker_id=job.worker_id,
        lease_expires_at=job.lease_expires_at,
        result=job.result,
        last_error=job.last_error,
        created_by=job.created_by,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


def create_jobs_router(
    job_service_factory: Callable[[], JobQueueService],
    auth_token: Optional[str] = None,
) -> APIRouter:
    """
    Create FastAPI router for the job queue API.

    Args:
        job_service_factory: Callable that returns a JobQueueService instance
        auth_token: Optional shared token required on every route

    Returns:
        APIRouter instance
    """

    async def verify_auth_token(
        x_job_queue_token: Optional[str] = Header(None, alias="X-Job-Queue-Token")
    ) -> None:
        """Verify auth token if configured."""
        if auth_token:
            if not x_job_queue_token or x_job_queue_token != auth_token:
                raise HTTPException(
                    status_code=401, detail="Invalid or missing auth token"
                )

    router = APIRouter(dependencies=[Depends(verify_auth_token)])

    async def get_job_service() -> JobQueueService:
        """Dependency to get JobQueueService instance."""
        return job_service_factory()

    @router.post("/jobs", response_model=EnqueueJobResponse, status_code=201)
    async def enqueue_job(
        request: EnqueueJobRequest,
        created_by: Optional[str] = Header(None, alias="X-Created-By"),
        job_service: JobQueueService = Depends(get_job_service),
    ):
        """Enqueue a new job."""
        try:
            job = await job_service.enqueue(
                request.type,
                request.payload,
                priority=request.priority,
                schedule_at=request.schedule_at,
                max_attempts=request.max_attempts,
                created_by=created_by,
            )
        except UnknownJobTypeError as e:
            raise HTTPException(
                status_code=404, detail="The specified job type is not registered."
            ) from e
        except PayloadValidationError as e:
            raise HTTPException(
                status_code=422,
                detail={"message": str(e), "violations": e.violations},
            ) from e
        except Exception as e:
            logger.exception("Error enqueueing job")
            raise HTTPException(status_code=500, detail="Internal server error") from e

        return EnqueueJobResponse(
            job_id=job.job_id,
            status=job.status.value,
            type=job.type,
            next_run_at=job.next_run_at,
        )

    @router.get("/jobs/lease", response_model=LeaseResponse)
    async def lease_jobs(
        worker_id: str = Header(..., alias="X-Worker-Id", min_length=5),
        type: Optional[str] = Query(None),
        limit: int = Query(1, ge=1, le=MAX_LEASE_LIMIT),
        lease_duration_seconds: Optional[int] = Query(
            None, ge=1, alias="leaseDurationSeconds"
        ),
        job_service: JobQueueService = Depends(get_job_service),
    ):
        """Atomically lease jobs for a worker."""
        try:
            jobs = await job_service.lease(
                worker_id,
                job_type=type,
                limit=limit,
                lease_duration_seconds=lease_duration_seconds,
            )
        except UnknownJobTypeError as e:
            raise HTTPException(
                status_code=404, detail="The specified job type is not registered."
            ) from e
        except Exception as e:
            logger.exception("Error leasing jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

        return LeaseResponse(
            leased_at=datetime.now(timezone.utc),
            jobs=[
                LeasedJobResponse(
                    job_id=job.job_id,
                    type=job.type,
                    payload=job.payload,
                    attempt=job.attempt,
                    lease_expires_at=job.lease_expires_at,
                )
                for job in jobs
            ],
        )

    @router.get("/jobs/stats", response_model=Dict[str, int])
    async def queue_stats(job_service: JobQueueService = Depends(get_job_service)):
        """Count jobs in each status."""
        try:
            return await job_service.queue_stats()
        except Exception as e:
            logger.exception("Error counting jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/jobs/{job_id}/succeed", response_model=ReportResponse)
    async def report_success(
        job_id: str,
        body: Optional[ReportSuccessRequest] = None,
        worker_id: str = Header(..., alias="X-Worker-Id", min_length=5),
        job_service: JobQueueService = Depends(get_job_service),
    ):
        """Worker reports success."""
        result = body.result if body and body.result is not None else {}
        try:
            job = await job_service.report_success(job_id, worker_id, result)
        except JobNotLeasedOrNotFoundError as e:
            raise HTTPException(
                status_code=409,
                detail="Job not found or worker is not the current lease holder.",
            ) from e
        except Exception as e:
            logger.exception("Error reporting job success")
            raise HTTPException(status_code=500, detail="Internal server error") from e

        return ReportResponse(status=job.status.value, job_id=job.job_id)

    @router.post("/jobs/{job_id}/fail", response_model=ReportResponse)
    async def report_failure(
        job_id: str,
        body: Optional[ReportFailureRequest] = None,
        worker_id: str = Header(..., alias="X-Worker-Id", min_length=5),
        job_service: JobQueueService = Depends(get_job_service),
    ):
        """Worker reports failure."""
        error = body.error.model_dump(exclude_none=True) if body and body.error else {}
        try:
            job = await job_service.report_failure(job_id, worker_id, error)
        except JobNotLeasedOrNotFoundError as e:
            raise HTTPException(
                status_code=409,
                detail="Job not found or worker is not the current lease holder.",
            ) from e
        except Exception as e:
            logger.exception("Error reporting job failure")
            raise HTTPException(status_code=500, detail="Internal server error") from e

        return ReportResponse(
            status=job.status.value,
            job_id=job.job_id,
            next_run_at=job.next_run_at,
            attempt=job.attempt,
        )

    @router.get("/jobs/{job_id}", response_model=JobResponse)
    async def get_job(
        job_id: str,
        requester_id: Optional[str] = Header(None, alias="X-Requester-Id"),
        requester_admin: bool = Header(False, alias="X-Requester-Admin"),
        job_service: JobQueueService = Depends(get_job_service),
    ):
        """
        Get job details by ID.

        X-Requester-Admin is only honoured when the router requires the shared
        token; the gateway in front must set or strip it.
        """
        try:
            job = await job_service.get_job_status(
                job_id, requester_id, is_admin=requester_admin and bool(auth_token)
            )
        except JobNotFoundError as e:
            raise HTTPException(
                status_code=404, detail="Job not found or access denied."
            ) from e
        except Exception as e:
            logger.exception("Error getting job")
            raise HTTPException(status_code=500, detail="Internal server error") from e

        return job_response(job)

    @router.get("/jobs", response_model=JobListResponse)
    async def list_jobs(
        status: Optional[str] = Query(None),
        type: Optional[str] = Query(None),
        page: int = Query(1, ge=1),
        per_page: int = Query(20, ge=1, le=100),
        job_service: JobQueueService = Depends(get_job_service),
    ):
        """List jobs for monitoring."""
        try:
            result = await job_service.list_jobs(
                status=status, type=type, page=page, per_page=per_page
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error listing jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

        return JobListResponse(
            data=[job_response(job) for job in result.jobs],
            pagination=Pagination(
                page=result.page,
                per_page=result.per_page,
                total=result.total,
                total_pages=result.total_pages,
            ),
        )

    return router
