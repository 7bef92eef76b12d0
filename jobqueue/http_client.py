"""HTTP client for a remote job queue service."""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp
from dateutil.parser import isoparse

from jobqueue.errors import (
    JobNotFoundError,
    JobNotLeasedOrNotFoundError,
    PayloadValidationError,
    RemoteHttpError,
    UnknownJobTypeError,
)


class LeasedJob:
    """A job as handed to a worker by the lease endpoint."""

    def __init__(
        self,
        job_id: str,
        type: str,
        payload: Dict[str, Any],
        attempt: int,
        lease_expires_at: datetime,
    ):
        self.job_id = job_id
        self.type = type
        self.payload = payload
        self.attempt = attempt
        self.lease_expires_at = lease_expires_at

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeasedJob":
        return cls(
            job_id=data["jobId"],
            type=data["type"],
            payload=data["payload"],
            attempt=data["attempt"],
            lease_expires_at=isoparse(data["leaseExpiresAt"]),
        )


class JobQueueHttpClient:
    """
    HTTP client for calling the job queue service.

    Exposes the same enqueue/lease/report calls as JobQueueService so a
    worker loop can run against either.
    """

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout: float = 5.0,
    ):
        """
        Initialize HTTP client.

        Args:
            base_url: Base URL of the job queue service (e.g., "https://jobs.internal")
            auth_token: Optional auth token for X-Job-Queue-Token header
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _headers(self, worker_id: Optional[str] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["X-Job-Queue-Token"] = self.auth_token
        if worker_id:
            headers["X-Worker-Id"] = worker_id
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Dict[str, str],
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.request(
                    method, url, json=json, params=params, headers=headers
                ) as resp:
                    response_body = await resp.text()

                    if resp.status >= 400:
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"{method} {path} failed: {response_body}",
                            response_body=response_body,
                        )

                    return await resp.json()

            except aiohttp.ClientError as e:
                raise RemoteHttpError(
                    status_code=0,
                    message=f"Network error: {str(e)}",
                ) from e

    async def enqueue(
        self,
        type: str,
        payload: Dict[str, Any],
        *,
        priority: Optional[int] = None,
        schedule_at: Optional[datetime] = None,
        max_attempts: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Enqueue a job via HTTP API.

        Returns:
            {"jobId", "status", "type", "nextRunAt"}

        Raises:
            UnknownJobTypeError: If the service does not know the type
            PayloadValidationError: If the service rejected the payload
            RemoteHttpError: If the HTTP request fails otherwise
        """
        request_body: Dict[str, Any] = {"type": type, "payload": payload}
        if priority is not None:
            request_body["priority"] = priority
        if schedule_at is not None:
            request_body["scheduleAt"] = schedule_at.isoformat()
        if max_attempts is not None:
            request_body["maxAttempts"] = max_attempts

        headers = self._headers()
        if created_by:
            headers["X-Created-By"] = created_by

        try:
            return await self._request("POST", "/jobs", headers=headers, json=request_body)
        except RemoteHttpError as e:
            if e.status_code == 404:
                raise UnknownJobTypeError(type) from e
            if e.status_code == 422:
                raise PayloadValidationError(_violations(e.response_body)) from e
            raise

    async def lease(
        self,
        worker_id: str,
        job_type: Optional[str] = None,
        limit: int = 1,
        lease_duration_seconds: Optional[int] = None,
    ) -> List[LeasedJob]:
        """Lease up to `limit` jobs for worker_id."""
        params: Dict[str, Any] = {"limit": limit}
        if job_type:
            params["type"] = job_type
        if lease_duration_seconds is not None:
            params["leaseDurationSeconds"] = lease_duration_seconds

        try:
            data = await self._request(
                "GET", "/jobs/lease", headers=self._headers(worker_id), params=params
            )
        except RemoteHttpError as e:
            if e.status_code == 404 and job_type:
                raise UnknownJobTypeError(job_type) from e
            raise

        return [LeasedJob.from_dict(item) for item in data["jobs"]]

    async def report_success(
        self, job_id: str, worker_id: str, result: Any = None
    ) -> Dict[str, Any]:
        """Report success for a leased job."""
        return await self._report(
            job_id, worker_id, "succeed", {"result": {} if result is None else result}
        )

    async def report_failure(
        self, job_id: str, worker_id: str, error: Any = None
    ) -> Dict[str, Any]:
        """Report failure for a leased job."""
        if isinstance(error, BaseException):
            error = {"message": str(error)}
        elif isinstance(error, str):
            error = {"message": error}
        return await self._report(job_id, worker_id, "fail", {"error": error or {}})

    async def _report(
        self, job_id: str, worker_id: str, outcome: str, body: Dict[str, Any]
    ) -> Dict[str, Any]:
        try:
            return await self._request(
                "POST",
                f"/jobs/{job_id}/{outcome}",
                headers=self._headers(worker_id),
                json=body,
            )
        except RemoteHttpError as e:
            if e.status_code == 409:
                raise JobNotLeasedOrNotFoundError(job_id, worker_id) from e
            raise

    async def get_job(
        self, job_id: str, requester_id: Optional[str] = None, is_admin: bool = False
    ) -> Dict[str, Any]:
        """
        Get job details by ID.

        Raises:
            JobNotFoundError: If the job does not exist or is not visible
            RemoteHttpError: If the HTTP request fails otherwise
        """
        headers = self._headers()
        if requester_id:
            headers["X-Requester-Id"] = requester_id
        if is_admin:
            headers["X-Requester-Admin"] = "true"

        try:
            return await self._request("GET", f"/jobs/{job_id}", headers=headers)
        except RemoteHttpError as e:
            if e.status_code == 404:
                raise JobNotFoundError(job_id) from e
            raise


def _violations(response_body: Optional[str]) -> List[str]:
    try:
        detail = json.loads(response_body or "")["detail"]
    except (ValueError, KeyError, TypeError):
        return [response_body or "Payload validation failed"]
    if isinstance(detail, dict) and "violations" in detail:
        return list(detail["violations"])
    return [str(detail)]
