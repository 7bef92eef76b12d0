"""Unit tests for HTTP client."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from jobqueue.errors import (
    JobNotFoundError,
    JobNotLeasedOrNotFoundError,
    PayloadValidationError,
    RemoteHttpError,
    UnknownJobTypeError,
)
from jobqueue.http_client import JobQueueHttpClient, LeasedJob


def mock_response(mock_session_cls, status, body):
    """Wire a ClientSession mock so session.request(...) yields a response."""
    resp = MagicMock()
    resp.status = status
    resp.text = AsyncMock(return_value=body if isinstance(body, str) else json.dumps(body))
    resp.json = AsyncMock(return_value=body)

    session = MagicMock()
    session.request.return_value.__aenter__.return_value = resp
    mock_session_cls.return_value.__aenter__.return_value = session
    return session


@pytest.mark.asyncio
async def test_enqueue_success():
    """Test successful job enqueue via HTTP."""
    client = JobQueueHttpClient("https://jobs.example.com/", auth_token="token")
    body = {
        "jobId": "job_abc",
        "status": "queued",
        "type": "thumbnail.create",
        "nextRunAt": "2024-01-01T12:00:00Z",
    }

    with patch("aiohttp.ClientSession") as mock_session_cls:
        session = mock_response(mock_session_cls, 201, body)

        result = await client.enqueue(
            "thumbnail.create",
            {"assetId": "asset_1", "versionNumber": 1},
            priority=80,
            schedule_at=datetime(2024, 1, 1, 13, 0, tzinfo=timezone.utc),
            created_by="user_1",
        )

    assert result == body
    args, kwargs = session.request.call_args
    assert args == ("POST", "https://jobs.example.com/jobs")
    assert kwargs["json"] == {
        "type": "thumbnail.create",
        "payload": {"assetId": "asset_1", "versionNumber": 1},
        "priority": 80,
        "scheduleAt": "2024-01-01T13:00:00+00:00",
    }
    assert kwargs["headers"]["X-Job-Queue-Token"] == "token"
    assert kwargs["headers"]["X-Created-By"] == "user_1"


@pytest.mark.asyncio
async def test_enqueue_unknown_type():
    """Test that 404 maps to UnknownJobTypeError."""
    client = JobQueueHttpClient("https://jobs.example.com")

    with patch("aiohttp.ClientSession") as mock_session_cls:
        mock_response(mock_session_cls, 404, {"detail": "not registered"})

        with pytest.raises(UnknownJobTypeError):
            await client.enqueue("unknown.type", {})


@pytest.mark.asyncio
async def test_enqueue_validation_error():
    """Test that 422 maps to PayloadValidationError with the violations."""
    client = JobQueueHttpClient("https://jobs.example.com")
    detail = {
        "detail": {
            "message": "Missing required field: assetId",
            "violations": ["Missing required field: assetId"],
        }
    }

    with patch("aiohttp.ClientSession") as mock_session_cls:
        mock_response(mock_session_cls, 422, detail)

        with pytest.raises(PayloadValidationError) as exc_info:
            await client.enqueue("thumbnail.create", {})

    assert exc_info.value.violations == ["Missing required field: assetId"]


@pytest.mark.asyncio
async def test_enqueue_server_error():
    """Test that other HTTP errors raise RemoteHttpError."""
    client = JobQueueHttpClient("https://jobs.example.com")

    with patch("aiohttp.ClientSession") as mock_session_cls:
        mock_response(mock_session_cls, 500, "Internal server error")

        with pytest.raises(RemoteHttpError) as exc_info:
            await client.enqueue("thumbnail.create", {})

    assert exc_info.value.status_code == 500
    assert exc_info.value.response_body == "Internal server error"


@pytest.mark.asyncio
async def test_network_error():
    """Test that connection failures raise RemoteHttpError with status 0."""
    client = JobQueueHttpClient("https://jobs.example.com")

    with patch("aiohttp.ClientSession") as mock_session_cls:
        session = MagicMock()
        session.request.side_effect = aiohttp.ClientConnectionError("refused")
        mock_session_cls.return_value.__aenter__.return_value = session

        with pytest.raises(RemoteHttpError) as exc_info:
            await client.lease("worker-a")

    assert exc_info.value.status_code == 0


@pytest.mark.asyncio
async def test_lease():
    """Test that leased jobs are parsed."""
    client = JobQueueHttpClient("https://jobs.example.com")
    body = {
        "leasedAt": "2024-01-01T12:00:00Z",
        "jobs": [
            {
                "jobId": "job_abc",
                "type": "payout.execute",
                "payload": {"batchId": "b", "escrowId": "e"},
                "attempt": 2,
                "leaseExpiresAt": "2024-01-01T12:01:00Z",
            }
        ],
    }

    with patch("aiohttp.ClientSession") as mock_session_cls:
        session = mock_response(mock_session_cls, 200, body)

        jobs = await client.lease(
            "worker-a", job_type="payout.execute", limit=3, lease_duration_seconds=60
        )

    kwargs = session.request.call_args[1]
    assert kwargs["params"] == {
        "limit": 3,
        "type": "payout.execute",
        "leaseDurationSeconds": 60,
    }
    assert kwargs["headers"]["X-Worker-Id"] == "worker-a"
    assert len(jobs) == 1
    assert isinstance(jobs[0], LeasedJob)
    assert jobs[0].job_id == "job_abc"
    assert jobs[0].attempt == 2
    assert jobs[0].lease_expires_at == datetime(2024, 1, 1, 12, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_report_success_conflict():
    """Test that 409 maps to JobNotLeasedOrNotFoundError."""
    client = JobQueueHttpClient("https://jobs.example.com")

    with patch("aiohttp.ClientSession") as mock_session_cls:
        session = mock_response(mock_session_cls, 409, {"detail": "conflict"})

        with pytest.raises(JobNotLeasedOrNotFoundError):
            await client.report_success("job_abc", "worker-a")

    args, kwargs = session.request.call_args
    assert args == ("POST", "https://jobs.example.com/jobs/job_abc/succeed")
    assert kwargs["json"] == {"result": {}}


@pytest.mark.asyncio
async def test_report_failure_from_exception():
    """Test that an exception is sent as an error message."""
    client = JobQueueHttpClient("https://jobs.example.com")
    body = {"status": "queued", "jobId": "job_abc", "attempt": 1}

    with patch("aiohttp.ClientSession") as mock_session_cls:
        session = mock_response(mock_session_cls, 200, body)

        result = await client.report_failure("job_abc", "worker-a", ValueError("bad input"))

    assert result == body
    assert session.request.call_args[1]["json"] == {"error": {"message": "bad input"}}


@pytest.mark.asyncio
async def test_get_job_not_found():
    """Test that 404 maps to JobNotFoundError."""
    client = JobQueueHttpClient("https://jobs.example.com")

    with patch("aiohttp.ClientSession") as mock_session_cls:
        session = mock_response(mock_session_cls, 404, {"detail": "missing"})

        with pytest.raises(JobNotFoundError):
            await client.get_job("job_abc", requester_id="admin", is_admin=True)

    headers = session.request.call_args[1]["headers"]
    assert headers["X-Requester-Id"] == "admin"
    assert headers["X-Requester-Admin"] == "true"
