"""Unit tests for FastAPI router."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from jobqueue.fastapi_router import create_jobs_router
from jobqueue.service import JobQueueService

WORKER = {"X-Worker-Id": "worker-a"}


@pytest.fixture
def app(service):
    """Create FastAPI app backed by the in-memory service."""

    def job_service_factory():
        return service

    app = FastAPI()
    app.include_router(create_jobs_router(job_service_factory, auth_token=None))
    return app


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


def enqueue(client, payload, **extra):
    return client.post(
        "/jobs",
        json={"type": "thumbnail.create", "payload": payload, **extra},
        headers={"X-Created-By": "user_1"},
    )


def test_enqueue_job_success(client, thumbnail_payload):
    """Test successful job enqueue via HTTP."""
    response = enqueue(client, thumbnail_payload, priority=80)

    assert response.status_code == 201
    body = response.json()
    assert body["jobId"].startswith("job_")
    assert body["status"] == "queued"
    assert body["type"] == "thumbnail.create"
    assert "nextRunAt" in body


def test_enqueue_unknown_type(client):
    """Test that an unregistered type returns 404."""
    response = client.post("/jobs", json={"type": "unknown.type", "payload": {}})

    assert response.status_code == 404
    assert response.json()["detail"] == "The specified job type is not registered."


def test_enqueue_schema_violations(client):
    """Test that schema violations return 422 with every violation."""
    response = enqueue(client, {})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["violations"] == [
        "Missing required field: assetId",
        "Missing required field: versionNumber",
    ]


def test_enqueue_request_validation(client, thumbnail_payload):
    """Test that malformed requests are rejected before reaching the service."""
    assert enqueue(client, thumbnail_payload, priority=101).status_code == 422
    assert enqueue(client, thumbnail_payload, maxAttempts=0).status_code == 422
    assert client.post("/jobs", json={"type": "x", "payload": {}}).status_code == 422
    assert client.post("/jobs", json={"type": "thumbnail.create"}).status_code == 422


def test_lease_and_succeed(client, thumbnail_payload):
    """Test the lease then succeed flow."""
    job_id = enqueue(client, thumbnail_payload).json()["jobId"]

    response = client.get("/jobs/lease", headers=WORKER, params={"limit": 5})
    assert response.status_code == 200
    jobs = response.json()["jobs"]
    assert len(jobs) == 1
    assert jobs[0]["jobId"] == job_id
    assert jobs[0]["attempt"] == 1
    assert jobs[0]["payload"] == thumbnail_payload
    assert "leaseExpiresAt" in jobs[0]

    response = client.post(
        f"/jobs/{job_id}/succeed", headers=WORKER, json={"result": {"urls": ["a.png"]}}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "succeeded"

    response = client.post(f"/jobs/{job_id}/succeed", headers=WORKER, json={})
    assert response.status_code == 409


def test_lease_empty(client):
    """Test that no ready jobs returns an empty list."""
    response = client.get("/jobs/lease", headers=WORKER)

    assert response.status_code == 200
    assert response.json()["jobs"] == []


def test_lease_requires_worker_id(client):
    """Test that the worker header is required and must be long enough."""
    assert client.get("/jobs/lease").status_code == 422
    assert client.get("/jobs/lease", headers={"X-Worker-Id": "w1"}).status_code == 422


def test_lease_limit_bounds(client):
    """Test that the limit is bounded."""
    assert client.get("/jobs/lease", headers=WORKER, params={"limit": 11}).status_code == 422
    assert client.get("/jobs/lease", headers=WORKER, params={"limit": 0}).status_code == 422


def test_lease_unknown_type(client):
    """Test that leasing an unregistered type returns 404."""
    response = client.get("/jobs/lease", headers=WORKER, params={"type": "unknown.type"})

    assert response.status_code == 404


def test_fail_schedules_retry(client, thumbnail_payload):
    """Test that reporting failure requeues the job."""
    job_id = enqueue(client, thumbnail_payload).json()["jobId"]
    client.get("/jobs/lease", headers=WORKER)

    response = client.post(
        f"/jobs/{job_id}/fail",
        headers=WORKER,
        json={"error": {"message": "Image service down", "code": "timeout"}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "queued"
    assert body["attempt"] == 1
    assert body["nextRunAt"] is not None


def test_fail_by_other_worker(client, thumbnail_payload):
    """Test that a non-holder gets 409."""
    job_id = enqueue(client, thumbnail_payload).json()["jobId"]
    client.get("/jobs/lease", headers=WORKER)

    response = client.post(f"/jobs/{job_id}/fail", headers={"X-Worker-Id": "worker-b"})

    assert response.status_code == 409
    assert response.json()["detail"] == (
        "Job not found or worker is not the current lease holder."
    )


def test_get_job_access(client, thumbnail_payload):
    """Test that jobs are visible to their creator and admins only."""
    job_id = enqueue(client, thumbnail_payload).json()["jobId"]

    own = client.get(f"/jobs/{job_id}", headers={"X-Requester-Id": "user_1"})
    assert own.status_code == 200
    assert own.json()["jobId"] == job_id
    assert own.json()["maxAttempts"] == 3
    assert own.json()["createdBy"] == "user_1"

    # Without a shared token the admin header is not trusted
    admin = client.get(
        f"/jobs/{job_id}",
        headers={"X-Requester-Id": "admin", "X-Requester-Admin": "true"},
    )
    assert admin.status_code == 404

    other = client.get(f"/jobs/{job_id}", headers={"X-Requester-Id": "user_2"})
    assert other.status_code == 404
    assert client.get("/jobs/job_missing").status_code == 404


def test_list_jobs(client, thumbnail_payload):
    """Test listing with pagination."""
    for _ in range(3):
        enqueue(client, thumbnail_payload)

    response = client.get("/jobs", params={"status": "queued", "per_page": 2})

    assert response.status_code == 200
    body = response.json()
    assert len(body["data"]) == 2
    assert body["pagination"] == {"page": 1, "per_page": 2, "total": 3, "total_pages": 2}


def test_list_jobs_invalid_status(client):
    """Test that an unknown status filter returns 400."""
    response = client.get("/jobs", params={"status": "running"})

    assert response.status_code == 400


def test_queue_stats(client, thumbnail_payload):
    """Test status counts."""
    enqueue(client, thumbnail_payload)
    enqueue(client, thumbnail_payload)
    client.get("/jobs/lease", headers=WORKER)

    response = client.get("/jobs/stats")

    assert response.status_code == 200
    assert response.json() == {"queued": 1, "leased": 1, "succeeded": 0, "dlq": 0}


def test_unexpected_error_returns_500():
    """Test that unexpected service errors become 500 responses."""
    service = MagicMock(spec=JobQueueService)
    service.queue_stats = AsyncMock(side_effect=RuntimeError("db down"))
    app = FastAPI()
    app.include_router(create_jobs_router(lambda: service))

    response = TestClient(app).get("/jobs/stats")

    assert response.status_code == 500
    assert response.json()["detail"] == "Internal server error"


def test_auth_token_required(service):
    """Test that a configured token is enforced on every route."""
    app = FastAPI()
    app.include_router(create_jobs_router(lambda: service, auth_token="secret"))
    client = TestClient(app)

    assert client.get("/jobs/stats").status_code == 401
    assert (
        client.get("/jobs/stats", headers={"X-Job-Queue-Token": "wrong"}).status_code
        == 401
    )
    assert (
        client.get("/jobs/stats", headers={"X-Job-Queue-Token": "secret"}).status_code
        == 200
    )


def test_admin_header_honoured_with_auth_token(service, thumbnail_payload):
    """Test that admins can read any job when the shared token is required."""
    app = FastAPI()
    app.include_router(create_jobs_router(lambda: service, auth_token="secret"))
    client = TestClient(app)
    token = {"X-Job-Queue-Token": "secret"}

    job_id = client.post(
        "/jobs",
        json={"type": "thumbnail.create", "payload": thumbnail_payload},
        headers={**token, "X-Created-By": "user_1"},
    ).json()["jobId"]

    admin = client.get(
        f"/jobs/{job_id}",
        headers={**token, "X-Requester-Id": "ops", "X-Requester-Admin": "true"},
    )
    assert admin.status_code == 200
    assert admin.json()["jobId"] == job_id

    other = client.get(f"/jobs/{job_id}", headers={**token, "X-Requester-Id": "ops"})
    assert other.status_code == 404


@pytest.mark.parametrize("result", ["done", ["a.png", "b.png"], 3])
def test_succeed_with_non_object_result(client, thumbnail_payload, result):
    """Test that any JSON value a handler returns is stored as the result."""
    job_id = enqueue(client, thumbnail_payload).json()["jobId"]
    client.get("/jobs/lease", headers=WORKER)

    response = client.post(
        f"/jobs/{job_id}/succeed", headers=WORKER, json={"result": result}
    )

    assert response.status_code == 200
    assert response.json()["status"] == "succeeded"
    job = client.get(f"/jobs/{job_id}", headers={"X-Requester-Id": "user_1"}).json()
    assert job["result"] == result
