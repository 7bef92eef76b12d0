"""Job types deferred by the marketplace backend."""

from typing import List

from jobqueue.config import DEFAULT_MAX_RETRY_ATTEMPTS
from jobqueue.registry import JobPolicy, JobRegistry, JobSchema, JobTypeDefinition

THUMBNAIL_CREATE = "thumbnail.create"
PAYOUT_EXECUTE = "payout.execute"
PDF_GENERATE = "pdf.generate"
REINDEX_BATCH = "reindex.batch"
BLOCKCHAIN_ANCHOR = "blockchain.anchor"
EXPORT_AUDIT = "export.audit"
AUDIT_SNAPSHOT = "audit.snapshot"

BUILTIN_JOB_TYPES: List[JobTypeDefinition] = [
    JobTypeDefinition(
        type=THUMBNAIL_CREATE,
        job_schema=JobSchema(
            required=["assetId", "versionNumber"],
            properties={"assetId": "string", "versionNumber": "number", "sizes": "array"},
        ),
        policy=JobPolicy(max_attempts=3, lease_duration_seconds=300),
    ),
    JobTypeDefinition(
        type=PAYOUT_EXECUTE,
        job_schema=JobSchema(
            required=["batchId", "escrowId"],
            properties={"batchId": "string", "escrowId": "string", "isRetry": "boolean"},
        ),
        # Financial; retried hard, PSP calls limited to 5 at a time
        policy=JobPolicy(max_attempts=10, lease_duration_seconds=60, concurrency_limit=5),
    ),
    JobTypeDefinition(
        type=PDF_GENERATE,
        job_schema=JobSchema(
            required=["agreementId", "payloadJson"],
            properties={"agreementId": "string", "payloadJson": "object"},
        ),
        policy=JobPolicy(max_attempts=5, lease_duration_seconds=600),
    ),
    JobTypeDefinition(
        type=REINDEX_BATCH,
        job_schema=JobSchema(
            required=["docType", "docIds"],
            properties={"docType": "string", "docIds": "array"},
        ),
        policy=JobPolicy(max_attempts=3, lease_duration_seconds=3600),
    ),
    JobTypeDefinition(
        type=BLOCKCHAIN_ANCHOR,
        job_schema=JobSchema(
            required=["agreementId", "immutableHash", "chain"],
            properties={
                "agreementId": "string",
                "immutableHash": "string",
                "chain": "string",
            },
        ),
        policy=JobPolicy(max_attempts=10, lease_duration_seconds=1800),
    ),
    JobTypeDefinition(
        type=EXPORT_AUDIT,
        job_schema=JobSchema(
            required=["exportFilters", "format", "requesterId"],
            properties={
                "exportFilters": "object",
                "format": "string",
                "requesterId": "string",
                "requesterEmail": "string",
            },
        ),
        policy=JobPolicy(max_attempts=3, lease_duration_seconds=3600),
    ),
    JobTypeDefinition(
        type=AUDIT_SNAPSHOT,
        job_schema=JobSchema(
            required=["from", "to"],
            properties={"from": "string", "to": "string"},
        ),
        policy=JobPolicy(max_attempts=3, lease_duration_seconds=3600),
    ),
]


def default_registry(max_retry_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS) -> JobRegistry:
    """Build the registry of built-in marketplace job types."""
    return JobRegistry(BUILTIN_JOB_TYPES, max_retry_attempts=max_retry_attempts)
