"""Database schema DDL for the job queue."""

JOBS_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS jobs (
  job_id           TEXT PRIMARY KEY,
  type             TEXT NOT NULL,
  payload          JSONB NOT NULL,

  status           TEXT NOT NULL DEFAULT 'queued'
                   CHECK (status IN ('queued', 'leased', 'succeeded', 'dlq')),
  priority         INT NOT NULL DEFAULT 50 CHECK (priority BETWEEN 0 AND 100),

  attempt          INT NOT NULL DEFAULT 0,
  max_attempts     INT NOT NULL CHECK (max_attempts >= 1),
  next_run_at      TIMESTAMPTZ NOT NULL,

  worker_id        TEXT,
  lease_expires_at TIMESTAMPTZ,

  result           JSONB,
  last_error       JSONB,

  created_by       TEXT,
  created_at       TIMESTAMPTZ NOT NULL DEFAULT now(),
  updated_at       TIMESTAMPTZ NOT NULL DEFAULT now(),

  CONSTRAINT jobs_attempt_ceiling CHECK (attempt <= max_attempts),
  CONSTRAINT jobs_lease_fields CHECK (
    (status = 'leased' AND worker_id IS NOT NULL AND lease_expires_at IS NOT NULL)
    OR (status <> 'leased' AND worker_id IS NULL AND lease_expires_at IS NULL)
  )
);

-- Claim query: ready jobs by priority, then earliest scheduled
CREATE INDEX IF NOT EXISTS idx_jobs_claim
ON jobs (status, next_run_at, priority DESC);

-- Expired lease lookups for reclamation and the reaper
CREATE INDEX IF NOT EXISTS idx_jobs_expired_leases
ON jobs (lease_expires_at)
WHERE status = 'leased';

CREATE INDEX IF NOT EXISTS idx_jobs_type_status
ON jobs (type, status);

CREATE INDEX IF NOT EXISTS idx_jobs_created_at
ON jobs (created_at DESC);
"""
