"""Configuration for the job queue."""

import os
from typing import Optional

DEFAULT_LEASE_SECONDS = 300
DEFAULT_BACKOFF_BASE_SECONDS = 60
DEFAULT_MAX_RETRY_ATTEMPTS = 10
DEFAULT_PRIORITY = 50


class JobQueueConfig:
    """Configuration object for the job queue."""

    def __init__(
        self,
        db_dsn: Optional[str] = None,
        default_lease_seconds: int = DEFAULT_LEASE_SECONDS,
        backoff_base_seconds: int = DEFAULT_BACKOFF_BASE_SECONDS,
        max_retry_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS,
        default_priority: int = DEFAULT_PRIORITY,
        auth_token: Optional[str] = None,
        reaper_interval_seconds: Optional[int] = None,
    ):
        if default_lease_seconds <= 0:
            raise ValueError("default_lease_seconds must be positive")
        if backoff_base_seconds <= 0:
            raise ValueError("backoff_base_seconds must be positive")
        if max_retry_attempts < 1:
            raise ValueError("max_retry_attempts must be at least 1")
        if not 0 <= default_priority <= 100:
            raise ValueError("default_priority must be between 0 and 100")
        if reaper_interval_seconds is not None and reaper_interval_seconds <= 0:
            raise ValueError("reaper_interval_seconds must be positive")

        self.db_dsn = db_dsn
        self.default_lease_seconds = default_lease_seconds
        self.backoff_base_seconds = backoff_base_seconds
        self.max_retry_attempts = max_retry_attempts
        self.default_priority = default_priority
        self.auth_token = auth_token
        # None leaves expired leases to lazy reclamation by lease calls
        self.reaper_interval_seconds = reaper_interval_seconds

    @classmethod
    def from_env(cls) -> "JobQueueConfig":
        """Create config from environment variables."""
        reaper_interval = os.getenv("JOB_QUEUE_REAPER_INTERVAL_SECONDS")

        return cls(
            db_dsn=os.getenv("JOB_QUEUE_DB_DSN"),
            default_lease_seconds=_int_env(
                "JOB_QUEUE_DEFAULT_LEASE_SECONDS", DEFAULT_LEASE_SECONDS
            ),
            backoff_base_seconds=_int_env(
                "JOB_QUEUE_BACKOFF_BASE_SECONDS", DEFAULT_BACKOFF_BASE_SECONDS
            ),
            max_retry_attempts=_int_env(
                "JOB_QUEUE_MAX_RETRY_ATTEMPTS", DEFAULT_MAX_RETRY_ATTEMPTS
            ),
            default_priority=_int_env("JOB_QUEUE_DEFAULT_PRIORITY", DEFAULT_PRIORITY),
            auth_token=os.getenv("JOB_QUEUE_AUTH_TOKEN"),
            reaper_interval_seconds=(
                _int_env("JOB_QUEUE_REAPER_INTERVAL_SECONDS", 0)
                if reaper_interval
                else None
            ),
        )

    def require_db_dsn(self) -> str:
        """Return the database DSN or fail if it was not configured."""
        if not self.db_dsn:
            raise ValueError("JOB_QUEUE_DB_DSN environment variable is required")
        return self.db_dsn


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Invalid integer in {name}: {raw!r}") from e
