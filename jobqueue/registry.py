"""Job type registry: payload schemas and execution policies."""

from collections.abc import Iterable, Mapping
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from jobqueue.config import DEFAULT_MAX_RETRY_ATTEMPTS
from jobqueue.errors import SchemaValidationError, UnknownJobTypeError

FieldKind = Literal["string", "number", "boolean", "array", "object"]


class JobSchema(BaseModel):
    """Required fields and expected primitive kinds of a job payload."""

    required: List[str] = Field(default_factory=list)
    properties: Dict[str, FieldKind] = Field(default_factory=dict)

    model_config = {"frozen": True}


class JobPolicy(BaseModel):
    """Execution policy for a job type."""

    max_attempts: int = Field(ge=1)
    lease_duration_seconds: int = Field(gt=0)
    # Advisory; the queue does not enforce it
    concurrency_limit: Optional[int] = Field(default=None, ge=1)

    model_config = {"frozen": True}


class JobTypeDefinition(BaseModel):
    """Registry entry for a job type."""

    type: str
    job_schema: JobSchema
    policy: JobPolicy

    model_config = {"frozen": True}


def kind_of(value: Any) -> str:
    """Name the primitive kind of a JSON value."""
    # bool is checked first since it is a subclass of int
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if value is None:
        return "null"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


class JobRegistry:
    """
    Immutable mapping from job type name to its schema and policy.

    The registry is built once at startup and handed to the service, so
    tests can supply their own isolated tables.
    """

    def __init__(
        self,
        definitions: Iterable[JobTypeDefinition],
        max_retry_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS,
    ):
        entries: Dict[str, JobTypeDefinition] = {}
        for definition in definitions:
            if definition.type in entries:
                raise ValueError(f"Job type {definition.type} registered twice")
            if definition.policy.max_attempts > max_retry_attempts:
                raise ValueError(
                    f"Job type {definition.type} allows {definition.policy.max_attempts} "
                    f"attempts but the retry ceiling is {max_retry_attempts}"
                )
            entries[definition.type] = definition

        self._entries = entries
        self.max_retry_attempts = max_retry_attempts

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._entries

    def types(self) -> List[str]:
        """Get all registered type names."""
        return sorted(self._entries)

    def definition_for(self, job_type: str) -> JobTypeDefinition:
        """Get the full registry entry for a job type."""
        try:
            return self._entries[job_type]
        except KeyError:
            raise UnknownJobTypeError(job_type) from None

    def policy_for(self, job_type: str) -> JobPolicy:
        """Get the execution policy for a job type."""
        return self.definition_for(job_type).policy

    def validate_payload(self, job_type: str, payload: Any) -> None:
        """
        Check a payload against the registered schema for its type.

        Every missing required field and every kind mismatch is collected
        so callers see all violations at once.

        Raises:
            UnknownJobTypeError: If the type is not registered
            SchemaValidationError: If any violation was found
        """
        schema = self.definition_for(job_type).job_schema

        if not isinstance(payload, Mapping):
            raise SchemaValidationError(
                job_type, [f"Payload must be an object, got {kind_of(payload)}"]
            )

        violations = [
            f"Missing required field: {field}"
            for field in schema.required
            if field not in payload
        ]

        for field, value in payload.items():
            expected = schema.properties.get(field)
            if expected is None:
                continue
            actual = kind_of(value)
            if actual != expected:
                violations.append(
                    f"Invalid type for field {field}: expected {expected}, got {actual}"
                )

        if violations:
            raise SchemaValidationError(job_type, violations)
