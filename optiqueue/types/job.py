"""
Job-related type definitions for internal use.
"""

import traceback
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from optiqueue.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_PRIORITY,
    ErrorKind,
    JobStatus,
)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    """Generate a process-unique job identifier."""
    return str(uuid4())


class JobOptions(BaseModel):
    """
    Per-job options, validated at submission time.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    priority: int = Field(
        default=DEFAULT_PRIORITY, description="Higher values are dispatched sooner"
    )
    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES, ge=0, description="Retries after the first attempt"
    )


class JobError(BaseModel):
    """
    Failure detail captured for a job.
    Recorded when a processor fails or a job exceeds its timeout.
    """

    kind: ErrorKind
    message: str
    trace: str | None = None
    code: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "JobError":
        """Capture message, traceback and any processor-specific code."""
        code = getattr(exc, "code", None)
        return cls(
            kind=ErrorKind.PROCESSOR_FAILURE,
            message=str(exc) or type(exc).__name__,
            trace="".join(traceback.format_exception(exc)),
            code=str(code) if code is not None else None,
            details=dict(getattr(exc, "details", None) or {}),
        )

    @classmethod
    def timeout(cls, timeout_seconds: float) -> "JobError":
        """Create the synthetic error recorded for a timed-out job."""
        return cls(
            kind=ErrorKind.TIMEOUT_EXCEEDED,
            message=f"Job timed out after {timeout_seconds:g}s",
            code="timeout",
        )


@dataclass(frozen=True)
class Success:
    """Outcome of a processor invocation that produced a result."""

    result: Any = None


@dataclass(frozen=True)
class Failure:
    """Outcome of a processor invocation that failed."""

    error: JobError


JobOutcome = Union[Success, Failure]

# A work processor takes (payload, job_id) and returns a result, an awaitable
# of a result, or an explicit JobOutcome.
Processor = Callable[[Any, str], Any]


@dataclass
class Job:
    """
    A unit of work tracked by the scheduler.

    ``id``, ``processor``, ``payload`` and ``options`` never change after
    submission; the remaining fields follow the job through its lifecycle.
    """

    processor: Processor
    payload: Any
    options: JobOptions = field(default_factory=JobOptions)
    id: str = field(default_factory=new_job_id)
    status: JobStatus = JobStatus.QUEUED
    retry_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    expires_at: datetime | None = None
    processing_time: float | None = None
    result: Any = None
    error: JobError | None = None

    @property
    def priority(self) -> int:
        return self.options.priority

    @property
    def max_retries(self) -> int:
        return self.options.max_retries

    @property
    def can_retry(self) -> bool:
        """Check if another attempt is allowed after a failure."""
        return self.retry_count < self.options.max_retries

    @property
    def finished_at(self) -> datetime | None:
        """Timestamp of the terminal transition, if any."""
        return self.completed_at or self.failed_at

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the job's retention period has passed."""
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at


@dataclass
class ShutdownReport:
    """
    Summary returned by JobScheduler.shutdown.
    """

    abandoned: int
    pending: int
    drained: bool
