"""
Status views returned by JobScheduler.get_status and JobScheduler.stats.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from optiqueue.types.job import JobError


class ProcessingStatusView(BaseModel):
    """Job currently held by a worker."""

    status: Literal["processing"] = "processing"
    job_id: str
    started_at: datetime
    retry_count: int = 0


class RetryingStatusView(BaseModel):
    """Job waiting out its retry backoff."""

    status: Literal["retrying"] = "retrying"
    job_id: str
    retry_count: int
    max_retries: int


class QueuedStatusView(BaseModel):
    """Job waiting in the pending queue."""

    status: Literal["queued"] = "queued"
    job_id: str
    position: int = Field(..., ge=1, description="1-based position in the queue")
    estimated_wait_time: float = Field(..., ge=0, description="Seconds")


class CompletedStatusView(BaseModel):
    """Job that finished successfully and has not expired."""

    status: Literal["completed"] = "completed"
    job_id: str
    result: Any = None
    completed_at: datetime
    processing_time: float
    retry_count: int = 0


class FailedStatusView(BaseModel):
    """Job that exhausted its retries and has not expired."""

    status: Literal["failed"] = "failed"
    job_id: str
    error: JobError
    failed_at: datetime
    processing_time: float
    retry_count: int = 0


class NotFoundStatusView(BaseModel):
    """Unknown id, or a result past its time-to-live."""

    status: Literal["not_found"] = "not_found"
    job_id: str


JobStatusView = Annotated[
    Union[
        ProcessingStatusView,
        RetryingStatusView,
        QueuedStatusView,
        CompletedStatusView,
        FailedStatusView,
        NotFoundStatusView,
    ],
    Field(discriminator="status"),
]


class SchedulerStats(BaseModel):
    """Point-in-time scheduler statistics."""

    total_submitted: int
    total_completed: int
    total_failed: int
    total_retries: int
    total_timeouts: int
    total_rejected: int
    queue_depth: int
    retrying: int
    in_flight: int
    max_concurrent_jobs: int
    average_processing_time: float
    completed_last_24h: int
    failed_last_24h: int
