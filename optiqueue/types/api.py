"""
API request and response type definitions.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from optiqueue.constants import JobStatus
from optiqueue.types.status import JobStatusView, SchedulerStats


class SubmitJobResponse(BaseModel):
    """Response body after queueing a single upload."""

    job_id: str
    filename: str
    status: JobStatus = JobStatus.QUEUED
    estimated_time: float = Field(..., description="Estimated processing seconds")
    message: str = "Image processing job queued successfully"


class BatchFileError(BaseModel):
    """A file from a batch upload that was not queued."""

    filename: str
    error: str


class BatchSubmitResponse(BaseModel):
    """Response body after queueing a batch upload."""

    jobs: list[SubmitJobResponse]
    errors: list[BatchFileError]
    message: str


class BulkStatusRequest(BaseModel):
    """Request body for querying several jobs at once."""

    job_ids: list[str] = Field(..., min_length=1, max_length=100)


class BulkStatusResponse(BaseModel):
    """Status views for several jobs."""

    jobs: list[JobStatusView]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    uptime_seconds: float
    timestamp: datetime
    queue: SchedulerStats


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None
