"""
Event type definitions for the notification channel and WebSocket messaging.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from optiqueue.constants import (
    EVENT_JOB_COMPLETED,
    EVENT_JOB_FAILED,
    EVENT_JOB_RETRYING,
    EVENT_JOB_STARTED,
    JobStatus,
)
from optiqueue.types.job import Job, JobError, utcnow


class JobEvent(BaseModel):
    """
    Event emitted when a job changes state.
    Delivered to scheduler subscribers and forwarded to WebSocket clients.
    """

    event_type: str
    job_id: str
    status: JobStatus
    priority: int
    retry_count: int
    timestamp: datetime
    data: dict[str, Any] | None = None

    @classmethod
    def job_started(cls, job: Job) -> "JobEvent":
        """Create a job started event."""
        return cls(
            event_type=EVENT_JOB_STARTED,
            job_id=job.id,
            status=JobStatus.PROCESSING,
            priority=job.priority,
            retry_count=job.retry_count,
            timestamp=job.started_at or utcnow(),
            data={"max_retries": job.max_retries},
        )

    @classmethod
    def job_completed(cls, job: Job) -> "JobEvent":
        """Create a job completed event."""
        return cls(
            event_type=EVENT_JOB_COMPLETED,
            job_id=job.id,
            status=JobStatus.COMPLETED,
            priority=job.priority,
            retry_count=job.retry_count,
            timestamp=job.completed_at or utcnow(),
            data={"result": job.result, "processing_time": job.processing_time},
        )

    @classmethod
    def job_retrying(cls, job: Job, error: JobError, delay_seconds: float) -> "JobEvent":
        """Create a job retrying event."""
        return cls(
            event_type=EVENT_JOB_RETRYING,
            job_id=job.id,
            status=JobStatus.RETRYING,
            priority=job.priority,
            retry_count=job.retry_count,
            timestamp=utcnow(),
            data={
                "error": error.message,
                "error_kind": error.kind,
                "delay_seconds": delay_seconds,
                "max_retries": job.max_retries,
            },
        )

    @classmethod
    def job_failed(cls, job: Job) -> "JobEvent":
        """Create a job failed event."""
        error = job.error
        return cls(
            event_type=EVENT_JOB_FAILED,
            job_id=job.id,
            status=JobStatus.FAILED,
            priority=job.priority,
            retry_count=job.retry_count,
            timestamp=job.failed_at or utcnow(),
            data={
                "error": error.message if error else None,
                "error_kind": error.kind if error else None,
                "code": error.code if error else None,
                "processing_time": job.processing_time,
            },
        )


class WebSocketMessage(BaseModel):
    """
    Message format for WebSocket communication.
    """

    type: str
    payload: dict[str, Any]
    timestamp: datetime

    @classmethod
    def from_event(cls, event: JobEvent) -> "WebSocketMessage":
        """Create a WebSocket message from a job event."""
        return cls(
            type=event.event_type,
            payload={
                "job_id": event.job_id,
                "status": event.status,
                "retry_count": event.retry_count,
                "data": event.data,
            },
            timestamp=event.timestamp,
        )
