"""
Type definitions for the job scheduler.
Contains input/output type definitions for all functions, grouped by module.
"""

from optiqueue.types.api import (
    BatchFileError,
    BatchSubmitResponse,
    BulkStatusRequest,
    BulkStatusResponse,
    ErrorResponse,
    HealthResponse,
    SubmitJobResponse,
)
from optiqueue.types.events import (
    JobEvent,
    WebSocketMessage,
)
from optiqueue.types.job import (
    Failure,
    Job,
    JobError,
    JobOptions,
    JobOutcome,
    Processor,
    ShutdownReport,
    Success,
)
from optiqueue.types.status import (
    CompletedStatusView,
    FailedStatusView,
    JobStatusView,
    NotFoundStatusView,
    ProcessingStatusView,
    QueuedStatusView,
    RetryingStatusView,
    SchedulerStats,
)

__all__ = [
    # API types
    "SubmitJobResponse",
    "BatchFileError",
    "BatchSubmitResponse",
    "BulkStatusRequest",
    "BulkStatusResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "Job",
    "JobOptions",
    "JobError",
    "JobOutcome",
    "Success",
    "Failure",
    "Processor",
    "ShutdownReport",
    # Status types
    "JobStatusView",
    "ProcessingStatusView",
    "RetryingStatusView",
    "QueuedStatusView",
    "CompletedStatusView",
    "FailedStatusView",
    "NotFoundStatusView",
    "SchedulerStats",
    # Event types
    "JobEvent",
    "WebSocketMessage",
]
