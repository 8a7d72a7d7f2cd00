"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - QUEUED -> PROCESSING (dispatched to a free worker)
    - PROCESSING -> COMPLETED (success)
    - PROCESSING -> RETRYING (failure or timeout, retries left)
    - RETRYING -> QUEUED (backoff elapsed, reinserted at the front)
    - PROCESSING -> FAILED (retries exhausted)
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


class ErrorKind(StrEnum):
    """Kinds of job failure recorded by the scheduler."""

    PROCESSOR_FAILURE = "processor_failure"
    TIMEOUT_EXCEEDED = "timeout_exceeded"


# Status reported for ids that were never submitted or have expired
STATUS_NOT_FOUND = "not_found"

# Default job options
DEFAULT_PRIORITY = 0
DEFAULT_MAX_RETRIES = 0

# Trailing window used for the "last 24h" counters in stats
STATS_WINDOW_SECONDS = 24 * 60 * 60

# Registered processor names
PROCESSOR_OPTIMIZE_IMAGE = "optimize_image"

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_IN_FLIGHT = "jobs_in_flight"
METRIC_JOBS_SUBMITTED = "jobs_submitted_total"
METRIC_JOBS_REJECTED = "jobs_rejected_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOBS_RETRIED = "jobs_retried_total"
METRIC_JOBS_TIMED_OUT = "jobs_timed_out_total"
METRIC_JOBS_REAPED = "jobs_reaped_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_API_REQUESTS = "api_requests_total"
METRIC_API_LATENCY = "api_request_latency_seconds"

# Trace span names
SPAN_SUBMIT_JOB = "submit_job"
SPAN_EXECUTE_JOB = "execute_job"

# Lifecycle event types
EVENT_JOB_STARTED = "job.started"
EVENT_JOB_COMPLETED = "job.completed"
EVENT_JOB_FAILED = "job.failed"
EVENT_JOB_RETRYING = "job.retrying"
